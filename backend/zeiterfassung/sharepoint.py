"""Download of Excel files behind SharePoint share links via Microsoft Graph."""

from __future__ import annotations

import base64
import logging
from typing import Optional
from urllib.parse import quote

import requests

from .config import Settings, settings

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class SharePointError(RuntimeError):
    """Fehler beim Zugriff auf SharePoint / Microsoft Graph."""

    def __init__(self, message: str, *, response: Optional[requests.Response] = None) -> None:
        super().__init__(message)
        self.response = response


def encode_sharing_url(url: str) -> str:
    """Turn a sharing link into the ``u!``-prefixed id of ``/shares/{id}``."""
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii")
    return "u!" + encoded.rstrip("=")


class SharePointClient:
    """Holt Dateien über einen App-Login (client credentials)."""

    def __init__(
        self,
        tenant_id: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "SharePointClient":
        return cls(
            config.ms_tenant_id,
            config.ms_client_id,
            config.ms_client_secret,
            timeout=config.graph_timeout_seconds,
        )

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise SharePointError(str(exc)) from exc
        return response

    def fetch_token(self) -> str:
        if not (self.tenant_id and self.client_id and self.client_secret):
            raise SharePointError("MS_TENANT_ID/MS_CLIENT_ID/MS_CLIENT_SECRET fehlen (Entra App nötig)")
        response = self._request(
            "POST",
            TOKEN_URL_TEMPLATE.format(tenant=quote(self.tenant_id, safe="")),
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
                "scope": GRAPH_SCOPE,
            },
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400:
            detail = f"{payload.get('error') or response.status_code} {payload.get('error_description') or ''}".strip()
            raise SharePointError(f"Graph token error: {detail}", response=response)
        token = payload.get("access_token")
        if not token:
            raise SharePointError("Kein access_token von Graph erhalten", response=response)
        return token

    def download(self, shared_url: str) -> bytes:
        if not shared_url or not shared_url.startswith("https://") or len(shared_url) <= len("https://"):
            raise SharePointError("Ungültige SharePoint URL")
        token = self.fetch_token()
        url = f"{GRAPH_BASE_URL}/shares/{encode_sharing_url(shared_url)}/driveItem/content"
        response = self._request("GET", url, headers={"Authorization": f"Bearer {token}"})
        if response.status_code >= 400:
            raise SharePointError(
                f"Graph download failed ({response.status_code}): {response.text or response.reason}",
                response=response,
            )
        logger.info("Downloaded %d bytes from SharePoint share link", len(response.content))
        return response.content
