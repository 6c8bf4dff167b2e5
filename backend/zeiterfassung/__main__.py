from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import HTTPException

from .config import settings

logger = logging.getLogger("zeiterfassung")


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="zeiterfassung")
    commands = ap.add_subparsers(dest="command")

    commands.add_parser("serve", help="Start the API server (default)")

    staffplan = commands.add_parser("import-staffplan", help="Replace the staffplan with an Excel workbook")
    staffplan.add_argument("path", type=Path, help="Staffplan XLSX")

    timesheet = commands.add_parser("timesheet", help="Render an Erfassungsbogen from a CSV/XLSX export")
    timesheet.add_argument("path", type=Path, help="Time entries as CSV or XLSX")
    timesheet.add_argument("--out", type=Path, required=True, help="Output PDF path")
    timesheet.add_argument("--group-mode", default=None, help="day, week or project")
    timesheet.add_argument("--show-kw", action="store_true", help="Add a calendar week column")
    timesheet.add_argument("--no-staffplan", action="store_true", help="Do not apply staffplan overrides")
    return ap


def _serve() -> None:
    uvicorn.run(
        "zeiterfassung.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ap = _build_parser()
    args = ap.parse_args(argv)
    if args.command in (None, "serve"):
        _serve()
        return

    from .database import db_session, init_db
    from .services import import_staffplan, timesheet_from_upload

    init_db()
    try:
        with db_session() as db:
            if args.command == "import-staffplan":
                result = import_staffplan(db, args.path.read_bytes())
                logger.info("Imported %s staffplan rows (%s..%s)", result["imported"], result["date_from"], result["date_to"])
            else:
                pdf = timesheet_from_upload(
                    db,
                    args.path.name,
                    args.path.read_bytes(),
                    group_mode=args.group_mode,
                    show_week_column=args.show_kw,
                    apply_staffplan=not args.no_staffplan,
                )
                args.out.write_bytes(pdf)
                logger.info("Wrote %s", args.out)
    except HTTPException as exc:
        ap.exit(1, f"{exc.detail}\n")


if __name__ == "__main__":
    main()
