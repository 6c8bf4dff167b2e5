from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db, init_db
from .schemas import (
    CurrentTimeResponse,
    EmployeeResponse,
    EmployeeTodayResponse,
    SharePointImportRequest,
    StaffplanImportResponse,
    StaffplanProjectResponse,
    TimeClockResponse,
    TimeEndRequest,
    TimeEndResponse,
    TimeStartRequest,
    TimeStartResponse,
    TimesheetRequest,
)
from .services import (
    TIMESHEET_FILENAME,
    build_timesheet,
    current_logo_path,
    current_time_entry,
    employee_timesheet,
    end_time_entry,
    get_employee,
    import_staffplan,
    import_staffplan_from_sharepoint,
    list_employees,
    local_today,
    save_logo,
    staffplan_for_day,
    start_time_entry,
    timesheet_from_upload,
)

init_db()

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _pdf_response(content: bytes) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{TIMESHEET_FILENAME}"'},
    )


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/employees", response_model=list[EmployeeResponse])
def employees(db: Session = Depends(get_db)) -> list[EmployeeResponse]:
    return list_employees(db)


# /today is registered before /{employee_id} so it is not captured as an id
@app.get("/api/employee/today", response_model=EmployeeTodayResponse)
def employee_today(
    employee_id: str = Query(...),
    date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
) -> EmployeeTodayResponse:
    day = date or local_today()
    projects = staffplan_for_day(db, employee_id, day)
    return EmployeeTodayResponse(
        date=day,
        projects=[StaffplanProjectResponse.model_validate(item) for item in projects],
    )


@app.get("/api/employee/{employee_id}", response_model=EmployeeResponse)
def employee_detail(employee_id: str, db: Session = Depends(get_db)) -> EmployeeResponse:
    return get_employee(db, employee_id)


@app.get("/api/time/current/{employee_id}", response_model=CurrentTimeResponse)
def time_current(employee_id: str, db: Session = Depends(get_db)) -> CurrentTimeResponse:
    entry = current_time_entry(db, employee_id)
    if entry is None:
        return CurrentTimeResponse(running=False)
    return CurrentTimeResponse(running=True, start_time=entry.start_ts)


@app.post("/api/time/start", response_model=TimeStartResponse)
def time_start(payload: TimeStartRequest, db: Session = Depends(get_db)) -> TimeStartResponse:
    entry, already_running = start_time_entry(
        db,
        payload.employee_id,
        project_short=payload.project_short,
        customer=payload.customer,
        customer_po=payload.customer_po,
        internal_po=payload.internal_po,
    )
    return TimeStartResponse(entry=TimeClockResponse.model_validate(entry), already_running=already_running)


@app.post("/api/time/end", response_model=TimeEndResponse)
def time_end(payload: TimeEndRequest, db: Session = Depends(get_db)) -> TimeEndResponse:
    entry = end_time_entry(db, payload.employee_id, payload.activity)
    return TimeEndResponse(entry=TimeClockResponse.model_validate(entry), net_hours=round(entry.minutes / 60, 2))


@app.post("/api/import/staffplan", response_model=StaffplanImportResponse)
async def upload_staffplan(file: UploadFile = File(...), db: Session = Depends(get_db)) -> StaffplanImportResponse:
    content = await file.read()
    return StaffplanImportResponse(**import_staffplan(db, content))


@app.post("/api/import/staffplan/sharepoint", response_model=StaffplanImportResponse)
def sharepoint_staffplan(payload: SharePointImportRequest, db: Session = Depends(get_db)) -> StaffplanImportResponse:
    return StaffplanImportResponse(**import_staffplan_from_sharepoint(db, payload.url))


@app.get("/api/logo")
def get_logo() -> FileResponse:
    path = current_logo_path()
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Kein Logo vorhanden")
    return FileResponse(path, media_type="image/png")


@app.post("/api/logo", status_code=status.HTTP_201_CREATED)
async def upload_logo(file: UploadFile = File(...)) -> dict[str, bool]:
    save_logo(await file.read())
    return {"ok": True}


@app.get("/api/erfassungsbogen")
def erfassungsbogen(
    employee_id: str = Query(...),
    from_date: dt.date = Query(...),
    to_date: dt.date = Query(...),
    group_mode: Optional[str] = None,
    show_kw: bool = False,
    staffplan: bool = True,
    db: Session = Depends(get_db),
) -> Response:
    content = employee_timesheet(
        db,
        employee_id,
        from_date,
        to_date,
        group_mode=group_mode,
        show_week_column=show_kw,
        apply_staffplan=staffplan,
    )
    return _pdf_response(content)


@app.post("/api/erfassungsbogen")
def erfassungsbogen_from_rows(payload: TimesheetRequest, db: Session = Depends(get_db)) -> Response:
    content = build_timesheet(
        db,
        [row.to_record() for row in payload.rows],
        payload.group_mode,
        title=payload.title,
        period_label=payload.period_label,
        meta=payload.meta(),
        show_week_column=payload.show_week_column,
        apply_staffplan=payload.apply_staffplan,
        with_logo=payload.with_logo,
    )
    return _pdf_response(content)


@app.post("/api/erfassungsbogen/upload")
async def erfassungsbogen_from_upload(
    file: UploadFile = File(...),
    group_mode: Optional[str] = Form(None),
    show_kw: bool = Form(False),
    staffplan: bool = Form(True),
    db: Session = Depends(get_db),
) -> Response:
    content = await file.read()
    pdf = timesheet_from_upload(
        db,
        file.filename or "",
        content,
        group_mode=group_mode,
        show_week_column=show_kw,
        apply_staffplan=staffplan,
    )
    return _pdf_response(pdf)
