from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fieldforce.audit import AuditAction, record_user_action
from fieldforce.db import get_db
from fieldforce.routers.common import page_window
from fieldforce.schemas import (
    AttendanceListResponse,
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceOverviewResponse,
    AttendanceRecordResponse,
    DutyStatusResponse,
)
from fieldforce.security import CurrentIdentity, get_current_identity
from fieldforce.services.attendance import (
    ACTION_START,
    attendance_overview,
    get_attendance,
    list_attendance,
    mark_attendance,
    serialize_attendance,
)
from fieldforce.services.notifier import DutyNotifier, get_duty_notifier
from fieldforce.services.reconciler import DutyStatus, get_duty_status, sync_duty_status
from fieldforce.services.sessions import serialize_session

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def _status_response(status: DutyStatus, *, message: str | None = None) -> DutyStatusResponse:
    return DutyStatusResponse(
        message=message,
        is_on_duty=status.is_on_duty,
        total_sessions=status.total_sessions,
        total_hours=status.total_hours,
        current_session=status.current_session,
        all_sessions=status.all_sessions,
    )


@router.get("", response_model=AttendanceListResponse)
def list_attendance_records(
    request: Request,
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    user_id: int | None = Query(default=None, alias="userId", ge=1),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> AttendanceListResponse:
    resolved_page, resolved_limit = page_window(page, limit)
    request.state.user_id = identity.user_id
    result = list_attendance(
        db,
        caller_id=identity.user_id,
        caller_role=identity.role,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=resolved_page,
        limit=resolved_limit,
    )
    return AttendanceListResponse(**result)


@router.post("", response_model=AttendanceMarkResponse)
def mark(
    payload: AttendanceMarkRequest,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    notifier: DutyNotifier = Depends(get_duty_notifier),
    db: Session = Depends(get_db),
) -> AttendanceMarkResponse:
    request.state.user_id = identity.user_id
    request.state.action = payload.action
    result = mark_attendance(
        db,
        user_id=identity.user_id,
        action=payload.action,
        location=payload.location,
        notifier=notifier,
    )
    record = result.record
    request.state.attendance_id = record.id
    record_user_action(
        db,
        request,
        user_id=identity.user_id,
        action=AuditAction.DUTY_STARTED if result.action == ACTION_START else AuditAction.DUTY_ENDED,
        entity_id=record.id,
        details={
            "session_id": result.session.id,
            "session_number": result.session_number,
            "total_hours": record.total_hours,
        },
    )

    session = serialize_session(result.session)
    if result.action == ACTION_START:
        return AttendanceMarkResponse(
            message=f"Duty session {result.session_number} started successfully",
            action=result.action,
            attendance=serialize_attendance(record),
            current_session=session,
            session_number=result.session_number,
        )
    return AttendanceMarkResponse(
        message="Duty session ended successfully",
        action=result.action,
        attendance=serialize_attendance(record),
        completed_session=session,
        total_sessions_today=len(record.duty_sessions),
        total_hours_today=record.total_hours,
    )


@router.get("/status", response_model=DutyStatusResponse)
def duty_status(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> DutyStatusResponse:
    request.state.user_id = identity.user_id
    return _status_response(get_duty_status(db, user_id=identity.user_id))


@router.post("/sync-status", response_model=DutyStatusResponse)
def sync_status(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> DutyStatusResponse:
    request.state.user_id = identity.user_id
    status = sync_duty_status(db, user_id=identity.user_id)
    return _status_response(status, message="Duty status synchronized")


@router.get("/stats/overview", response_model=AttendanceOverviewResponse)
def stats_overview(
    request: Request,
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    user_id: int | None = Query(default=None, alias="userId", ge=1),
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> AttendanceOverviewResponse:
    request.state.user_id = identity.user_id
    stats = attendance_overview(
        db,
        caller_id=identity.user_id,
        caller_role=identity.role,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
    return AttendanceOverviewResponse(stats=stats)


@router.get("/{attendance_id}", response_model=AttendanceRecordResponse)
def attendance_detail(
    attendance_id: int,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> AttendanceRecordResponse:
    request.state.user_id = identity.user_id
    request.state.attendance_id = attendance_id
    record = get_attendance(
        db,
        caller_id=identity.user_id,
        caller_role=identity.role,
        attendance_id=attendance_id,
    )
    return AttendanceRecordResponse(attendance=record)
