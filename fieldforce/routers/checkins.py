from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fieldforce.audit import AuditAction, record_user_action
from fieldforce.db import get_db
from fieldforce.routers.common import page_window
from fieldforce.schemas import (
    CheckInCreateRequest,
    CheckInListResponse,
    CheckInRead,
    CheckInResponse,
    CheckOutRequest,
    NearestCheckInResponse,
    PaginationRead,
)
from fieldforce.security import CurrentIdentity, get_current_identity
from fieldforce.services.checkins import (
    complete_check_out,
    create_check_in,
    get_check_in,
    list_check_ins,
    nearest_check_in,
)

router = APIRouter(prefix="/api/checkins", tags=["checkins"])


@router.get("", response_model=CheckInListResponse)
def list_records(
    request: Request,
    day: date | None = Query(default=None, alias="date"),
    customer: int | None = Query(default=None, ge=1),
    check_in_type: str | None = Query(default=None, alias="type"),
    check_in_status: str | None = Query(default=None, alias="status"),
    user_id: int | None = Query(default=None, alias="userId", ge=1),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CheckInListResponse:
    request.state.user_id = identity.user_id
    resolved_page, resolved_limit = page_window(page, limit)
    rows, total = list_check_ins(
        db,
        caller_id=identity.user_id,
        caller_role=identity.role,
        user_id=user_id,
        day=day,
        customer_id=customer,
        check_in_type=check_in_type,
        status=check_in_status,
        page=resolved_page,
        limit=resolved_limit,
    )
    return CheckInListResponse(
        check_ins=[CheckInRead.model_validate(row) for row in rows],
        pagination=PaginationRead(
            page=resolved_page,
            limit=resolved_limit,
            total=total,
            pages=(total + resolved_limit - 1) // resolved_limit,
        ),
    )


@router.post("", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
def check_in(
    payload: CheckInCreateRequest,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CheckInResponse:
    request.state.user_id = identity.user_id
    record = create_check_in(
        db,
        user_id=identity.user_id,
        check_in_type=payload.type,
        customer_id=payload.customer,
        location=payload.check_in_location,
        notes=payload.notes,
        purpose=payload.purpose,
    )
    request.state.attendance_id = record.attendance_id
    record_user_action(
        db,
        request,
        user_id=identity.user_id,
        action=AuditAction.CHECK_IN_CREATED,
        entity_id=record.id,
        details={"type": record.type.value, "customer_id": record.customer_id},
    )
    return CheckInResponse(message="Checked in successfully", check_in=CheckInRead.model_validate(record))


@router.get("/nearest", response_model=NearestCheckInResponse)
def nearest(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> NearestCheckInResponse:
    request.state.user_id = identity.user_id
    match = nearest_check_in(db, user_id=identity.user_id, latitude=latitude, longitude=longitude)
    if match is None:
        return NearestCheckInResponse()
    record, distance = match
    return NearestCheckInResponse(check_in=CheckInRead.model_validate(record), distance_km=round(distance, 3))


@router.get("/{check_in_id}", response_model=CheckInResponse)
def check_in_detail(
    check_in_id: int,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CheckInResponse:
    request.state.user_id = identity.user_id
    record = get_check_in(db, caller_id=identity.user_id, caller_role=identity.role, check_in_id=check_in_id)
    return CheckInResponse(check_in=CheckInRead.model_validate(record))


@router.put("/{check_in_id}/checkout", response_model=CheckInResponse)
def check_out(
    check_in_id: int,
    payload: CheckOutRequest,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CheckInResponse:
    request.state.user_id = identity.user_id
    record = complete_check_out(
        db,
        user_id=identity.user_id,
        check_in_id=check_in_id,
        location=payload.check_out_location,
        notes=payload.notes,
    )
    record_user_action(
        db,
        request,
        user_id=identity.user_id,
        action=AuditAction.CHECK_OUT_COMPLETED,
        entity_id=record.id,
        details={"duration_minutes": record.duration_minutes, "distance_km": record.distance_km},
    )
    return CheckInResponse(message="Checked out successfully", check_in=CheckInRead.model_validate(record))
