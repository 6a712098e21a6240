from datetime import date as date_type, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fieldforce.models import AttendanceStatus, CheckInStatus, CheckInType, DutySessionStatus
from fieldforce.services.timekeeping import normalize_ts


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DutySessionRead(ApiModel):
    id: int | None = None
    start_time: datetime
    start_location: dict[str, Any]
    end_time: datetime | None = None
    end_location: dict[str, Any] | None = None
    duration: float | None = None
    status: DutySessionStatus


class DailyAttendanceRead(ApiModel):
    id: int
    user: int
    date: date_type
    duty_sessions: list[DutySessionRead] = Field(default_factory=list)
    total_hours: float
    total_distance: float
    status: AttendanceStatus
    check_ins: list[int] = Field(default_factory=list)
    duty_start_time: datetime | None = None
    duty_start_location: dict[str, Any] | None = None
    duty_end_time: datetime | None = None
    duty_end_location: dict[str, Any] | None = None


class PaginationRead(ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class AttendanceListResponse(ApiModel):
    ok: bool = True
    attendance: list[DailyAttendanceRead]
    pagination: PaginationRead


class AttendanceRecordResponse(ApiModel):
    ok: bool = True
    attendance: DailyAttendanceRead


class AttendanceMarkRequest(ApiModel):
    # Checked by the attendance service so bad input maps to 400 codes.
    action: Any = None
    location: Any = None


class AttendanceMarkResponse(ApiModel):
    ok: bool = True
    message: str
    action: Literal["start", "end"]
    attendance: DailyAttendanceRead
    current_session: DutySessionRead | None = None
    session_number: int | None = None
    completed_session: DutySessionRead | None = None
    total_sessions_today: int | None = None
    total_hours_today: float | None = None


class DutyStatusResponse(ApiModel):
    ok: bool = True
    message: str | None = None
    is_on_duty: bool
    total_sessions: int
    total_hours: float
    current_session: DutySessionRead | None = None
    all_sessions: list[DutySessionRead] = Field(default_factory=list)


class AttendanceStatsRead(ApiModel):
    total_days: int
    total_hours: float
    total_distance: float
    total_check_ins: int
    total_sessions: int
    avg_hours_per_day: float
    avg_distance_per_day: float
    avg_sessions_per_day: float


class AttendanceOverviewResponse(ApiModel):
    ok: bool = True
    stats: AttendanceStatsRead


class CheckInCreateRequest(ApiModel):
    type: Any = None
    customer: int | None = Field(default=None, ge=1)
    check_in_location: Any = None
    notes: str | None = Field(default=None, max_length=4000)
    purpose: str | None = Field(default=None, max_length=255)


class CheckOutRequest(ApiModel):
    check_out_location: Any = None
    notes: str | None = Field(default=None, max_length=4000)


class CheckInRead(ApiModel):
    id: int
    user_id: int
    attendance_id: int | None = None
    customer_id: int | None = None
    type: CheckInType
    check_in_time: datetime
    check_out_time: datetime | None = None
    check_in_location: dict[str, Any]
    check_out_location: dict[str, Any] | None = None
    duration_minutes: int | None = None
    distance_km: float | None = None
    notes: str | None = None
    purpose: str | None = None
    status: CheckInStatus

    @field_validator("check_in_time", "check_out_time")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return normalize_ts(value)


class CheckInResponse(ApiModel):
    ok: bool = True
    message: str | None = None
    check_in: CheckInRead


class CheckInListResponse(ApiModel):
    ok: bool = True
    check_ins: list[CheckInRead]
    pagination: PaginationRead


class NearestCheckInResponse(ApiModel):
    ok: bool = True
    check_in: CheckInRead | None = None
    distance_km: float | None = None
