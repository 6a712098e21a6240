from __future__ import annotations

import enum
from datetime import date as date_type, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldforce.db import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EXECUTIVE = "executive"


class DutySessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class AttendanceStatus(str, enum.Enum):
    ON_DUTY = "on-duty"
    OFF_DUTY = "off-duty"


class CheckInType(str, enum.Enum):
    CUSTOMER = "customer"
    GENERAL = "general"


class CheckInStatus(str, enum.Enum):
    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.EXECUTIVE,
    )
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    duty_status: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    current_location: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    attendance_days: Mapped[list[DailyAttendance]] = relationship(back_populates="user")
    check_ins: Mapped[list[CheckIn]] = relationship(back_populates="user")


class DailyAttendance(Base):
    __tablename__ = "daily_attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_attendance_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    total_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    total_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_status", values_callable=_enum_values),
        nullable=False,
        default=AttendanceStatus.OFF_DUTY,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user: Mapped[User] = relationship(back_populates="attendance_days")
    duty_sessions: Mapped[list[DutySession]] = relationship(
        back_populates="attendance",
        order_by=lambda: [DutySession.start_time, DutySession.id],
        cascade="all, delete-orphan",
    )
    check_ins: Mapped[list[CheckIn]] = relationship(
        back_populates="attendance",
        order_by="CheckIn.check_in_time",
    )

    # Read-only projection of the pre-session API fields. Older clients still
    # read dutyStartTime/dutyEndTime; the session list is the only source.
    @property
    def duty_start_time(self) -> datetime | None:
        if not self.duty_sessions:
            return None
        return self.duty_sessions[-1].start_time

    @property
    def duty_start_location(self) -> dict[str, Any] | None:
        if not self.duty_sessions:
            return None
        return self.duty_sessions[-1].start_location

    @property
    def duty_end_time(self) -> datetime | None:
        completed = [s for s in self.duty_sessions if s.status == DutySessionStatus.COMPLETED]
        return completed[-1].end_time if completed else None

    @property
    def duty_end_location(self) -> dict[str, Any] | None:
        completed = [s for s in self.duty_sessions if s.status == DutySessionStatus.COMPLETED]
        return completed[-1].end_location if completed else None


class DutySession(Base):
    __tablename__ = "duty_sessions"
    __table_args__ = (
        Index(
            "uq_duty_sessions_one_active",
            "attendance_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("daily_attendance.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_location: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_location: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[DutySessionStatus] = mapped_column(
        Enum(DutySessionStatus, name="duty_session_status", values_callable=_enum_values),
        nullable=False,
        default=DutySessionStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    attendance: Mapped[DailyAttendance] = relationship(back_populates="duty_sessions")


class CheckIn(Base):
    __tablename__ = "check_ins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_id: Mapped[int | None] = mapped_column(
        ForeignKey("daily_attendance.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Customers live in the CRM service; only the id is kept here.
    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    type: Mapped[CheckInType] = mapped_column(
        Enum(CheckInType, name="check_in_type", values_callable=_enum_values),
        nullable=False,
    )
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_location: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)
    check_out_location: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[CheckInStatus] = mapped_column(
        Enum(CheckInStatus, name="check_in_status", values_callable=_enum_values),
        nullable=False,
        default=CheckInStatus.CHECKED_IN,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped[User] = relationship(back_populates="check_ins")
    attendance: Mapped[DailyAttendance | None] = relationship(back_populates="check_ins")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(
        JsonDocument,
        nullable=False,
        default=dict,
    )
