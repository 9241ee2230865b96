"""SQLAlchemy models for the reservation engine."""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import clock
from .database import Base


class ResourceKind(str, Enum):
    AMENITY = "AMENITY"
    VENUE = "VENUE"


class ResourceType(str, Enum):
    COTTAGE = "COTTAGE"
    PAVILION = "PAVILION"
    POOL_AREA = "POOL_AREA"
    TABLE = "TABLE"
    ROOM = "ROOM"
    PICNIC_GROUND = "PICNIC_GROUND"
    MULTIPURPOSE_HALL = "MULTIPURPOSE_HALL"
    FUNCTION_ROOM = "FUNCTION_ROOM"
    OTHER = "OTHER"


class RequesterType(str, Enum):
    RESIDENT = "RESIDENT"
    NON_RESIDENT = "NON_RESIDENT"
    ORGANIZATION = "ORGANIZATION"


class ReservationStatus(str, Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    APPROVED = "APPROVED"
    CHECKED_IN = "CHECKED_IN"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"
    EXEMPTED = "EXEMPTED"


class TokenState(str, Enum):
    ISSUED = "ISSUED"
    CONSUMED = "CONSUMED"


BLOCKING_STATUSES = frozenset(
    {ReservationStatus.AWAITING_PAYMENT, ReservationStatus.APPROVED, ReservationStatus.CHECKED_IN}
)
TERMINAL_STATUSES = frozenset(
    {ReservationStatus.CHECKED_IN, ReservationStatus.REJECTED, ReservationStatus.CANCELLED}
)
SETTLED_PAYMENT_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.EXEMPTED})


class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    kind: Mapped[ResourceKind] = mapped_column(SqlEnum(ResourceKind), default=ResourceKind.AMENITY, index=True)
    type: Mapped[ResourceType] = mapped_column(SqlEnum(ResourceType), index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    capacity: Mapped[int] = mapped_column(Integer)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    reservations: Mapped[List["Reservation"]] = relationship(back_populates="resource")

    __table_args__ = (CheckConstraint("capacity > 0", name="check_resource_capacity_positive"),)


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    booking_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), index=True)

    requester_name: Mapped[str] = mapped_column(String(100))
    requester_email: Mapped[str] = mapped_column(String(255))
    requester_phone: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    requester_type: Mapped[RequesterType] = mapped_column(SqlEnum(RequesterType), default=RequesterType.RESIDENT)
    proof_of_residency_url: Mapped[Optional[str]] = mapped_column(String(500), default=None)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, default=None)

    reservation_date: Mapped[date] = mapped_column(Date, index=True)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    guest_count: Mapped[int] = mapped_column(Integer)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    status: Mapped[ReservationStatus] = mapped_column(
        SqlEnum(ReservationStatus), default=ReservationStatus.PENDING_REVIEW, index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(SqlEnum(PaymentStatus), default=PaymentStatus.UNPAID)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    payment_proof_url: Mapped[Optional[str]] = mapped_column(String(500), default=None)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    hold_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    payment_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, index=True)

    qr_code: Mapped[Optional[str]] = mapped_column(Text, default=None)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    checked_in_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)

    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    approved_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    remarks: Mapped[Optional[str]] = mapped_column(Text, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=clock.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=clock.utcnow, onupdate=clock.utcnow)

    resource: Mapped[Resource] = relationship(back_populates="reservations")
    check_in_token: Mapped[Optional["CheckInToken"]] = relationship(back_populates="reservation", uselist=False)

    __table_args__ = (
        Index("ix_reservations_slot", "resource_id", "reservation_date", "status"),
        CheckConstraint("start_time < end_time", name="check_reservation_interval"),
        CheckConstraint("guest_count > 0", name="check_reservation_guest_count_positive"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(code={self.booking_code}, resource={self.resource_id}, status={self.status})>"


class CheckInToken(Base):
    __tablename__ = "check_in_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    token: Mapped[str] = mapped_column(String(1024), unique=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), unique=True)
    state: Mapped[TokenState] = mapped_column(SqlEnum(TokenState), default=TokenState.ISSUED)
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=clock.utcnow)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    consumed_by: Mapped[Optional[str]] = mapped_column(String(100), default=None)

    reservation: Mapped[Reservation] = relationship(back_populates="check_in_token")


class TokenReuseAttempt(Base):
    __tablename__ = "token_reuse_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    token_id: Mapped[int] = mapped_column(ForeignKey("check_in_tokens.id"), index=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), index=True)
    attempted_by: Mapped[str] = mapped_column(String(100))
    attempted_at: Mapped[datetime] = mapped_column(DateTime, default=clock.utcnow, index=True)
