"""Pydantic schemas for the reservation API."""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import (
    CheckInToken,
    PaymentStatus,
    RequesterType,
    ReservationStatus,
    ResourceKind,
    ResourceType,
)


class ResourceRead(BaseModel):
    id: int
    name: str
    kind: ResourceKind
    type: ResourceType
    description: Optional[str] = None
    capacity: int
    hourly_rate: Decimal
    daily_rate: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class TimeSlot(BaseModel):
    reservation_date: date
    start_time: time
    end_time: time


class AvailabilityRead(TimeSlot):
    resource_id: int
    available: bool


class ScheduleEntry(BaseModel):
    booking_code: str
    start_time: time
    end_time: time
    status: ReservationStatus


class ReservationCreate(BaseModel):
    resource_id: int
    reservation_date: date
    start_time: time
    end_time: time
    guest_count: int = Field(..., ge=1)
    requester_name: str = Field(..., min_length=1, max_length=100)
    requester_email: EmailStr
    requester_phone: Optional[str] = Field(None, max_length=50)
    requester_type: RequesterType = RequesterType.RESIDENT
    proof_of_residency_url: Optional[str] = Field(None, max_length=500)
    special_requests: Optional[str] = None


class StatusUpdate(BaseModel):
    status: ReservationStatus
    actor: str = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = None
    remarks: Optional[str] = None


class PaymentUpdate(BaseModel):
    payment_status: PaymentStatus
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_proof_url: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    cancelled_by: str = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = None


class CheckInRequest(BaseModel):
    token: str = Field(..., min_length=1)
    checked_in_by: str = Field(..., min_length=1, max_length=100)


class ReservationRead(BaseModel):
    id: int
    booking_code: str
    resource_id: int
    requester_name: str
    requester_email: str
    requester_phone: Optional[str] = None
    requester_type: RequesterType
    proof_of_residency_url: Optional[str] = None
    special_requests: Optional[str] = None
    reservation_date: date
    start_time: time
    end_time: time
    guest_count: int
    total_amount: Decimal
    status: ReservationStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    payment_proof_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    hold_expires_at: Optional[datetime] = None
    payment_due_at: Optional[datetime] = None
    qr_code: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    remarks: Optional[str] = None
    check_in_token: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("check_in_token", mode="before")
    @classmethod
    def _token_value(cls, value: Any) -> Optional[str]:
        if isinstance(value, CheckInToken):
            return value.token
        return value


class TokenReuseRead(BaseModel):
    id: int
    reservation_id: int
    attempted_by: str
    attempted_at: datetime

    model_config = {"from_attributes": True}


class SweepResult(BaseModel):
    expired: int
