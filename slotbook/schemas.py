from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from .domain import Booking, TimeSlot


class SlotOut(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool = True

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "SlotOut":
        return cls(start_time=slot.start_time, end_time=slot.end_time, available=slot.available)


class AvailabilityOut(BaseModel):
    tenant_id: str
    service_id: str
    day: date
    slots: list[SlotOut]


class BookingCreate(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=36)
    service_id: str = Field(min_length=1, max_length=36)
    customer_id: str = Field(min_length=1, max_length=36)
    start_time: datetime


class BookingOut(BaseModel):
    id: str
    tenant_id: str
    service_id: str
    customer_id: str
    start_time: datetime
    end_time: datetime
    status: str
    payment_status: str
    management_token: str | None = None

    @classmethod
    def from_booking(cls, booking: Booking, include_token: bool = False) -> "BookingOut":
        return cls(
            id=booking.id,
            tenant_id=booking.tenant_id,
            service_id=booking.service_id,
            customer_id=booking.customer_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status.value,
            payment_status=booking.payment_status.value,
            management_token=booking.management_token if include_token else None,
        )


class CancelRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class ReminderReportOut(BaseModel):
    scanned: int
    reminded: int
    skipped: int
    failed: int
    deliveries: int


class BookingStatusUpdate(BaseModel):
    status: Literal["confirmed", "cancelled"]


class TelegramWebhookOut(BaseModel):
    received: bool = True
    result: str
