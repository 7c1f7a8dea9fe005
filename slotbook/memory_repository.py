import asyncio
import uuid
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timezone, tzinfo
from typing import Any

from .domain import (
    Booking,
    BookingStatus,
    NewBooking,
    Schedule,
    ScheduleException,
    Service,
    Tenant,
    local_day_bounds,
    utc_now,
)
from .errors import RepositoryFailure
from .ports import BookingRepository

_BOOKING_FIELDS = {f.name for f in fields(Booking)}


@dataclass
class Customer:
    id: str
    tenant_id: str
    name: str
    email: str | None = None
    telegram_chat_id: str | None = None


class InMemoryBookingRepository(BookingRepository):
    """Dict-backed repository for tests and local development.

    Every call yields to the event loop once, like a real I/O boundary, so
    interleaving between concurrent callers is observable.
    """

    def __init__(self):
        self.tenants: dict[str, Tenant] = {}
        self.services: dict[str, Service] = {}
        self.schedules: list[Schedule] = []
        self.exceptions: list[ScheduleException] = []
        self.bookings: dict[str, Booking] = {}
        self.customers: dict[str, Customer] = {}

    # seeding helpers

    def add_tenant(self, tenant: Tenant) -> Tenant:
        self.tenants[tenant.id] = tenant
        return tenant

    def add_service(self, service: Service) -> Service:
        self.services[service.id] = service
        return service

    def add_schedule(self, schedule: Schedule) -> Schedule:
        self.schedules.append(schedule)
        return schedule

    def add_exception(self, exception: ScheduleException) -> ScheduleException:
        self.exceptions.append(exception)
        return exception

    def add_booking(self, booking: Booking) -> Booking:
        self.bookings[booking.id] = booking
        return booking

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    # port

    async def get_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        await asyncio.sleep(0)
        tenant = self.tenants.get(tenant_id)
        return replace(tenant) if tenant else None

    async def get_service_by_id(self, service_id: str) -> Service | None:
        await asyncio.sleep(0)
        service = self.services.get(service_id)
        return replace(service) if service else None

    async def get_tenant_schedules_for_date(self, tenant_id: str, day: date) -> list[Schedule]:
        await asyncio.sleep(0)
        return [
            replace(row)
            for row in self.schedules
            if row.tenant_id == tenant_id and row.applies_to(day)
        ]

    async def get_schedule_exceptions_by_date(
        self, tenant_id: str, day: date
    ) -> list[ScheduleException]:
        await asyncio.sleep(0)
        return [
            replace(row)
            for row in self.exceptions
            if row.tenant_id == tenant_id and row.exception_date == day
        ]

    async def get_bookings_by_date(
        self, tenant_id: str, day: date, zone: tzinfo = timezone.utc
    ) -> list[Booking]:
        await asyncio.sleep(0)
        start, end = local_day_bounds(day, zone)
        return [
            replace(b)
            for b in self.bookings.values()
            if b.tenant_id == tenant_id and start <= b.start_time <= end
        ]

    async def get_booking_by_id(self, booking_id: str) -> Booking | None:
        await asyncio.sleep(0)
        booking = self.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def create_booking(self, booking: NewBooking) -> Booking:
        await asyncio.sleep(0)
        if booking.tenant_id not in self.tenants:
            raise RepositoryFailure(f"Error creating booking: unknown tenant {booking.tenant_id}")
        now = utc_now()
        row = Booking(
            id=str(uuid.uuid4()),
            tenant_id=booking.tenant_id,
            service_id=booking.service_id,
            customer_id=booking.customer_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_intent_id=booking.payment_intent_id,
            management_token=booking.management_token,
            created_at=now,
            updated_at=now,
        )
        self.bookings[row.id] = row
        return replace(row)

    async def get_pending_reminders(self, now: datetime, until: datetime) -> list[Booking]:
        await asyncio.sleep(0)
        rows = [
            replace(b)
            for b in self.bookings.values()
            if b.status == BookingStatus.CONFIRMED
            and b.reminder_sent_at is None
            and now <= b.start_time <= until
        ]
        rows.sort(key=lambda b: b.start_time)
        return rows

    async def update_booking(self, booking_id: str, changes: dict[str, Any]) -> Booking:
        await asyncio.sleep(0)
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise RepositoryFailure(f"Error updating booking: {booking_id} not found")
        unknown = set(changes) - _BOOKING_FIELDS
        if unknown:
            raise RepositoryFailure(f"Error updating booking: unknown fields {sorted(unknown)}")
        updated = replace(booking, **{**changes, "updated_at": utc_now()})
        self.bookings[booking_id] = updated
        return replace(updated)

    async def get_customer_email(self, customer_id: str) -> str | None:
        await asyncio.sleep(0)
        customer = self.customers.get(customer_id)
        return customer.email if customer else None

    async def get_customer_telegram_id(self, customer_id: str) -> str | None:
        await asyncio.sleep(0)
        customer = self.customers.get(customer_id)
        return customer.telegram_chat_id if customer else None

    async def link_telegram_chat(self, identifier: str, chat_id: str) -> str | None:
        await asyncio.sleep(0)
        for tenant in self.tenants.values():
            if tenant.slug == identifier:
                tenant.telegram_chat_id = chat_id
                return "tenant"
        for customer in self.customers.values():
            if customer.email and customer.email == identifier:
                customer.telegram_chat_id = chat_id
                return "customer"
        return None
