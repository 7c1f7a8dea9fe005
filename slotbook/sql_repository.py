from contextlib import asynccontextmanager
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from . import models
from .domain import (
    Booking,
    BookingStatus,
    NewBooking,
    PaymentStatus,
    Schedule,
    ScheduleException,
    Service,
    Tenant,
    day_of_week,
    local_day_bounds,
)
from .errors import RepositoryFailure
from .ports import BookingRepository

_UPDATABLE_BOOKING_FIELDS = {
    "status",
    "payment_status",
    "payment_intent_id",
    "confirmation_sent_at",
    "reminder_sent_at",
    "start_time",
    "end_time",
}


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_utc_naive(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_utc_naive(value)
    return value


def map_tenant(row: models.Tenant) -> Tenant:
    return Tenant(
        id=row.id,
        name=row.name,
        slug=row.slug,
        preferred_currency=row.preferred_currency,
        default_language=row.default_language,
        slot_interval_minutes=row.slot_interval_minutes,
        min_booking_notice_hours=row.min_booking_notice_hours,
        max_booking_notice_days=row.max_booking_notice_days,
        reminder_hours_prior=row.reminder_hours_prior,
        notify_email_reminders=row.notify_email_reminders,
        notify_telegram_reminders=row.notify_telegram_reminders,
        notify_email_confirmations=row.notify_email_confirmations,
        notify_telegram_confirmations=row.notify_telegram_confirmations,
        reminder_template_body=row.reminder_template_body,
        telegram_chat_id=row.telegram_chat_id,
        payment_account_id=row.payment_account_id,
        timezone=row.timezone or "UTC",
    )


def map_service(row: models.Service) -> Service:
    return Service(
        id=row.id,
        tenant_id=row.tenant_id,
        duration_minutes=int(row.duration_minutes),
        price=float(row.price or 0),
        currency=row.currency,
        name_translatable=dict(row.name_translatable or {}),
    )


def map_schedule(row: models.Schedule) -> Schedule:
    return Schedule(
        id=row.id,
        tenant_id=row.tenant_id,
        day_of_week=int(row.day_of_week),
        open_time=row.open_time,
        close_time=row.close_time,
        valid_from=row.valid_from,
        valid_to=row.valid_to,
    )


def map_exception(row: models.ScheduleException) -> ScheduleException:
    return ScheduleException(
        id=row.id,
        tenant_id=row.tenant_id,
        exception_date=row.exception_date,
        is_closed=bool(row.is_closed),
        open_time=row.open_time,
        close_time=row.close_time,
    )


def map_booking(row: models.Booking) -> Booking:
    return Booking(
        id=row.id,
        tenant_id=row.tenant_id,
        service_id=row.service_id,
        customer_id=row.customer_id,
        start_time=from_utc_naive(row.start_time),
        end_time=from_utc_naive(row.end_time),
        status=BookingStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        payment_intent_id=row.payment_intent_id,
        confirmation_sent_at=from_utc_naive(row.confirmation_sent_at),
        reminder_sent_at=from_utc_naive(row.reminder_sent_at),
        management_token=row.management_token,
        created_at=from_utc_naive(row.created_at),
        updated_at=from_utc_naive(row.updated_at),
    )


class SqlBookingRepository(BookingRepository):
    """SQLAlchemy-backed repository; one short-lived session per call."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self, action: str):
        try:
            async with self.session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            raise RepositoryFailure(f"Error {action}: {exc}") from exc

    async def get_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        async with self._session("fetching tenant") as db:
            row = await db.get(models.Tenant, tenant_id)
            return map_tenant(row) if row else None

    async def get_service_by_id(self, service_id: str) -> Service | None:
        async with self._session("fetching service") as db:
            row = await db.get(models.Service, service_id)
            return map_service(row) if row else None

    async def get_tenant_schedules_for_date(self, tenant_id: str, day: date) -> list[Schedule]:
        async with self._session("fetching schedules") as db:
            rows = (
                await db.execute(
                    select(models.Schedule).where(
                        models.Schedule.tenant_id == tenant_id,
                        models.Schedule.day_of_week == day_of_week(day),
                        or_(models.Schedule.valid_from.is_(None), models.Schedule.valid_from <= day),
                        or_(models.Schedule.valid_to.is_(None), models.Schedule.valid_to >= day),
                    )
                )
            ).scalars().all()
            return [map_schedule(r) for r in rows]

    async def get_schedule_exceptions_by_date(
        self, tenant_id: str, day: date
    ) -> list[ScheduleException]:
        async with self._session("fetching schedule exceptions") as db:
            rows = (
                await db.execute(
                    select(models.ScheduleException).where(
                        models.ScheduleException.tenant_id == tenant_id,
                        models.ScheduleException.exception_date == day,
                    )
                )
            ).scalars().all()
            return [map_exception(r) for r in rows]

    async def get_bookings_by_date(
        self, tenant_id: str, day: date, zone: tzinfo = timezone.utc
    ) -> list[Booking]:
        start, end = local_day_bounds(day, zone)
        async with self._session("fetching bookings") as db:
            rows = (
                await db.execute(
                    select(models.Booking)
                    .where(
                        models.Booking.tenant_id == tenant_id,
                        models.Booking.start_time >= to_utc_naive(start),
                        models.Booking.start_time <= to_utc_naive(end),
                    )
                    .order_by(models.Booking.start_time.asc())
                )
            ).scalars().all()
            return [map_booking(r) for r in rows]

    async def get_booking_by_id(self, booking_id: str) -> Booking | None:
        async with self._session("fetching booking") as db:
            row = await db.get(models.Booking, booking_id)
            return map_booking(row) if row else None

    async def create_booking(self, booking: NewBooking) -> Booking:
        async with self._session("creating booking") as db:
            row = models.Booking(
                tenant_id=booking.tenant_id,
                service_id=booking.service_id,
                customer_id=booking.customer_id,
                start_time=to_utc_naive(booking.start_time),
                end_time=to_utc_naive(booking.end_time),
                status=BookingStatus(booking.status).value,
                payment_status=PaymentStatus(booking.payment_status).value,
                payment_intent_id=booking.payment_intent_id,
                management_token=booking.management_token,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return map_booking(row)

    async def get_pending_reminders(self, now: datetime, until: datetime) -> list[Booking]:
        async with self._session("fetching pending reminders") as db:
            rows = (
                await db.execute(
                    select(models.Booking)
                    .where(
                        models.Booking.status == BookingStatus.CONFIRMED.value,
                        models.Booking.reminder_sent_at.is_(None),
                        models.Booking.start_time >= to_utc_naive(now),
                        models.Booking.start_time <= to_utc_naive(until),
                    )
                    .order_by(models.Booking.start_time.asc())
                )
            ).scalars().all()
            return [map_booking(r) for r in rows]

    async def update_booking(self, booking_id: str, changes: dict[str, Any]) -> Booking:
        unknown = set(changes) - _UPDATABLE_BOOKING_FIELDS
        if unknown:
            raise RepositoryFailure(f"Error updating booking: unknown fields {sorted(unknown)}")
        async with self._session("updating booking") as db:
            row = await db.get(models.Booking, booking_id)
            if row is None:
                raise RepositoryFailure(f"Error updating booking: {booking_id} not found")
            for key, value in changes.items():
                setattr(row, key, _to_column(value))
            await db.commit()
            await db.refresh(row)
            return map_booking(row)

    async def get_customer_email(self, customer_id: str) -> str | None:
        async with self._session("fetching customer") as db:
            row = await db.get(models.Customer, customer_id)
            return (row.email or None) if row else None

    async def get_customer_telegram_id(self, customer_id: str) -> str | None:
        async with self._session("fetching customer") as db:
            row = await db.get(models.Customer, customer_id)
            return (row.telegram_chat_id or None) if row else None

    async def link_telegram_chat(self, identifier: str, chat_id: str) -> str | None:
        async with self._session("linking telegram chat") as db:
            tenant = (
                await db.execute(select(models.Tenant).where(models.Tenant.slug == identifier).limit(1))
            ).scalar_one_or_none()
            if tenant is not None:
                tenant.telegram_chat_id = chat_id
                await db.commit()
                return "tenant"

            customer = (
                await db.execute(
                    select(models.Customer)
                    .where(models.Customer.email == identifier)
                    .order_by(models.Customer.id.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if customer is not None:
                customer.telegram_chat_id = chat_id
                await db.commit()
                return "customer"
            return None


async def seed_rows(session_factory: async_sessionmaker, rows: list[Any]) -> None:
    """Insert ORM rows in one transaction (fixtures, local setup scripts)."""
    async with session_factory() as db:
        db.add_all(rows)
        await db.commit()

