from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger("slotbook.domain")

DEFAULT_SLOT_INTERVAL_MINUTES = 30
DEFAULT_MIN_BOOKING_NOTICE_HOURS = 2
DEFAULT_MAX_BOOKING_NOTICE_DAYS = 60
DEFAULT_REMINDER_HOURS_PRIOR = 24
DEFAULT_LANGUAGE = "es"
DEFAULT_TIMEZONE = "UTC"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID_ONLINE = "paid_online"
    PAID_LOCAL = "paid_local"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_clock(value: str) -> time:
    """Parse a tenant wall-clock string such as ``"09:30"``."""
    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid HH:MM time: {value!r}")
    return time(int(parts[0]), int(parts[1]))


def day_of_week(day: date) -> int:
    # 0=Sunday ... 6=Saturday
    return day.isoweekday() % 7


def local_day_bounds(day: date, zone: tzinfo) -> tuple[datetime, datetime]:
    """First and last instant (inclusive) of ``day`` in ``zone``, as UTC."""
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day, time.max, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def resolve_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo((name or DEFAULT_TIMEZONE).strip() or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("invalid_timezone", timezone=name, fallback=DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


@dataclass
class Tenant:
    id: str
    name: str
    slug: str
    preferred_currency: str = "EUR"
    default_language: str = DEFAULT_LANGUAGE
    slot_interval_minutes: int | None = None
    min_booking_notice_hours: int | None = None
    max_booking_notice_days: int | None = None
    reminder_hours_prior: int | None = None
    notify_email_reminders: bool | None = None
    notify_telegram_reminders: bool | None = None
    notify_email_confirmations: bool | None = None
    notify_telegram_confirmations: bool | None = None
    reminder_template_body: str | None = None
    telegram_chat_id: str | None = None
    payment_account_id: str | None = None
    timezone: str = DEFAULT_TIMEZONE


@dataclass
class Service:
    id: str
    tenant_id: str
    duration_minutes: int
    price: float = 0
    currency: str = "EUR"
    name_translatable: dict[str, str] = field(default_factory=dict)

    def display_name(self, language: str | None = None) -> str:
        names = self.name_translatable or {}
        if language and names.get(language):
            return names[language]
        for value in names.values():
            if value:
                return value
        return "Service"


@dataclass
class Schedule:
    id: str
    tenant_id: str
    day_of_week: int
    open_time: str
    close_time: str
    valid_from: date | None = None
    valid_to: date | None = None

    def applies_to(self, day: date) -> bool:
        if self.day_of_week != day_of_week(day):
            return False
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_to is not None and day > self.valid_to:
            return False
        return True


@dataclass
class ScheduleException:
    id: str
    tenant_id: str
    exception_date: date
    is_closed: bool = False
    open_time: str | None = None
    close_time: str | None = None


@dataclass
class Booking:
    id: str
    tenant_id: str
    service_id: str
    customer_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_intent_id: str | None = None
    confirmation_sent_at: datetime | None = None
    reminder_sent_at: datetime | None = None
    management_token: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class NewBooking:
    """A booking that has not been persisted yet (no id, no timestamps)."""

    tenant_id: str
    service_id: str
    customer_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_intent_id: str | None = None
    management_token: str | None = None


@dataclass
class TimeSlot:
    start_time: datetime
    end_time: datetime
    available: bool = True


@dataclass(frozen=True)
class BookingPolicy:
    interval_minutes: int = DEFAULT_SLOT_INTERVAL_MINUTES
    min_notice_hours: int = DEFAULT_MIN_BOOKING_NOTICE_HOURS
    max_notice_days: int = DEFAULT_MAX_BOOKING_NOTICE_DAYS
    reminder_hours_prior: int = DEFAULT_REMINDER_HOURS_PRIOR
    timezone: str = DEFAULT_TIMEZONE

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "BookingPolicy":
        # 0 or negative interval/reminder values fall back to the default,
        # notice windows only when unset.
        interval = int(tenant.slot_interval_minutes or 0)
        reminder = int(tenant.reminder_hours_prior or 0)
        return cls(
            interval_minutes=interval if interval > 0 else DEFAULT_SLOT_INTERVAL_MINUTES,
            min_notice_hours=(
                DEFAULT_MIN_BOOKING_NOTICE_HOURS
                if tenant.min_booking_notice_hours is None
                else int(tenant.min_booking_notice_hours)
            ),
            max_notice_days=(
                DEFAULT_MAX_BOOKING_NOTICE_DAYS
                if tenant.max_booking_notice_days is None
                else int(tenant.max_booking_notice_days)
            ),
            reminder_hours_prior=reminder if reminder > 0 else DEFAULT_REMINDER_HOURS_PRIOR,
            timezone=tenant.timezone or DEFAULT_TIMEZONE,
        )

    @property
    def zone(self) -> ZoneInfo:
        return resolve_zone(self.timezone)


def toggle_enabled(value: bool | None) -> bool:
    """Notification toggles are opt-out: only an explicit ``False`` disables."""
    return value is not False
