"""
Availability engine.

Turns a tenant's weekly schedule, date-specific exceptions and existing
bookings into the list of bookable slots for one service on one day.

Order of resolution:
    1. max-notice boundary (no queries past it)
    2. exceptions for the date (closed wins, custom hours replace the schedule)
    3. weekly schedule rows valid on the date (split shifts allowed)
    4. slot enumeration per block on the tenant's interval grid
    5. min-notice and booking-overlap filters
"""

import asyncio
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable

import structlog

from .domain import (
    Booking,
    BookingPolicy,
    BookingStatus,
    Schedule,
    ScheduleException,
    TimeSlot,
    parse_clock,
    utc_now,
)
from .errors import NotFound
from .ports import BookingRepository

logger = structlog.get_logger("slotbook.availability")

Block = tuple[str, str]


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def blocks_from_exceptions(exceptions: list[ScheduleException]) -> list[Block] | None:
    """Blocks for a day that has exceptions, or ``None`` when it has none.

    An empty list means the tenant is closed that day.
    """
    if not exceptions:
        return None
    if any(exc.is_closed for exc in exceptions):
        return []
    return [
        (exc.open_time, exc.close_time)
        for exc in exceptions
        if exc.open_time and exc.close_time
    ]


def blocks_from_schedules(schedules: list[Schedule]) -> list[Block]:
    return [(row.open_time, row.close_time) for row in schedules]


def generate_slots(
    day: date,
    open_time: str,
    close_time: str,
    interval_minutes: int,
    duration_minutes: int,
    zone: tzinfo,
) -> list[TimeSlot]:
    """Enumerate candidate slots of one block.

    Starts step by ``interval_minutes`` while each slot is ``duration_minutes``
    long; enumeration stops at the first slot that would end after closing.
    """
    step = timedelta(minutes=max(1, int(interval_minutes)))
    duration = timedelta(minutes=int(duration_minutes))
    # UTC arithmetic; slots keep their length across DST changes.
    cursor = datetime.combine(day, parse_clock(open_time), tzinfo=zone).astimezone(timezone.utc)
    closing = datetime.combine(day, parse_clock(close_time), tzinfo=zone).astimezone(timezone.utc)

    out: list[TimeSlot] = []
    while True:
        slot_end = cursor + duration
        if slot_end > closing:
            break
        out.append(TimeSlot(start_time=cursor, end_time=slot_end))
        cursor += step
    return out


def is_blocked(slot: TimeSlot, bookings: list[Booking]) -> bool:
    for booking in bookings:
        if booking.status == BookingStatus.CANCELLED:
            continue
        if overlaps(slot.start_time, slot.end_time, booking.start_time, booking.end_time):
            return True
    return False


def to_local_day(value: date | datetime, zone: tzinfo) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(zone).date()
    return value


class CheckAvailability:
    def __init__(
        self,
        repository: BookingRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.clock = clock

    async def execute(
        self,
        tenant_id: str,
        service_id: str,
        requested_date: date | datetime,
    ) -> list[TimeSlot]:
        tenant, service = await asyncio.gather(
            self.repository.get_tenant_by_id(tenant_id),
            self.repository.get_service_by_id(service_id),
        )
        if tenant is None:
            raise NotFound("Tenant", tenant_id)
        if service is None:
            raise NotFound("Service", service_id)

        policy = BookingPolicy.from_tenant(tenant)
        zone = policy.zone
        now = self.clock()
        day = to_local_day(requested_date, zone)

        last_bookable_day = now.astimezone(zone).date() + timedelta(days=policy.max_notice_days)
        if day > last_bookable_day:
            logger.debug("availability_beyond_max_notice", tenant_id=tenant_id, day=day.isoformat())
            return []

        exceptions = await self.repository.get_schedule_exceptions_by_date(tenant_id, day)
        blocks = blocks_from_exceptions(exceptions)
        if blocks is None:
            schedules = await self.repository.get_tenant_schedules_for_date(tenant_id, day)
            blocks = blocks_from_schedules(schedules)

        if not blocks:
            return []

        bookings = await self.repository.get_bookings_by_date(tenant_id, day, zone)

        earliest_start = now + timedelta(hours=policy.min_notice_hours)
        available: list[TimeSlot] = []
        for open_time, close_time in blocks:
            for slot in generate_slots(
                day,
                open_time,
                close_time,
                policy.interval_minutes,
                service.duration_minutes,
                zone,
            ):
                if slot.start_time < earliest_start:
                    continue
                if is_blocked(slot, bookings):
                    continue
                available.append(slot)

        available.sort(key=lambda s: s.start_time)
        logger.debug(
            "availability_computed",
            tenant_id=tenant_id,
            service_id=service_id,
            day=day.isoformat(),
            blocks=len(blocks),
            slots=len(available),
        )
        return available
