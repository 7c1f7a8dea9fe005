"""
Reminder dispatch.

Run periodically by an external scheduler (cron endpoint or
``scripts/send_reminders.py``). Each confirmed booking gets at most one
reminder pass: once a pass reaches the dispatch step, ``reminder_sent_at`` is
recorded whatever happened to the individual deliveries.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

import structlog

from .domain import Booking, BookingPolicy, Tenant, toggle_enabled, utc_now
from .errors import RepositoryFailure
from .ports import BookingRepository, EmailSender, MessageSender

logger = structlog.get_logger("slotbook.reminders")

DEFAULT_LOOKAHEAD_HOURS = 48
DEFAULT_REMINDER_TEMPLATE = (
    "<p>Reminder: Your booking for <strong>{{serviceName}}</strong> is coming up soon.</p>"
)


@dataclass
class ReminderRunReport:
    scanned: int = 0
    reminded: int = 0
    skipped: int = 0
    failed: int = 0
    deliveries: int = 0
    reminded_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "reminded": self.reminded,
            "skipped": self.skipped,
            "failed": self.failed,
            "deliveries": self.deliveries,
        }


def render_reminder_email(tenant: Tenant, service_name: str) -> str:
    template = tenant.reminder_template_body or DEFAULT_REMINDER_TEMPLATE
    return template.replace("{{serviceName}}", service_name)


def render_reminder_message(service_name: str, start_local: datetime) -> str:
    return (
        f"⏰ <b>Booking Reminder</b>\n\n"
        f"Your appointment for <b>{service_name}</b> is on "
        f"{start_local:%Y-%m-%d} at {start_local:%H:%M}."
    )


class SendBookingReminders:
    def __init__(
        self,
        repository: BookingRepository,
        email_sender: EmailSender,
        message_sender: MessageSender,
        clock: Callable[[], datetime] = utc_now,
        lookahead_hours: int = DEFAULT_LOOKAHEAD_HOURS,
    ):
        self.repository = repository
        self.email_sender = email_sender
        self.message_sender = message_sender
        self.clock = clock
        self.lookahead_hours = max(1, int(lookahead_hours))

    async def execute(self) -> ReminderRunReport:
        now = self.clock()
        until = now + timedelta(hours=self.lookahead_hours)
        pending = await self.repository.get_pending_reminders(now, until)

        report = ReminderRunReport(scanned=len(pending))
        for booking in pending:
            try:
                handled = await self._process(booking, now, report)
            except RepositoryFailure as exc:
                report.failed += 1
                logger.error("reminder_booking_failed", booking_id=booking.id, error=str(exc))
                continue
            if handled:
                report.reminded += 1
                report.reminded_ids.append(booking.id)
            else:
                report.skipped += 1

        logger.info("reminder_run_finished", **report.as_dict())
        return report

    async def _process(self, booking: Booking, now: datetime, report: ReminderRunReport) -> bool:
        tenant = await self.repository.get_tenant_by_id(booking.tenant_id)
        if tenant is None:
            logger.warning("reminder_tenant_missing", booking_id=booking.id, tenant_id=booking.tenant_id)
            return False

        policy = BookingPolicy.from_tenant(tenant)
        hours_until_start = (booking.start_time - now).total_seconds() / 3600
        if not (0 < hours_until_start <= policy.reminder_hours_prior):
            return False

        service = await self.repository.get_service_by_id(booking.service_id)
        service_name = service.display_name(tenant.default_language) if service else "Service"

        email_on = toggle_enabled(tenant.notify_email_reminders)
        telegram_on = toggle_enabled(tenant.notify_telegram_reminders)
        email = await self.repository.get_customer_email(booking.customer_id) if email_on else None
        chat_id = (
            await self.repository.get_customer_telegram_id(booking.customer_id) if telegram_on else None
        )

        jobs: list[tuple[str, Awaitable[None]]] = []
        if email_on:
            if email:
                jobs.append(
                    (
                        "email",
                        self.email_sender.send_email(
                            email,
                            f"Reminder: Booking for {service_name}",
                            render_reminder_email(tenant, service_name),
                        ),
                    )
                )
            else:
                logger.info("reminder_contact_missing", booking_id=booking.id, channel="email")

        if telegram_on:
            if chat_id:
                jobs.append(
                    (
                        "telegram",
                        self.message_sender.send_message(
                            chat_id,
                            render_reminder_message(
                                service_name, booking.start_time.astimezone(policy.zone)
                            ),
                        ),
                    )
                )
            else:
                logger.info("reminder_contact_missing", booking_id=booking.id, channel="telegram")

        if jobs:
            results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
            for (channel, _), result in zip(jobs, results):
                if isinstance(result, Exception):
                    logger.warning(
                        "reminder_delivery_failed",
                        booking_id=booking.id,
                        channel=channel,
                        error=str(result),
                    )
                else:
                    report.deliveries += 1
                    logger.info("reminder_sent", booking_id=booking.id, channel=channel)

        await self.repository.update_booking(booking.id, {"reminder_sent_at": now})
        return True
