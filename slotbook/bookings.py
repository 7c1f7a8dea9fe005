import asyncio
import secrets
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from .availability import CheckAvailability
from .domain import (
    Booking,
    BookingPolicy,
    BookingStatus,
    NewBooking,
    PaymentStatus,
    toggle_enabled,
    utc_now,
)
from .errors import BookingAlreadyCancelled, NotFound, RepositoryFailure, SlotUnavailable
from .ports import BookingRepository, EmailSender, MessageSender

logger = structlog.get_logger("slotbook.bookings")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CreateBooking:
    """Reserve one slot after re-validating it against live availability.

    There is no lock around the re-check and the insert; the repository's
    insert semantics are the only remaining guard against two interleaved
    requests for the same slot.
    """

    def __init__(self, repository: BookingRepository, check_availability: CheckAvailability):
        self.repository = repository
        self.check_availability = check_availability

    async def execute(
        self,
        tenant_id: str,
        service_id: str,
        customer_id: str,
        requested_start_time: datetime,
    ) -> Booking:
        requested = _as_utc(requested_start_time)
        slots = await self.check_availability.execute(tenant_id, service_id, requested)
        target = next((s for s in slots if s.start_time == requested), None)
        if target is None or not target.available:
            logger.info(
                "slot_unavailable",
                tenant_id=tenant_id,
                service_id=service_id,
                start_time=requested.isoformat(),
            )
            raise SlotUnavailable()

        booking = await self.repository.create_booking(
            NewBooking(
                tenant_id=tenant_id,
                service_id=service_id,
                customer_id=customer_id,
                start_time=target.start_time,
                end_time=target.end_time,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                payment_intent_id=None,
                management_token=secrets.token_urlsafe(24),
            )
        )
        logger.info(
            "booking_created",
            booking_id=booking.id,
            tenant_id=tenant_id,
            service_id=service_id,
            start_time=booking.start_time.isoformat(),
        )
        return booking


async def _settle(jobs: list[tuple[str, Awaitable[None]]], booking_id: str) -> int:
    """Run notification jobs concurrently; failures are logged, never raised."""
    if not jobs:
        return 0
    results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
    delivered = 0
    for (label, _), result in zip(jobs, results):
        if isinstance(result, Exception):
            logger.warning(
                "notification_failed",
                booking_id=booking_id,
                notification=label,
                error=str(result),
            )
        else:
            delivered += 1
    return delivered


class NotifyBookingCreated:
    """Confirmation notifications for a freshly created booking."""

    def __init__(
        self,
        repository: BookingRepository,
        email_sender: EmailSender,
        message_sender: MessageSender,
        site_url: str = "",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.email_sender = email_sender
        self.message_sender = message_sender
        self.site_url = site_url.rstrip("/")
        self.clock = clock

    def manage_url(self, tenant_slug: str, booking: Booking) -> str:
        return (
            f"{self.site_url}/en/{tenant_slug}/booking/{booking.id}/manage"
            f"?token={booking.management_token or ''}"
        )

    async def execute(self, booking: Booking) -> int:
        tenant, service = await asyncio.gather(
            self.repository.get_tenant_by_id(booking.tenant_id),
            self.repository.get_service_by_id(booking.service_id),
        )
        if tenant is None or service is None:
            logger.warning("confirmation_context_missing", booking_id=booking.id)
            return 0

        email, chat_id = await asyncio.gather(
            self.repository.get_customer_email(booking.customer_id),
            self.repository.get_customer_telegram_id(booking.customer_id),
        )
        service_name = service.display_name(tenant.default_language)
        jobs: list[tuple[str, Awaitable[None]]] = []

        if email and toggle_enabled(tenant.notify_email_confirmations):
            jobs.append(
                (
                    "email_confirmation",
                    self.email_sender.send_email(
                        email,
                        "Booking Confirmed",
                        f"<p>Your booking for <strong>{service_name}</strong> has been confirmed.</p>"
                        f"<p>If you need to cancel or manage this appointment, please visit: <br/>"
                        f'<a href="{self.manage_url(tenant.slug, booking)}">Manage my booking</a></p>',
                    ),
                )
            )

        if toggle_enabled(tenant.notify_telegram_confirmations):
            if chat_id:
                jobs.append(
                    (
                        "telegram_customer_confirmation",
                        self.message_sender.send_message(
                            chat_id,
                            f"✅ <b>Booking Confirmed!</b>\n\n"
                            f"Your appointment for <b>{service_name}</b> is confirmed.",
                        ),
                    )
                )
            if tenant.telegram_chat_id:
                jobs.append(
                    (
                        "telegram_tenant_alert",
                        self.message_sender.send_message(
                            tenant.telegram_chat_id,
                            f"📅 <b>New Booking Received!</b>\n\n"
                            f"A new booking for <b>{service_name}</b> was just created.",
                        ),
                    )
                )

        delivered = await _settle(jobs, booking.id)

        # Recorded whenever the customer has an email, even with the toggle off.
        if email:
            await self.repository.update_booking(booking.id, {"confirmation_sent_at": self.clock()})
        return delivered


class CancelBooking:
    """Customer self-cancellation through the booking's management token."""

    def __init__(
        self,
        repository: BookingRepository,
        email_sender: EmailSender,
        message_sender: MessageSender,
    ):
        self.repository = repository
        self.email_sender = email_sender
        self.message_sender = message_sender

    async def execute(self, booking_id: str, management_token: str) -> Booking:
        booking = await self.repository.get_booking_by_id(booking_id)
        if (
            booking is None
            or not management_token
            or not booking.management_token
            or not secrets.compare_digest(booking.management_token, management_token)
        ):
            raise NotFound("Booking", booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingAlreadyCancelled(booking_id)

        cancelled = await self.repository.update_booking(
            booking_id, {"status": BookingStatus.CANCELLED}
        )
        logger.info("booking_cancelled", booking_id=booking_id, tenant_id=booking.tenant_id)
        try:
            await self._notify(cancelled)
        except RepositoryFailure as exc:
            logger.warning("cancellation_notify_skipped", booking_id=booking_id, error=str(exc))
        return cancelled

    async def _notify(self, booking: Booking) -> None:
        tenant, service, email = await asyncio.gather(
            self.repository.get_tenant_by_id(booking.tenant_id),
            self.repository.get_service_by_id(booking.service_id),
            self.repository.get_customer_email(booking.customer_id),
        )
        if tenant is None:
            return
        service_name = service.display_name(tenant.default_language) if service else "Service"
        when = booking.start_time.astimezone(BookingPolicy.from_tenant(tenant).zone)

        jobs: list[tuple[str, Awaitable[None]]] = []
        if tenant.telegram_chat_id and toggle_enabled(tenant.notify_telegram_confirmations):
            jobs.append(
                (
                    "telegram_tenant_cancellation",
                    self.message_sender.send_message(
                        tenant.telegram_chat_id,
                        f"❌ <b>Booking Cancelled by Customer</b>\n\n"
                        f"The booking for <b>{service_name}</b> on "
                        f"{when:%Y-%m-%d %H:%M} was cancelled.",
                    ),
                )
            )
        if email and toggle_enabled(tenant.notify_email_confirmations):
            jobs.append(
                (
                    "email_cancellation",
                    self.email_sender.send_email(
                        email,
                        "Booking Cancellation Confirmed",
                        f"<p>As requested, your booking for <strong>{service_name}</strong> "
                        f"has been successfully <strong>cancelled</strong>.</p>",
                    ),
                )
            )
        await _settle(jobs, booking.id)


class UpdateBookingStatus:
    """Business-side confirm or cancel of a booking, scoped to one tenant."""

    ALLOWED = (BookingStatus.CONFIRMED, BookingStatus.CANCELLED)

    def __init__(
        self,
        repository: BookingRepository,
        email_sender: EmailSender,
        message_sender: MessageSender,
    ):
        self.repository = repository
        self.email_sender = email_sender
        self.message_sender = message_sender

    async def execute(self, tenant_id: str, booking_id: str, new_status: BookingStatus | str) -> Booking:
        new_status = BookingStatus(new_status)
        if new_status not in self.ALLOWED:
            raise ValueError(f"Unsupported status change: {new_status.value}")

        booking = await self.repository.get_booking_by_id(booking_id)
        if booking is None or booking.tenant_id != tenant_id:
            raise NotFound("Booking", booking_id)

        updated = await self.repository.update_booking(booking_id, {"status": new_status})
        logger.info(
            "booking_status_updated",
            booking_id=booking_id,
            tenant_id=tenant_id,
            old_status=booking.status.value,
            status=new_status.value,
        )
        try:
            await self._notify(updated)
        except RepositoryFailure as exc:
            logger.warning("status_notify_skipped", booking_id=booking_id, error=str(exc))
        return updated

    async def _notify(self, booking: Booking) -> None:
        tenant, service, email, chat_id = await asyncio.gather(
            self.repository.get_tenant_by_id(booking.tenant_id),
            self.repository.get_service_by_id(booking.service_id),
            self.repository.get_customer_email(booking.customer_id),
            self.repository.get_customer_telegram_id(booking.customer_id),
        )
        if tenant is None:
            return
        service_name = service.display_name(tenant.default_language) if service else "Service"
        confirmed = booking.status == BookingStatus.CONFIRMED

        jobs: list[tuple[str, Awaitable[None]]] = []
        if email and toggle_enabled(tenant.notify_email_confirmations):
            if confirmed:
                subject = "Booking Confirmed"
                body = (
                    f"<p>Hello,</p><p>We are pleased to inform you that your booking for "
                    f"<strong>{service_name}</strong> has been <strong>confirmed</strong> by the business.</p>"
                )
            else:
                subject = "Booking Cancelled"
                body = (
                    f"<p>Hello,</p><p>We regret to inform you that your booking for "
                    f"<strong>{service_name}</strong> has been <strong>cancelled</strong> by the business.</p>"
                )
            jobs.append(("email_status", self.email_sender.send_email(email, subject, body)))

        if chat_id and toggle_enabled(tenant.notify_telegram_confirmations):
            if confirmed:
                text = (
                    f"✅ <b>Booking Confirmed!</b>\n\n"
                    f"Your appointment for <b>{service_name}</b> has been confirmed by the business."
                )
            else:
                text = (
                    f"❌ <b>Booking Cancelled</b>\n\n"
                    f"Your appointment for <b>{service_name}</b> has been cancelled by the business."
                )
            jobs.append(("telegram_status", self.message_sender.send_message(chat_id, text)))

        await _settle(jobs, booking.id)
