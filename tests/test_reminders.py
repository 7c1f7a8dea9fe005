import asyncio
from datetime import datetime, timedelta, timezone

from slotbook.domain import Booking, BookingStatus
from slotbook.errors import RepositoryFailure
from slotbook.reminders import SendBookingReminders, render_reminder_email, render_reminder_message

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _confirmed(repository, booking_id: str, hours_ahead: float, **extra) -> Booking:
    start = NOW + timedelta(hours=hours_ahead)
    return repository.add_booking(
        Booking(
            id=booking_id,
            tenant_id=extra.pop("tenant_id", "tenant-1"),
            service_id="service-1",
            customer_id=extra.pop("customer_id", "customer-1"),
            start_time=start,
            end_time=start + timedelta(hours=1),
            status=extra.pop("status", BookingStatus.CONFIRMED),
            **extra,
        )
    )


def _run(repository, email_sender, message_sender, clock):
    use_case = SendBookingReminders(repository, email_sender, message_sender, clock=clock)
    return asyncio.run(use_case.execute())


def test_reminds_booking_inside_window(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-1", 23)
    report = _run(repository, email_sender, message_sender, clock)

    assert report.reminded == 1
    assert report.deliveries == 2
    assert repository.bookings["b-1"].reminder_sent_at == NOW
    assert email_sender.sent[0][0] == "ana@example.com"
    assert email_sender.sent[0][1] == "Reminder: Booking for Corte"
    assert "Corte" in email_sender.sent[0][2]
    chat_id, text = message_sender.sent[0]
    assert chat_id == "ana-chat"
    assert "2026-03-03 at 07:00" in text


def test_window_boundary_is_inclusive(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-edge", 24)
    _confirmed(repository, "b-late", 25)
    report = _run(repository, email_sender, message_sender, clock)

    assert report.scanned == 2
    assert report.reminded_ids == ["b-edge"]
    assert report.skipped == 1
    assert repository.bookings["b-late"].reminder_sent_at is None


def test_bookings_beyond_lookahead_are_not_scanned(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-far", 50)
    report = _run(repository, email_sender, message_sender, clock)
    assert report.scanned == 0


def test_only_confirmed_bookings_are_reminded(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-pending", 5, status=BookingStatus.PENDING)
    _confirmed(repository, "b-cancelled", 5, status=BookingStatus.CANCELLED)
    report = _run(repository, email_sender, message_sender, clock)
    assert report.scanned == 0
    assert email_sender.sent == []


def test_reminder_is_sent_at_most_once(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-1", 10)
    _run(repository, email_sender, message_sender, clock)
    second = _run(repository, email_sender, message_sender, clock)

    assert second.scanned == 0
    assert len(email_sender.sent) == 1
    assert len(message_sender.sent) == 1


def test_delivery_failure_still_marks_booking(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-1", 10)
    email_sender.fail = True
    report = _run(repository, email_sender, message_sender, clock)

    assert report.reminded == 1
    assert report.deliveries == 1
    assert repository.bookings["b-1"].reminder_sent_at == NOW
    assert len(message_sender.sent) == 1


def test_all_deliveries_failing_still_marks_booking(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-1", 10)
    email_sender.fail = True
    message_sender.fail = True
    report = _run(repository, email_sender, message_sender, clock)

    assert report.deliveries == 0
    assert repository.bookings["b-1"].reminder_sent_at == NOW


def test_channel_toggles(repository, email_sender, message_sender, clock):
    repository.tenants["tenant-1"].notify_email_reminders = False
    _confirmed(repository, "b-1", 10)
    _run(repository, email_sender, message_sender, clock)

    assert email_sender.sent == []
    assert len(message_sender.sent) == 1


def test_both_channels_off_still_marks(repository, email_sender, message_sender, clock):
    repository.tenants["tenant-1"].notify_email_reminders = False
    repository.tenants["tenant-1"].notify_telegram_reminders = False
    _confirmed(repository, "b-1", 10)
    report = _run(repository, email_sender, message_sender, clock)

    assert report.reminded == 1
    assert email_sender.sent == [] and message_sender.sent == []
    assert repository.bookings["b-1"].reminder_sent_at == NOW


def test_missing_contact_skips_that_channel(repository, email_sender, message_sender, clock):
    repository.customers["customer-1"].telegram_chat_id = None
    _confirmed(repository, "b-1", 10)
    report = _run(repository, email_sender, message_sender, clock)

    assert report.deliveries == 1
    assert message_sender.sent == []


def test_missing_tenant_is_skipped_without_marking(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-orphan", 10, tenant_id="ghost")
    report = _run(repository, email_sender, message_sender, clock)

    assert report.skipped == 1
    assert repository.bookings["b-orphan"].reminder_sent_at is None


def test_custom_reminder_hours(repository, email_sender, message_sender, clock):
    repository.tenants["tenant-1"].reminder_hours_prior = 2
    _confirmed(repository, "b-soon", 1.5)
    _confirmed(repository, "b-later", 3)
    report = _run(repository, email_sender, message_sender, clock)
    assert report.reminded_ids == ["b-soon"]


def test_repository_failure_on_one_booking_does_not_stop_batch(
    repository, email_sender, message_sender, clock
):
    _confirmed(repository, "b-1", 5)
    _confirmed(repository, "b-2", 6)
    real_update = repository.update_booking

    async def flaky(booking_id, changes):
        if booking_id == "b-1":
            raise RepositoryFailure("Error updating booking: locked")
        return await real_update(booking_id, changes)

    repository.update_booking = flaky
    report = _run(repository, email_sender, message_sender, clock)

    assert report.failed == 1
    assert report.reminded_ids == ["b-2"]
    assert repository.bookings["b-2"].reminder_sent_at == NOW


def test_custom_template_and_message_rendering(repository):
    tenant = repository.tenants["tenant-1"]
    assert "<strong>Corte</strong>" in render_reminder_email(tenant, "Corte")

    tenant.reminder_template_body = "<p>See you for {{serviceName}}!</p>"
    assert render_reminder_email(tenant, "Corte") == "<p>See you for Corte!</p>"

    text = render_reminder_message("Corte", datetime(2026, 3, 3, 9, 5))
    assert "<b>Corte</b>" in text
    assert "2026-03-03 at 09:05" in text


def test_contact_lookup_failure_creates_no_pending_sends(repository, email_sender, message_sender, clock):
    _confirmed(repository, "b-1", 10)
    started = []
    real_send = email_sender.send_email

    def counting_send(to, subject, html_body):
        started.append(to)
        return real_send(to, subject, html_body)

    async def broken_lookup(customer_id):
        raise RepositoryFailure("Error fetching customer: timeout")

    email_sender.send_email = counting_send
    repository.get_customer_telegram_id = broken_lookup
    report = _run(repository, email_sender, message_sender, clock)

    assert report.failed == 1
    assert started == []
    assert repository.bookings["b-1"].reminder_sent_at is None
