import asyncio
from datetime import date, datetime, timezone

import pytest

from slotbook.availability import CheckAvailability
from slotbook.bookings import CancelBooking, CreateBooking, NotifyBookingCreated
from slotbook.domain import BookingStatus
from slotbook.errors import BookingAlreadyCancelled, NotFound

START = datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc)


def _book(repository, clock):
    use_case = CreateBooking(repository, CheckAvailability(repository, clock=clock))
    return asyncio.run(use_case.execute("tenant-1", "service-1", "customer-1", START))


def test_confirmation_goes_to_customer_and_owner(repository, email_sender, message_sender, clock):
    booking = _book(repository, clock)
    notify = NotifyBookingCreated(
        repository, email_sender, message_sender, site_url="https://book.example.com/", clock=clock
    )
    delivered = asyncio.run(notify.execute(booking))

    assert delivered == 3
    to, subject, body = email_sender.sent[0]
    assert to == "ana@example.com"
    assert subject == "Booking Confirmed"
    assert f"https://book.example.com/en/studio-uno/booking/{booking.id}/manage?token=" in body
    assert booking.management_token in body
    assert [chat for chat, _ in message_sender.sent] == ["ana-chat", "owner-chat"]
    assert repository.bookings[booking.id].confirmation_sent_at == clock()


def test_confirmation_toggles_off(repository, email_sender, message_sender, clock):
    repository.tenants["tenant-1"].notify_email_confirmations = False
    repository.tenants["tenant-1"].notify_telegram_confirmations = False
    booking = _book(repository, clock)
    delivered = asyncio.run(NotifyBookingCreated(repository, email_sender, message_sender, clock=clock).execute(booking))

    assert delivered == 0
    assert email_sender.sent == [] and message_sender.sent == []
    # Marked even though nothing was sent, as long as the customer has an email.
    assert repository.bookings[booking.id].confirmation_sent_at == clock()


def test_confirmation_failure_is_contained(repository, email_sender, message_sender, clock):
    booking = _book(repository, clock)
    email_sender.fail = True
    delivered = asyncio.run(NotifyBookingCreated(repository, email_sender, message_sender, clock=clock).execute(booking))
    assert delivered == 2


def test_cancel_with_token_frees_the_slot(repository, email_sender, message_sender, clock):
    booking = _book(repository, clock)
    cancel = CancelBooking(repository, email_sender, message_sender)
    cancelled = asyncio.run(cancel.execute(booking.id, booking.management_token))

    assert cancelled.status == BookingStatus.CANCELLED
    assert repository.bookings[booking.id].status == BookingStatus.CANCELLED
    assert email_sender.sent[-1][1] == "Booking Cancellation Confirmed"
    assert message_sender.sent[-1][0] == "owner-chat"
    assert "2026-03-04 10:00" in message_sender.sent[-1][1]

    slots = asyncio.run(
        CheckAvailability(repository, clock=clock).execute("tenant-1", "service-1", date(2026, 3, 4))
    )
    assert START in [s.start_time for s in slots]


def test_cancel_with_wrong_token_is_not_found(repository, email_sender, message_sender, clock):
    booking = _book(repository, clock)
    cancel = CancelBooking(repository, email_sender, message_sender)
    with pytest.raises(NotFound):
        asyncio.run(cancel.execute(booking.id, "guess"))
    with pytest.raises(NotFound):
        asyncio.run(cancel.execute("missing", booking.management_token))
    assert repository.bookings[booking.id].status == BookingStatus.PENDING


def test_cancel_twice_is_rejected(repository, email_sender, message_sender, clock):
    booking = _book(repository, clock)
    cancel = CancelBooking(repository, email_sender, message_sender)
    asyncio.run(cancel.execute(booking.id, booking.management_token))
    with pytest.raises(BookingAlreadyCancelled):
        asyncio.run(cancel.execute(booking.id, booking.management_token))
