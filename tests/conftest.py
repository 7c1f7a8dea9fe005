from datetime import datetime, timezone

import pytest

from slotbook.domain import Schedule, Service, Tenant
from slotbook.errors import DeliveryFailure
from slotbook.memory_repository import Customer, InMemoryBookingRepository
from slotbook.ports import EmailSender, MessageSender

# Monday; the default booking day in tests is Wednesday 2026-03-04.
FIXED_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise DeliveryFailure("email", "smtp down")
        self.sent.append((to, subject, html_body))


class RecordingMessageSender(MessageSender):
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.fail:
            raise DeliveryFailure("telegram", "bot blocked")
        self.sent.append((chat_id, text))


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def repository():
    repo = InMemoryBookingRepository()
    repo.add_tenant(
        Tenant(
            id="tenant-1",
            name="Studio Uno",
            slug="studio-uno",
            slot_interval_minutes=30,
            min_booking_notice_hours=2,
            max_booking_notice_days=60,
            reminder_hours_prior=24,
            telegram_chat_id="owner-chat",
        )
    )
    repo.add_service(
        Service(
            id="service-1",
            tenant_id="tenant-1",
            duration_minutes=60,
            price=30,
            name_translatable={"es": "Corte", "en": "Haircut"},
        )
    )
    # Wednesday
    repo.add_schedule(
        Schedule(id="sched-wed", tenant_id="tenant-1", day_of_week=3, open_time="09:00", close_time="17:00")
    )
    repo.add_customer(
        Customer(
            id="customer-1",
            tenant_id="tenant-1",
            name="Ana",
            email="ana@example.com",
            telegram_chat_id="ana-chat",
        )
    )
    return repo


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def message_sender():
    return RecordingMessageSender()
