from abc import ABC, abstractmethod
from datetime import date, datetime, timezone, tzinfo
from typing import Any

from .domain import Booking, NewBooking, Schedule, ScheduleException, Service, Tenant


class BookingRepository(ABC):
    """Storage capability the booking core depends on.

    Every method is an async I/O boundary. Implementations raise
    ``RepositoryFailure`` for storage errors and return ``None`` for
    missing single rows.
    """

    @abstractmethod
    async def get_tenant_by_id(self, tenant_id: str) -> Tenant | None: ...

    @abstractmethod
    async def get_service_by_id(self, service_id: str) -> Service | None: ...

    @abstractmethod
    async def get_tenant_schedules_for_date(self, tenant_id: str, day: date) -> list[Schedule]:
        """Schedule rows for ``day``'s weekday whose validity range contains ``day``."""

    @abstractmethod
    async def get_schedule_exceptions_by_date(
        self, tenant_id: str, day: date
    ) -> list[ScheduleException]: ...

    @abstractmethod
    async def get_bookings_by_date(
        self, tenant_id: str, day: date, zone: tzinfo = timezone.utc
    ) -> list[Booking]:
        """Bookings of any status starting within ``day`` in ``zone`` (see ``local_day_bounds``)."""

    @abstractmethod
    async def get_booking_by_id(self, booking_id: str) -> Booking | None: ...

    @abstractmethod
    async def create_booking(self, booking: NewBooking) -> Booking: ...

    @abstractmethod
    async def get_pending_reminders(self, now: datetime, until: datetime) -> list[Booking]:
        """Confirmed bookings starting in ``[now, until]`` with no reminder recorded."""

    @abstractmethod
    async def update_booking(self, booking_id: str, changes: dict[str, Any]) -> Booking: ...

    @abstractmethod
    async def get_customer_email(self, customer_id: str) -> str | None: ...

    @abstractmethod
    async def get_customer_telegram_id(self, customer_id: str) -> str | None: ...

    @abstractmethod
    async def link_telegram_chat(self, identifier: str, chat_id: str) -> str | None:
        """Store ``chat_id`` on the tenant whose slug is ``identifier``, else on
        the customer with that email.

        Returns ``"tenant"`` or ``"customer"`` for the matched account, ``None``
        when nothing matched.
        """


class EmailSender(ABC):
    @abstractmethod
    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        """Raises ``DeliveryFailure`` when the provider rejects the message."""


class MessageSender(ABC):
    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> None:
        """Raises ``DeliveryFailure`` when the provider rejects the message."""
