from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .availability import CheckAvailability
from .bookings import CancelBooking, CreateBooking, NotifyBookingCreated, UpdateBookingStatus
from .config import Settings, settings as default_settings
from .db import get_engine, get_session
from .domain import utc_now
from .notifications import ResendEmailSender, TelegramMessageSender
from .ports import BookingRepository, EmailSender, MessageSender
from .reminders import SendBookingReminders
from .sql_repository import SqlBookingRepository
from .telegram_pairing import PairTelegramChat


@dataclass
class BookingServices:
    """Use cases wired to one repository and one pair of notification senders."""

    repository: BookingRepository
    email_sender: EmailSender
    message_sender: MessageSender
    check_availability: CheckAvailability
    create_booking: CreateBooking
    notify_booking_created: NotifyBookingCreated
    cancel_booking: CancelBooking
    update_booking_status: UpdateBookingStatus
    send_reminders: SendBookingReminders
    pair_telegram_chat: PairTelegramChat
    cron_secret: str = ""
    admin_secret: str = ""
    telegram_webhook_secret: str = ""
    engine: object | None = None


def build_container(
    repository: BookingRepository,
    email_sender: EmailSender,
    message_sender: MessageSender,
    clock: Callable[[], datetime] = utc_now,
    site_url: str = "",
    cron_secret: str = "",
    admin_secret: str = "",
    telegram_webhook_secret: str = "",
    lookahead_hours: int = 48,
    engine: object | None = None,
) -> BookingServices:
    check = CheckAvailability(repository, clock=clock)
    return BookingServices(
        repository=repository,
        email_sender=email_sender,
        message_sender=message_sender,
        check_availability=check,
        create_booking=CreateBooking(repository, check),
        notify_booking_created=NotifyBookingCreated(
            repository, email_sender, message_sender, site_url=site_url, clock=clock
        ),
        cancel_booking=CancelBooking(repository, email_sender, message_sender),
        update_booking_status=UpdateBookingStatus(repository, email_sender, message_sender),
        send_reminders=SendBookingReminders(
            repository,
            email_sender,
            message_sender,
            clock=clock,
            lookahead_hours=lookahead_hours,
        ),
        pair_telegram_chat=PairTelegramChat(repository, message_sender),
        cron_secret=cron_secret,
        admin_secret=admin_secret,
        telegram_webhook_secret=telegram_webhook_secret,
        engine=engine,
    )


def from_settings(config: Settings | None = None) -> BookingServices:
    """Production wiring: SQL repository, Resend e-mail, Telegram Bot API."""
    config = config or default_settings
    engine = get_engine(config.DATABASE_URL)
    return build_container(
        repository=SqlBookingRepository(get_session(engine)),
        email_sender=ResendEmailSender(
            api_key=config.RESEND_API_KEY,
            sender=config.EMAIL_FROM,
            api_url=config.RESEND_API_URL,
            timeout=config.NOTIFICATION_TIMEOUT_SECONDS,
        ),
        message_sender=TelegramMessageSender(
            bot_token=config.TELEGRAM_BOT_TOKEN,
            api_base=config.TELEGRAM_API_BASE,
            timeout=config.NOTIFICATION_TIMEOUT_SECONDS,
        ),
        site_url=config.SITE_URL,
        cron_secret=config.CRON_SECRET,
        admin_secret=config.ADMIN_API_SECRET,
        telegram_webhook_secret=config.TELEGRAM_WEBHOOK_SECRET,
        lookahead_hours=config.REMINDER_LOOKAHEAD_HOURS,
        engine=engine,
    )
