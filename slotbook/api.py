import secrets
from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from .container import BookingServices
from .errors import BookingAlreadyCancelled, NotFound, RepositoryFailure, SlotUnavailable
from .schemas import (
    AvailabilityOut,
    BookingCreate,
    BookingOut,
    BookingStatusUpdate,
    CancelRequest,
    ReminderReportOut,
    SlotOut,
    TelegramWebhookOut,
)

public_router = APIRouter(prefix="/public", tags=["public"])
cron_router = APIRouter(prefix="/api/cron", tags=["cron"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])
webhook_router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = structlog.get_logger("slotbook.api")


def get_services(request: Request) -> BookingServices:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
    return container


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (SlotUnavailable, BookingAlreadyCancelled)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, RepositoryFailure):
        logger.error("repository_failure", error=str(exc))
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _bearer_matches(authorization: Optional[str], secret: str) -> bool:
    if not secret:
        return False
    return secrets.compare_digest((authorization or "").encode(), f"Bearer {secret}".encode())


@public_router.get("/availability", response_model=AvailabilityOut)
async def get_availability(
    tenant_id: str = Query(min_length=1),
    service_id: str = Query(min_length=1),
    day: date = Query(),
    services: BookingServices = Depends(get_services),
):
    try:
        slots = await services.check_availability.execute(tenant_id, service_id, day)
    except (NotFound, RepositoryFailure, ValueError) as exc:
        raise _http_error(exc)
    return AvailabilityOut(
        tenant_id=tenant_id,
        service_id=service_id,
        day=day,
        slots=[SlotOut.from_slot(s) for s in slots],
    )


@public_router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    services: BookingServices = Depends(get_services),
):
    try:
        booking = await services.create_booking.execute(
            payload.tenant_id,
            payload.service_id,
            payload.customer_id,
            payload.start_time,
        )
    except (NotFound, SlotUnavailable, RepositoryFailure, ValueError) as exc:
        raise _http_error(exc)

    try:
        await services.notify_booking_created.execute(booking)
    except RepositoryFailure as exc:
        logger.warning("confirmation_mark_failed", booking_id=booking.id, error=str(exc))
    return BookingOut.from_booking(booking, include_token=True)


@public_router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: str,
    payload: CancelRequest,
    services: BookingServices = Depends(get_services),
):
    try:
        booking = await services.cancel_booking.execute(booking_id, payload.token)
    except (NotFound, BookingAlreadyCancelled, RepositoryFailure, ValueError) as exc:
        raise _http_error(exc)
    return BookingOut.from_booking(booking)


@cron_router.post("/reminders", response_model=ReminderReportOut)
async def run_reminders(
    authorization: Optional[str] = Header(default=None),
    services: BookingServices = Depends(get_services),
):
    if not _bearer_matches(authorization, services.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        report = await services.send_reminders.execute()
    except RepositoryFailure as exc:
        raise _http_error(exc)
    return ReminderReportOut(**report.as_dict())


@admin_router.post("/tenants/{tenant_id}/bookings/{booking_id}/status", response_model=BookingOut)
async def update_booking_status(
    tenant_id: str,
    booking_id: str,
    payload: BookingStatusUpdate,
    authorization: Optional[str] = Header(default=None),
    services: BookingServices = Depends(get_services),
):
    if not _bearer_matches(authorization, services.admin_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        booking = await services.update_booking_status.execute(tenant_id, booking_id, payload.status)
    except (NotFound, RepositoryFailure, ValueError) as exc:
        raise _http_error(exc)
    return BookingOut.from_booking(booking)


@webhook_router.post("/telegram", response_model=TelegramWebhookOut)
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    services: BookingServices = Depends(get_services),
):
    expected = services.telegram_webhook_secret
    if expected and not secrets.compare_digest(
        (x_telegram_bot_api_secret_token or "").encode(), expected.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        update = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(update, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid update")
    try:
        result = await services.pair_telegram_chat.execute(update)
    except RepositoryFailure as exc:
        raise _http_error(exc)
    return TelegramWebhookOut(result=result)
