"""
Outbound notification adapters: Telegram Bot API and Resend e-mail.

Both run in mock mode when no credential is configured: the message is
logged instead of sent, so local development and tests never reach the
network.
"""

import httpx
import structlog

from .errors import DeliveryFailure
from .ports import EmailSender, MessageSender

logger = structlog.get_logger("slotbook.notifications")


class TelegramMessageSender(MessageSender):
    def __init__(
        self,
        bot_token: str = "",
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.bot_token = (bot_token or "").strip()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.client = client

    @property
    def mock_mode(self) -> bool:
        return not self.bot_token

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.mock_mode:
            logger.info("telegram_mock_send", chat_id=chat_id, text=text)
            return

        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        try:
            if self.client is not None:
                resp = await self.client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryFailure("telegram", str(exc)) from exc

        data = _json_or_empty(resp)
        if resp.status_code >= 400 or not data.get("ok", False):
            raise DeliveryFailure("telegram", str(data.get("description") or f"HTTP {resp.status_code}"))
        logger.info("telegram_sent", chat_id=chat_id)


class ResendEmailSender(EmailSender):
    def __init__(
        self,
        api_key: str = "",
        sender: str = "Booking SaaS <onboarding@resend.dev>",
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = (api_key or "").strip()
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self.client = client

    @property
    def mock_mode(self) -> bool:
        return not self.api_key

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        if self.mock_mode:
            logger.info("email_mock_send", to=to, subject=subject)
            return

        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html_body}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self.client is not None:
                resp = await self.client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryFailure("email", str(exc)) from exc

        if resp.status_code >= 400:
            data = _json_or_empty(resp)
            raise DeliveryFailure("email", str(data.get("message") or f"HTTP {resp.status_code}"))
        logger.info("email_sent", to=to, subject=subject)


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
