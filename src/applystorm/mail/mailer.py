from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import requests

from applystorm.config import Settings
from applystorm.errors import ConfigurationError, DeliveryFailure
from applystorm.types import OutboundEmail

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    async def send(self, message: OutboundEmail) -> str | None: ...


class ResendMailer:
    """Sends one message per call through the Resend HTTP API; never retries."""

    def __init__(self, api_key: str, *, base_url: str = "https://api.resend.com", timeout_sec: float = 20):
        if not api_key:
            raise ConfigurationError("RESEND_API_KEY missing")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.session = requests.Session()

    async def send(self, message: OutboundEmail) -> str | None:
        return await asyncio.to_thread(self._post, message)

    def _post(self, message: OutboundEmail) -> str | None:
        try:
            response = self.session.post(
                f"{self.base_url}/emails",
                json=message.to_payload(),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise DeliveryFailure(f"Resend request failed: {exc}") from exc

        if not response.ok:
            raise DeliveryFailure(
                f"Resend failed {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        message_id = body.get("id") if isinstance(body, dict) else None
        logger.debug("Resend accepted message id=%s to=%s", message_id, message.to)
        return message_id


def build_mailer(settings: Settings) -> ResendMailer:
    return ResendMailer(
        settings.resend_api_key,
        base_url=settings.resend_base_url,
        timeout_sec=settings.mail_timeout_sec,
    )
