from __future__ import annotations

import logging
from typing import Iterable

import requests

from petdash.domain.errors import DeliveryError

log = logging.getLogger("petdash.campaigns")

RESEND_BATCH_URL = "https://api.resend.com/emails/batch"
WHATSAPP_URL = "https://graph.facebook.com/v19.0/{phone_id}/messages"

# provider limit per batch request
RESEND_BATCH_SIZE = 100


def _chunks(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ResendEmailClient:
    """Batch email delivery through the Resend HTTP API."""

    def __init__(self, api_key: str | None, timeout: float = 15):
        self.api_key = api_key
        self.timeout = timeout

    def _post(self, payload: list[dict]) -> dict:
        r = requests.post(
            RESEND_BATCH_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def send_batch(self, messages: list[dict]) -> int:
        """
        messages: [{from, to, subject, text}]
        Returns the number of messages accepted.
        """
        if not self.api_key:
            raise DeliveryError("RESEND_API_KEY no configurada.")
        sent = 0
        for chunk in _chunks(list(messages), RESEND_BATCH_SIZE):
            try:
                data = self._post(chunk)
            except (requests.RequestException, ValueError) as e:
                log.warning("email_batch_failed size=%s error=%s", len(chunk), e)
                raise DeliveryError(f"Error al enviar emails: {e}") from e
            sent += len(data.get("data") or chunk)
        log.info("email_batch_sent messages=%s", sent)
        return sent


class WhatsAppClient:
    """Text messages through the WhatsApp Cloud API, one request per recipient."""

    def __init__(self, token: str | None, phone_id: str | None, timeout: float = 15):
        self.token = token
        self.phone_id = phone_id
        self.timeout = timeout

    def _post(self, payload: dict) -> dict:
        r = requests.post(
            WHATSAPP_URL.format(phone_id=self.phone_id),
            json=payload,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def send_batch(self, messages: list[dict]) -> int:
        """
        messages: [{to, body}]
        """
        if not self.token or not self.phone_id:
            raise DeliveryError("WhatsApp no configurado.")
        sent = 0
        failed = 0
        for msg in messages:
            payload = {
                "messaging_product": "whatsapp",
                "to": msg["to"],
                "type": "text",
                "text": {"body": msg["body"]},
            }
            try:
                self._post(payload)
                sent += 1
            except (requests.RequestException, ValueError) as e:
                failed += 1
                log.warning("whatsapp_send_failed to=%s error=%s", msg["to"], e)
        if messages and sent == 0:
            raise DeliveryError(f"Ningún mensaje de WhatsApp pudo enviarse ({failed} fallidos).")
        log.info("whatsapp_batch_sent sent=%s failed=%s", sent, failed)
        return sent
