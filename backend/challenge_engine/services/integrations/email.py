"""
PCN Challenge Engine - SendGrid Email Sender

Implements EmailSender against the SendGrid v3 mail/send API.
The PDF attachment is read from document storage and base64 encoded.
"""
from __future__ import annotations
import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import requests

from ...models.ssot import NotificationMessage
from .base import DocumentStorage

logger = logging.getLogger(__name__)


SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridEmailSender:
    def __init__(
        self,
        api_key: str,
        from_email: str,
        storage: DocumentStorage,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.storage = storage
        self.session = session or requests.Session()
        self.timeout = timeout

    def build_payload(self, message: NotificationMessage, attachment: bytes) -> Dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": message.to_email, "name": message.recipient_name}]}],
            "from": {"email": self.from_email},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text_body},
                {"type": "text/html", "value": message.html_body},
            ],
            "attachments": [{
                "content": base64.b64encode(attachment).decode("ascii"),
                "type": "application/pdf",
                "filename": message.attachment_filename,
                "disposition": "attachment",
            }],
        }

    async def send(self, message: NotificationMessage) -> None:
        if not message.to_email:
            raise ValueError(f"No recipient email for ticket {message.ticket_id}")
        if not self.api_key:
            raise RuntimeError("SENDGRID_API_KEY is not configured")

        attachment = await self.storage.read(message.attachment_ref)
        payload = self.build_payload(message, attachment)
        await asyncio.to_thread(self._post, payload)
        logger.info(f"Sent challenge letter email for ticket {message.ticket_id}")

    def _post(self, payload: Dict[str, Any]) -> None:
        response = self.session.post(
            SENDGRID_SEND_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
