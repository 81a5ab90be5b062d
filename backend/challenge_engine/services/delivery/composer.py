"""
PCN Challenge Engine - Delivery Composer

Builds the notification email that carries a rendered challenge letter.
Pure templating - sending is done by the email collaborator.
"""
import html
from typing import Optional

from ...models.ssot import NotificationMessage


SIGN_OFF = "Parking Ticket Pal Team"


def attachment_filename(pcn_number: str) -> str:
    return f"challenge-letter-{pcn_number}.pdf"


class DeliveryComposer:
    """Compose NotificationMessage payloads for challenge letters."""

    def __init__(self, sign_off: str = SIGN_OFF):
        self.sign_off = sign_off

    def compose(
        self,
        document_ref: str,
        ticket_id: str,
        recipient_name: str,
        pcn_number: str,
        issuer: Optional[str],
        recipient_email: Optional[str] = None,
    ) -> NotificationMessage:
        issuer_name = issuer or "the issuing authority"
        name = recipient_name or "there"
        subject = f"Your challenge letter for PCN {pcn_number}"

        paragraphs = [
            f"Your challenge letter for Penalty Charge Notice {pcn_number} issued by "
            f"{issuer_name} is attached to this email as a PDF.",
            f"Please read it carefully, then send it to {issuer_name} by post or through "
            "their online challenge service before the deadline on your notice. "
            "You can edit the PDF if anything needs correcting.",
            "Keep a copy of the letter and any proof of sending for your records.",
        ]

        text_body = "\n\n".join(
            [f"Hi {name},", *paragraphs, f"Best regards,\n\n{self.sign_off}"]
        )
        html_body = "".join(
            [f"<p>Hi {html.escape(name)},</p>"]
            + [f"<p>{html.escape(p)}</p>" for p in paragraphs]
            + [f"<p>Best regards,<br/><br/>{html.escape(self.sign_off)}</p>"]
        )

        return NotificationMessage(
            ticket_id=ticket_id,
            to_email=recipient_email,
            recipient_name=recipient_name,
            subject=subject,
            text_body=text_body,
            html_body=html_body,
            attachment_ref=document_ref,
            attachment_filename=attachment_filename(pcn_number),
        )
