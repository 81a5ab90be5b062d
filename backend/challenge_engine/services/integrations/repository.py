"""
PCN Challenge Engine - SQL Challenge Repository

SQLAlchemy implementation of ChallengeRepository. Every public method runs
its blocking session work in a worker thread and uses its own session.
"""
from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from ...models.db_models import TicketDB, VehicleDB, ChallengeLetterDB, CHALLENGED_STATUS
from ...models.ssot import (
    TicketFacts, SenderDetails, PostalAddress, IssuerType, ChallengeGround,
    LetterDraft, RenderedDocument
)
from .base import TicketRecord, StoredLetter

logger = logging.getLogger(__name__)


def _to_stored_letter(row: ChallengeLetterDB) -> StoredLetter:
    return StoredLetter(
        letter_id=row.id,
        ticket_id=row.ticket_id,
        body=row.body,
        grounds=[ChallengeGround(g) for g in (row.grounds or [])],
        facts_hash=row.facts_hash,
        document_ref=row.document_ref,
        page_count=row.page_count or 0,
        attempts=row.attempts or 0,
        generated_at=row.generated_at,
        is_active=bool(row.is_active),
    )


class SqlChallengeRepository:
    """Tickets, users and letter history backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # =========================================================================
    # TICKETS
    # =========================================================================

    async def load_ticket(self, ticket_id: str) -> Optional[TicketRecord]:
        return await asyncio.to_thread(self._load_ticket, ticket_id)

    def _load_ticket(self, ticket_id: str) -> Optional[TicketRecord]:
        db: Session = self.session_factory()
        try:
            ticket = db.query(TicketDB).filter(TicketDB.id == ticket_id).first()
            if ticket is None:
                return None
            vehicle: VehicleDB = ticket.vehicle
            user = vehicle.user

            issuer_type = ticket.issuer_type or IssuerType.COUNCIL
            manual = TicketFacts(
                pcn_number=ticket.pcn_number,
                issuer=ticket.issuer,
                issuer_type=issuer_type,
                contravention_code=ticket.contravention_code,
                location=ticket.location,
                issued_at=ticket.issued_at,
                amount_due=ticket.initial_amount,
            )
            sender = SenderDetails(
                full_name=user.name,
                address=PostalAddress(
                    line1=user.address_line1 or "",
                    city=user.city or "",
                    postcode=user.postcode or "",
                ),
                email=user.email,
                vehicle_registration=vehicle.registration_number,
            )
            return TicketRecord(
                ticket_id=ticket.id,
                user_id=user.id,
                manual_facts=manual,
                sender=sender,
                issuer_type=issuer_type,
                recipient_email=user.email,
                extracted_text=ticket.extracted_text,
                image_ref=ticket.image_ref,
            )
        finally:
            db.close()

    # =========================================================================
    # LETTERS
    # =========================================================================

    async def latest_letter(self, ticket_id: str) -> Optional[StoredLetter]:
        return await asyncio.to_thread(self._latest_letter, ticket_id)

    def _latest_letter(self, ticket_id: str) -> Optional[StoredLetter]:
        db: Session = self.session_factory()
        try:
            row = db.query(ChallengeLetterDB).filter(
                ChallengeLetterDB.ticket_id == ticket_id,
                ChallengeLetterDB.is_active == True,  # noqa: E712
            ).order_by(ChallengeLetterDB.generated_at.desc()).first()
            return _to_stored_letter(row) if row else None
        finally:
            db.close()

    async def list_letters(self, ticket_id: str) -> List[StoredLetter]:
        return await asyncio.to_thread(self._list_letters, ticket_id)

    def _list_letters(self, ticket_id: str) -> List[StoredLetter]:
        db: Session = self.session_factory()
        try:
            rows = db.query(ChallengeLetterDB).filter(
                ChallengeLetterDB.ticket_id == ticket_id
            ).order_by(ChallengeLetterDB.generated_at.desc()).all()
            return [_to_stored_letter(row) for row in rows]
        finally:
            db.close()

    async def record_challenge(
        self,
        ticket_id: str,
        draft: LetterDraft,
        document: RenderedDocument,
        document_ref: str,
        facts_hash: str,
        attempts: int,
    ) -> StoredLetter:
        return await asyncio.to_thread(
            self._record_challenge, ticket_id, draft, document, document_ref, facts_hash, attempts
        )

    def _record_challenge(
        self,
        ticket_id: str,
        draft: LetterDraft,
        document: RenderedDocument,
        document_ref: str,
        facts_hash: str,
        attempts: int,
    ) -> StoredLetter:
        """Deactivate prior letters, insert the new one and advance the ticket status in one commit."""
        db: Session = self.session_factory()
        try:
            ticket = db.query(TicketDB).filter(TicketDB.id == ticket_id).first()
            if ticket is None:
                raise LookupError(f"Ticket {ticket_id} not found")

            db.query(ChallengeLetterDB).filter(
                ChallengeLetterDB.ticket_id == ticket_id,
                ChallengeLetterDB.is_active == True,  # noqa: E712
            ).update({ChallengeLetterDB.is_active: False}, synchronize_session=False)

            # Stored naive UTC, matching datetime.utcnow column defaults
            generated_at = draft.generated_at.replace(tzinfo=None)
            row = ChallengeLetterDB(
                id=draft.letter_id,
                ticket_id=ticket_id,
                body=draft.body,
                grounds=[g.value for g in draft.grounds],
                facts_hash=facts_hash,
                document_ref=document_ref,
                page_count=document.page_count,
                attempts=attempts,
                is_active=True,
                generated_at=generated_at,
            )
            db.add(row)

            ticket.status = CHALLENGED_STATUS[ticket.issuer_type or IssuerType.COUNCIL]

            db.commit()
            db.refresh(row)
            logger.info(f"Recorded letter {row.id} for ticket {ticket_id}; status now {ticket.status.value}")
            return _to_stored_letter(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
