"""
PCN Challenge Engine - Collaborator Interfaces

Protocols for everything outside the pipeline: text generation, OCR,
document storage, persistence and email. Concrete implementations are
injected into the orchestrator at construction.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from ...models.ssot import (
    TicketFacts, SenderDetails, IssuerType, ChallengeGround,
    LetterDraft, RenderedDocument, NotificationMessage
)


# =============================================================================
# REPOSITORY RECORDS
# =============================================================================

@dataclass
class TicketRecord:
    """Everything the pipeline needs to know about a stored ticket."""
    ticket_id: str
    user_id: str
    manual_facts: TicketFacts
    sender: SenderDetails
    issuer_type: IssuerType = IssuerType.COUNCIL
    recipient_email: Optional[str] = None
    extracted_text: Optional[str] = None
    image_ref: Optional[str] = None


@dataclass
class StoredLetter:
    """A persisted challenge letter (one row of letter history)."""
    letter_id: str
    ticket_id: str
    body: str
    grounds: List[ChallengeGround] = field(default_factory=list)
    facts_hash: str = ""
    document_ref: str = ""
    page_count: int = 0
    attempts: int = 1
    generated_at: Optional[datetime] = None
    is_active: bool = True


# =============================================================================
# PROTOCOLS
# =============================================================================

class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class OCREngine(Protocol):
    def extract_text(self, image: bytes) -> str:
        ...


class DocumentStorage(Protocol):
    async def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        ...

    async def read(self, ref: str) -> bytes:
        ...

    async def delete(self, ref: str) -> None:
        ...


class ChallengeRepository(Protocol):
    async def load_ticket(self, ticket_id: str) -> Optional[TicketRecord]:
        ...

    async def latest_letter(self, ticket_id: str) -> Optional[StoredLetter]:
        ...

    async def record_challenge(
        self,
        ticket_id: str,
        draft: LetterDraft,
        document: RenderedDocument,
        document_ref: str,
        facts_hash: str,
        attempts: int,
    ) -> StoredLetter:
        ...

    async def list_letters(self, ticket_id: str) -> List[StoredLetter]:
        ...


class EmailSender(Protocol):
    async def send(self, message: NotificationMessage) -> None:
        ...
