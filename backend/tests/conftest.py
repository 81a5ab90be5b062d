"""
Shared fixtures and in-memory collaborators for the challenge pipeline tests.
"""
import os

# Tests never touch a real database server
os.environ["DATABASE_URL"] = "sqlite://"

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from challenge_engine.models.ssot import (
    TicketFacts, SenderDetails, PostalAddress, IssuerType, LetterDraft,
    RenderedDocument, NotificationMessage
)
from challenge_engine.services.integrations.base import TicketRecord, StoredLetter
from challenge_engine.services.pipeline import ChallengeOrchestrator, RetryPolicy


SENDER_NAME = "Jane Smith"


def valid_letter(name: str = SENDER_NAME, pcn: str = "LN12345") -> str:
    return (
        "Dear Sir or Madam,\n\n"
        f"I am writing to formally challenge Penalty Charge Notice {pcn}.\n\n"
        "I do not accept that the contravention occurred and put the authority to strict proof.\n\n"
        f"Yours faithfully,\n{name}"
    )


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeGenerator:
    """Returns queued responses in order; an Exception entry is raised instead."""

    def __init__(self, responses=None, gate: Optional[asyncio.Event] = None, delay: float = 0.0):
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.gate = gate
        self.delay = delay
        self.started = None

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.pop(0) if self.responses else valid_letter()
        if isinstance(response, BaseException):
            raise response
        return response


class InMemoryStorage:
    def __init__(self, fail_put: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_put = fail_put

    async def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        if self.fail_put:
            raise IOError("storage unavailable")
        self.objects[key] = content
        return key

    async def read(self, ref: str) -> bytes:
        return self.objects[ref]

    async def delete(self, ref: str) -> None:
        self.objects.pop(ref, None)
        self.deleted.append(ref)


class InMemoryRepository:
    def __init__(self, tickets: Optional[List[TicketRecord]] = None):
        self.tickets: Dict[str, TicketRecord] = {t.ticket_id: t for t in (tickets or [])}
        self.letters: List[StoredLetter] = []
        self.record_calls = 0
        self.fail_record = False
        self.record_delay = 0.0

    async def load_ticket(self, ticket_id: str) -> Optional[TicketRecord]:
        return self.tickets.get(ticket_id)

    async def latest_letter(self, ticket_id: str) -> Optional[StoredLetter]:
        active = [l for l in self.letters if l.ticket_id == ticket_id and l.is_active]
        return active[-1] if active else None

    async def list_letters(self, ticket_id: str) -> List[StoredLetter]:
        return list(reversed([l for l in self.letters if l.ticket_id == ticket_id]))

    async def record_challenge(
        self,
        ticket_id: str,
        draft: LetterDraft,
        document: RenderedDocument,
        document_ref: str,
        facts_hash: str,
        attempts: int,
    ) -> StoredLetter:
        self.record_calls += 1
        if self.record_delay:
            await asyncio.sleep(self.record_delay)
        if self.fail_record:
            raise RuntimeError("database unavailable")
        for letter in self.letters:
            if letter.ticket_id == ticket_id:
                letter.is_active = False
        stored = StoredLetter(
            letter_id=draft.letter_id,
            ticket_id=ticket_id,
            body=draft.body,
            grounds=list(draft.grounds),
            facts_hash=facts_hash,
            document_ref=document_ref,
            page_count=document.page_count,
            attempts=attempts,
            generated_at=draft.generated_at,
            is_active=True,
        )
        self.letters.append(stored)
        return stored


class RecordingEmailSender:
    def __init__(self, fail: bool = False):
        self.messages: List[NotificationMessage] = []
        self.fail = fail

    async def send(self, message: NotificationMessage) -> None:
        if self.fail:
            raise ConnectionError("SendGrid unreachable")
        self.messages.append(message)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def sender():
    return SenderDetails(
        full_name=SENDER_NAME,
        address=PostalAddress(line1="1 Acacia Avenue", city="London", postcode="SW1A 1AA"),
        email="jane@example.com",
        vehicle_registration="AB12 CDE",
    )


@pytest.fixture
def ticket_record(sender):
    """LN12345 / Westminster Council / code 01 / £65.00 - no challenge predicates match."""
    return TicketRecord(
        ticket_id="ticket-1",
        user_id="user-1",
        manual_facts=TicketFacts(
            pcn_number="LN12345",
            issuer="Westminster Council",
            issuer_type=IssuerType.COUNCIL,
            contravention_code="01",
            amount_due=6500,
        ),
        sender=sender,
        issuer_type=IssuerType.COUNCIL,
        recipient_email="jane@example.com",
    )


@pytest.fixture
def repository(ticket_record):
    return InMemoryRepository([ticket_record])


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(repository, storage, email_sender, recording_sleep):
    """Factory: orchestrator over in-memory collaborators with instant backoff."""
    def _make(generator=None, job_timeout: float = 30.0, **overrides):
        kwargs = dict(
            repository=repository,
            storage=storage,
            generator=generator or FakeGenerator(),
            email_sender=email_sender,
            retry_policy=RetryPolicy(max_attempts=3, base_delay=0.5, sleep=recording_sleep),
            job_timeout=job_timeout,
        )
        kwargs.update(overrides)
        return ChallengeOrchestrator(**kwargs)
    return _make


@pytest.fixture
def utc():
    def _utc(*args):
        return datetime(*args, tzinfo=timezone.utc)
    return _utc
