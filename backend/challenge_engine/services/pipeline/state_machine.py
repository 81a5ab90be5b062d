"""
Challenge Job State Machine

Deterministic phase machine for a single challenge-generation job.
Phases only move forward; DRAFTING may repeat while retries remain.
FAILED is reachable from every non-terminal phase.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ...models.ssot import utc_now


class JobPhase(str, Enum):
    PENDING = "PENDING"
    FACTS_EXTRACTED = "FACTS_EXTRACTED"
    STRATEGY_SELECTED = "STRATEGY_SELECTED"
    DRAFTING = "DRAFTING"
    DRAFT_ACCEPTED = "DRAFT_ACCEPTED"
    RENDERING = "RENDERING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# =============================================================================
# PHASE CONFIGURATION
# =============================================================================

PHASE_CONFIG = {
    JobPhase.PENDING: {
        "description": "Job accepted, ticket not yet read",
        "allowed_transitions": [JobPhase.FACTS_EXTRACTED, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.FACTS_EXTRACTED: {
        "description": "TicketFacts derived from manual entry and OCR text",
        "allowed_transitions": [JobPhase.STRATEGY_SELECTED, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.STRATEGY_SELECTED: {
        "description": "Challenge grounds chosen",
        # COMPLETED directly when an existing letter is reused
        "allowed_transitions": [JobPhase.DRAFTING, JobPhase.COMPLETED, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.DRAFTING: {
        "description": "Letter generation in progress (may retry)",
        "allowed_transitions": [JobPhase.DRAFTING, JobPhase.DRAFT_ACCEPTED, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.DRAFT_ACCEPTED: {
        "description": "Generated letter passed validation",
        "allowed_transitions": [JobPhase.RENDERING, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.RENDERING: {
        "description": "PDF rendering, upload and persistence",
        "allowed_transitions": [JobPhase.COMPLETED, JobPhase.FAILED],
        "terminal": False,
    },
    JobPhase.COMPLETED: {
        "description": "Letter persisted and ticket status advanced",
        "allowed_transitions": [],
        "terminal": True,
    },
    JobPhase.FAILED: {
        "description": "Terminal failure",
        "allowed_transitions": [],
        "terminal": True,
    },
}


def can_transition(from_phase: JobPhase, to_phase: JobPhase) -> Tuple[bool, str]:
    """
    Check if a phase transition is allowed.

    Returns (allowed, reason)
    """
    allowed_transitions = PHASE_CONFIG[from_phase]["allowed_transitions"]
    if to_phase in allowed_transitions:
        return True, "Transition allowed"
    return False, f"Cannot transition from {from_phase.value} to {to_phase.value}"


def is_terminal(phase: JobPhase) -> bool:
    return PHASE_CONFIG[phase]["terminal"]


class InvalidTransition(Exception):
    pass


@dataclass
class ChallengeJob:
    """
    In-memory record of one challenge_ticket() invocation.

    Discarded once the job reaches a terminal phase; callers only ever see
    a snapshot().
    """
    ticket_id: str
    phase: JobPhase = JobPhase.PENDING
    attempts: Dict[str, int] = field(default_factory=dict)
    history: List[str] = field(default_factory=list)
    last_error: Optional[str] = None
    started_at: datetime = field(default_factory=utc_now)

    # Uploaded document not yet covered by a committed letter row
    pending_artifact: Optional[str] = None
    pending_letter_id: Optional[str] = None
    persist_started: bool = False

    # (record, facts, stored letter) once COMPLETED with a new letter
    notification: Optional[tuple] = None

    def __post_init__(self):
        self.history.append(self.phase.value)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.phase)

    def advance(self, to_phase: JobPhase) -> None:
        allowed, reason = can_transition(self.phase, to_phase)
        if not allowed:
            raise InvalidTransition(reason)
        self.phase = to_phase
        self.history.append(to_phase.value)

    def record_attempt(self, phase: JobPhase) -> int:
        self.attempts[phase.value] = self.attempts.get(phase.value, 0) + 1
        return self.attempts[phase.value]

    def attempts_for(self, phase: JobPhase) -> int:
        return self.attempts.get(phase.value, 0)

    def fail(self, error: BaseException) -> None:
        self.last_error = f"{type(error).__name__}: {error}"
        if not self.is_terminal:
            self.advance(JobPhase.FAILED)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "phase": self.phase.value,
            "attempts": dict(self.attempts),
            "history": list(self.history),
            "last_error": self.last_error,
            "started_at": self.started_at.isoformat(),
        }
