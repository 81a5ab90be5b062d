"""PCN Challenge Engine - External Collaborators

Protocols plus the concrete implementations wired by build_orchestrator().
"""
from .base import (
    TextGenerator, OCREngine, DocumentStorage, ChallengeRepository, EmailSender,
    TicketRecord, StoredLetter,
)
from .storage import LocalFileStorage, challenge_letter_key
from .repository import SqlChallengeRepository

__all__ = [
    "TextGenerator", "OCREngine", "DocumentStorage", "ChallengeRepository", "EmailSender",
    "TicketRecord", "StoredLetter",
    "LocalFileStorage", "challenge_letter_key",
    "SqlChallengeRepository",
]
