"""PCN Challenge Engine - Data Models"""
from .ssot import (
    # Enums
    IssuerType, GroundCategory, ChallengeGround, GROUND_CATEGORIES, GROUND_PRIORITY, ISSUER_SPECIFIC_GROUNDS,
    # SSOT #1: Extraction Output
    TicketFacts, merge_facts,
    # Caller context
    ChallengeContext, PostalAddress, SenderDetails,
    # SSOT #2: Strategy Output
    SelectedGround, ChallengeStrategy,
    # SSOT #3: Drafting Output
    LetterDraft,
    # SSOT #4: Rendering / Delivery Output
    Letterhead, RenderedDocument, NotificationMessage,
    # Result
    ChallengeResult,
)

__all__ = [
    "IssuerType", "GroundCategory", "ChallengeGround", "GROUND_CATEGORIES", "GROUND_PRIORITY", "ISSUER_SPECIFIC_GROUNDS",
    "TicketFacts", "merge_facts",
    "ChallengeContext", "PostalAddress", "SenderDetails",
    "SelectedGround", "ChallengeStrategy",
    "LetterDraft",
    "Letterhead", "RenderedDocument", "NotificationMessage",
    "ChallengeResult",
]
