"""
PCN Challenge Engine - Single Source of Truth Models

These models are the ONLY data structures passed between pipeline stages.
Each stage consumes the previous stage's output and never re-derives it:

- Source text / manual entry → TicketFacts (SSOT #1)
- TicketFacts → ChallengeStrategy (SSOT #2)
- ChallengeStrategy → LetterDraft (SSOT #3)
- LetterDraft → RenderedDocument + NotificationMessage (SSOT #4)
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union
from uuid import uuid4


# =============================================================================
# ENUMS
# =============================================================================

class IssuerType(str, Enum):
    COUNCIL = "COUNCIL"
    TFL = "TFL"
    PRIVATE_COMPANY = "PRIVATE_COMPANY"


class GroundCategory(str, Enum):
    """Strength bands used to rank grounds. Procedural defects are strongest."""
    PROCEDURAL = "procedural"
    FACTUAL = "factual"
    MITIGATING = "mitigating"
    FALLBACK = "fallback"


class ChallengeGround(str, Enum):
    """
    Fixed taxonomy of challenge grounds.

    Declaration order IS the priority order used by the selector.
    """
    # Procedural defects
    PROCEDURAL_IMPROPRIETY = "procedural_impropriety"
    INVALID_TMO = "invalid_traffic_management_order"  # council / TfL only
    EXCEEDED_AMOUNT = "exceeded_amount"
    DETAILS_MISMATCH = "details_mismatch"
    KEEPER_LIABILITY = "keeper_liability"
    HIRE_FIRM = "hire_firm"  # council / TfL only

    # Factual defences
    PAYMENT_ALREADY_MADE = "payment_already_made"
    NO_BREACH_OF_CONTRACT = "no_breach_of_contract"  # private operators only
    BROKEN_EQUIPMENT = "broken_equipment"  # private operators only
    GRACE_PERIOD = "grace_period"
    SIGNAGE_INADEQUATE = "signage_inadequate"
    LOADING_EXEMPTION = "loading_exemption"

    # Mitigating circumstances
    MITIGATING_CIRCUMSTANCES = "mitigating_circumstances"

    # Insufficient evidence - used alone when nothing else applies
    GENERIC_CHALLENGE = "generic_challenge"


GROUND_CATEGORIES: Dict[ChallengeGround, GroundCategory] = {
    ChallengeGround.PROCEDURAL_IMPROPRIETY: GroundCategory.PROCEDURAL,
    ChallengeGround.INVALID_TMO: GroundCategory.PROCEDURAL,
    ChallengeGround.EXCEEDED_AMOUNT: GroundCategory.PROCEDURAL,
    ChallengeGround.DETAILS_MISMATCH: GroundCategory.PROCEDURAL,
    ChallengeGround.KEEPER_LIABILITY: GroundCategory.PROCEDURAL,
    ChallengeGround.HIRE_FIRM: GroundCategory.PROCEDURAL,
    ChallengeGround.PAYMENT_ALREADY_MADE: GroundCategory.FACTUAL,
    ChallengeGround.NO_BREACH_OF_CONTRACT: GroundCategory.FACTUAL,
    ChallengeGround.BROKEN_EQUIPMENT: GroundCategory.FACTUAL,
    ChallengeGround.GRACE_PERIOD: GroundCategory.FACTUAL,
    ChallengeGround.SIGNAGE_INADEQUATE: GroundCategory.FACTUAL,
    ChallengeGround.LOADING_EXEMPTION: GroundCategory.FACTUAL,
    ChallengeGround.MITIGATING_CIRCUMSTANCES: GroundCategory.MITIGATING,
    ChallengeGround.GENERIC_CHALLENGE: GroundCategory.FALLBACK,
}

GROUND_PRIORITY: List[ChallengeGround] = list(ChallengeGround)

# Grounds that only exist for some issuer types; every other ground applies to all
ISSUER_SPECIFIC_GROUNDS: Dict[ChallengeGround, tuple] = {
    ChallengeGround.INVALID_TMO: (IssuerType.COUNCIL, IssuerType.TFL),
    ChallengeGround.HIRE_FIRM: (IssuerType.COUNCIL, IssuerType.TFL),
    ChallengeGround.NO_BREACH_OF_CONTRACT: (IssuerType.PRIVATE_COMPANY,),
    ChallengeGround.BROKEN_EQUIPMENT: (IssuerType.PRIVATE_COMPANY,),
}


# =============================================================================
# SSOT #1: TICKET FACTS (Output of Fact Extractor)
# =============================================================================

OverflowValue = Union[str, int, float]


@dataclass
class TicketFacts:
    """
    Structured facts about a single PCN.

    Closed field set plus an `unrecognized` overflow bag: nothing extracted
    from the source text is ever dropped. `source_text` keeps the full
    original text for prompt construction.
    """
    pcn_number: Optional[str] = None
    issuer: Optional[str] = None
    issuer_type: Optional[IssuerType] = None
    contravention_code: Optional[str] = None
    location: Optional[str] = None
    issued_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    vehicle_registration: Optional[str] = None
    amount_due: Optional[int] = None  # pennies
    discount_deadline: Optional[datetime] = None
    notes: Optional[str] = None

    unrecognized: Dict[str, OverflowValue] = field(default_factory=dict)
    source_text: str = ""

    STRUCTURED_FIELDS = (
        "pcn_number", "issuer", "issuer_type", "contravention_code", "location",
        "issued_at", "first_seen_at", "vehicle_registration", "amount_due",
        "discount_deadline", "notes",
    )

    # Fields worth reporting as ExtractionIncomplete when unset
    KEY_FIELDS = ("pcn_number", "issuer", "contravention_code", "issued_at")

    def is_empty(self) -> bool:
        """True when no structured field is set."""
        return all(getattr(self, name) is None for name in self.STRUCTURED_FIELDS)

    def missing_fields(self) -> List[str]:
        return [name for name in self.KEY_FIELDS if getattr(self, name) is None]

    def to_dict(self) -> Dict[str, object]:
        """Canonical, JSON-friendly form (used for fingerprinting and storage)."""
        out: Dict[str, object] = {}
        for name in self.STRUCTURED_FIELDS:
            value = getattr(self, name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            out[name] = value
        out["unrecognized"] = dict(sorted(self.unrecognized.items()))
        return out


def merge_facts(primary: TicketFacts, fallback: TicketFacts) -> TicketFacts:
    """
    Merge two fact records field by field.

    Fields set on `primary` win; `fallback` only fills gaps. Overflow bags are
    combined (primary keys win) and both source texts are kept.
    """
    updates = {}
    for f in fields(TicketFacts):
        if f.name in ("unrecognized", "source_text"):
            continue
        if getattr(primary, f.name) is None and getattr(fallback, f.name) is not None:
            updates[f.name] = getattr(fallback, f.name)

    overflow = dict(fallback.unrecognized)
    overflow.update(primary.unrecognized)
    texts = [t for t in (primary.source_text, fallback.source_text) if t]

    return replace(primary, unrecognized=overflow, source_text="\n\n".join(texts), **updates)


# =============================================================================
# CALLER-SUPPLIED CONTEXT
# =============================================================================

@dataclass
class ChallengeContext:
    """Optional context supplied by the caller (what the user told us)."""
    user_context: Optional[str] = None  # e.g. "I was loading"
    arrival_time: Optional[datetime] = None
    vehicle_registration: Optional[str] = None
    reason: Optional[ChallengeGround] = None  # ground the user picked explicitly


@dataclass
class PostalAddress:
    line1: str = ""
    city: str = ""
    postcode: str = ""

    def lines(self) -> List[str]:
        return [part for part in (self.line1, self.city, self.postcode) if part]


@dataclass
class SenderDetails:
    """User/vehicle display details - supplied by the caller, never fetched by drafting."""
    full_name: str
    address: PostalAddress = field(default_factory=PostalAddress)
    email: Optional[str] = None
    vehicle_registration: Optional[str] = None


# =============================================================================
# SSOT #2: CHALLENGE STRATEGY (Output of Strategy Selector)
# =============================================================================

@dataclass(frozen=True)
class SelectedGround:
    ground: ChallengeGround
    rationale: str

    @property
    def category(self) -> GroundCategory:
        return GROUND_CATEGORIES[self.ground]


@dataclass(frozen=True)
class ChallengeStrategy:
    """Non-empty, priority-ordered grounds. Never empty - see GENERIC_CHALLENGE."""
    grounds: tuple

    def __post_init__(self):
        if not self.grounds:
            raise ValueError("ChallengeStrategy requires at least one ground")

    @property
    def ground_types(self) -> List[ChallengeGround]:
        return [g.ground for g in self.grounds]

    @property
    def is_fallback(self) -> bool:
        return self.ground_types == [ChallengeGround.GENERIC_CHALLENGE]


# =============================================================================
# SSOT #3: LETTER DRAFT (Output of Drafting Engine)
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LetterDraft:
    """Accepted letter body. Immutable once created."""
    ticket_id: str
    body: str
    grounds: tuple
    attempt: int = 1
    generated_at: datetime = field(default_factory=utc_now)
    letter_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def word_count(self) -> int:
        return len(self.body.split())


# =============================================================================
# SSOT #4: RENDERED DOCUMENT + NOTIFICATION
# =============================================================================

@dataclass(frozen=True)
class Letterhead:
    sender_name: str
    sender_lines: tuple = ()
    recipient_name: str = ""
    recipient_lines: tuple = ()
    letter_date: Optional[str] = None


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    page_count: int
    template_version: str
    content_type: str = "application/pdf"


@dataclass(frozen=True)
class NotificationMessage:
    ticket_id: str
    to_email: Optional[str]
    recipient_name: str
    subject: str
    text_body: str
    html_body: str
    attachment_ref: str
    attachment_filename: str


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class ChallengeResult:
    """What the rest of the system receives from challenge_ticket()."""
    ticket_id: str
    letter_id: str
    letter_text: str
    document_ref: str
    grounds: List[ChallengeGround]
    attempts: int = 0
    page_count: int = 0
    generated_at: Optional[datetime] = None
    reused: bool = False
