"""
PCN Challenge Engine - Strategy Selector

Takes TicketFacts (SSOT #1) and creates ChallengeStrategy (SSOT #2).
Determines:
- Which challenge grounds apply (one predicate per ground)
- Which grounds the issuer type allows (council/TfL vs private operator)
- The order they are argued in (fixed priority, strongest first)
- A short rationale per ground for the drafting prompt

Pure and deterministic: identical inputs always yield identical strategies.
"""
from __future__ import annotations
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

from dateutil import tz

from ...models.ssot import (
    TicketFacts, ChallengeContext, ChallengeStrategy, SelectedGround,
    ChallengeGround, IssuerType, GROUND_PRIORITY, ISSUER_SPECIFIC_GROUNDS
)
from ..extraction.facts import infer_issuer_type
from .contravention_codes import is_recognized

logger = logging.getLogger(__name__)


GRACE_PERIOD_MINUTES = 10

# Statutory minimum discount window (days after issue)
MIN_DISCOUNT_WINDOW_DAYS = 14

# Ticket times are printed in UK local time
UK_TIMEZONE = tz.gettz("Europe/London")

# Highest charge each issuer type may levy (London band A, TfL red routes, private parking code cap)
MAX_PENALTY_PENNIES = {
    IssuerType.COUNCIL: 16000,
    IssuerType.TFL: 18000,
    IssuerType.PRIVATE_COMPANY: 10000,
}


# =============================================================================
# CONTEXT KEYWORDS
# =============================================================================

KEEPER_PATTERN = re.compile(
    r"\b(not the (driver|keeper|owner)|wasn'?t (the )?(driver|driving)|was not driving"
    r"|someone else was driving|sold (the|my) (car|vehicle)|vehicle was sold|car was sold|stolen)\b",
    re.IGNORECASE,
)
PAYMENT_PATTERN = re.compile(
    r"\b(already paid|i paid|i'?ve paid|i have paid|had paid|has been paid|was paid"
    r"|paid for (the |my )?(parking|session|stay)|paid (by phone|by card|via|through|using|with) (the )?(app|ringgo|paybyphone|justpark|machine|meter)"
    r"|payment (was|had been|has been) made|made (a |the )?payment"
    r"|valid (pay and display )?ticket (was )?displayed)\b",
    re.IGNORECASE,
)
SIGNAGE_PATTERN = re.compile(r"\b(signs?|signage|markings?|road markings)\b", re.IGNORECASE)
LOADING_PATTERN = re.compile(r"\b(loading|unloading|delivering|delivery)\b", re.IGNORECASE)
MITIGATING_PATTERN = re.compile(
    r"\b(emergency|hospital|ill|illness|sick|medical|breakdown|broke down|broken down)\b",
    re.IGNORECASE,
)
TMO_PATTERN = re.compile(r"\b(traffic (management|regulation) order|tmo)\b", re.IGNORECASE)
EXCESSIVE_PATTERN = re.compile(
    r"\b(overcharged|(charge|penalty|fine|amount) (is|was) (too high|excessive|more than allowed))\b",
    re.IGNORECASE,
)
HIRE_PATTERN = re.compile(
    r"\b(hire (firm|company|car|vehicle)|rental (car|vehicle|company|firm)"
    r"|(car|vehicle) was (hired|on hire|rented)|on hire)\b",
    re.IGNORECASE,
)
NO_BREACH_PATTERN = re.compile(
    r"\b(no breach|did not breach|didn'?t breach|never breached"
    r"|complied with (the|all) (terms|conditions)|followed (the|all) (terms|rules))\b",
    re.IGNORECASE,
)
BROKEN_EQUIPMENT_PATTERN = re.compile(
    r"\b(machines?|meters?|app|terminal)\b.{0,40}?\b(broken|faulty|out of order|not working"
    r"|wasn'?t working|didn'?t work|would not accept|wouldn'?t accept)\b"
    r"|\b(broken|faulty) (ticket )?(machine|meter|app|terminal)\b",
    re.IGNORECASE,
)

NEGATION_PATTERN = re.compile(
    r"\b(no|not|never|haven'?t|hasn'?t|hadn'?t|didn'?t|wasn'?t|without)\b",
    re.IGNORECASE,
)
SENTENCE_BREAK = re.compile(r"[.!?;\n]+")


# =============================================================================
# EXPLICIT REASONS
# =============================================================================

# Reason ids offered by the web and mobile apps
REASON_ALIASES: Dict[str, ChallengeGround] = {
    "CONTRAVENTION_DID_NOT_OCCUR": ChallengeGround.GENERIC_CHALLENGE,
    "NOT_VEHICLE_OWNER": ChallengeGround.KEEPER_LIABILITY,
    "NOT_VEHICLE_KEEPER": ChallengeGround.KEEPER_LIABILITY,
    "VEHICLE_STOLEN": ChallengeGround.KEEPER_LIABILITY,
    "HIRE_FIRM": ChallengeGround.HIRE_FIRM,
    "EXCEEDED_AMOUNT": ChallengeGround.EXCEEDED_AMOUNT,
    "EXCESSIVE_CHARGE": ChallengeGround.EXCEEDED_AMOUNT,
    "ALREADY_PAID": ChallengeGround.PAYMENT_ALREADY_MADE,
    "INVALID_TMO": ChallengeGround.INVALID_TMO,
    "PROCEDURAL_IMPROPRIETY": ChallengeGround.PROCEDURAL_IMPROPRIETY,
    "NO_BREACH_CONTRACT": ChallengeGround.NO_BREACH_OF_CONTRACT,
    "UNCLEAR_SIGNAGE": ChallengeGround.SIGNAGE_INADEQUATE,
    "BROKEN_EQUIPMENT": ChallengeGround.BROKEN_EQUIPMENT,
    "MITIGATING_CIRCUMSTANCES": ChallengeGround.MITIGATING_CIRCUMSTANCES,
}

# Rationale used when the user picked a ground the facts do not show by themselves
STATED_RATIONALES: Dict[ChallengeGround, str] = {
    ChallengeGround.PROCEDURAL_IMPROPRIETY: (
        "The vehicle owner states that the required procedure was not followed when the notice was issued or served."
    ),
    ChallengeGround.INVALID_TMO: (
        "The vehicle owner states that the Traffic Management Order relied on is invalid, "
        "so the restriction cannot be enforced."
    ),
    ChallengeGround.EXCEEDED_AMOUNT: "The vehicle owner states that the charge exceeds the amount applicable.",
    ChallengeGround.DETAILS_MISMATCH: "The vehicle owner states that the details on the notice are incorrect.",
    ChallengeGround.HIRE_FIRM: "The vehicle was on hire at the time and the hire firm will provide the hirer's details.",
    ChallengeGround.NO_BREACH_OF_CONTRACT: "The parking terms and conditions were not breached.",
    ChallengeGround.BROKEN_EQUIPMENT: "The payment equipment was not working, so payment could not be made.",
    ChallengeGround.GRACE_PERIOD: "The vehicle owner states that the notice was issued within the grace period.",
    ChallengeGround.LOADING_EXEMPTION: "The vehicle was being loaded or unloaded, which is an exempt activity.",
}


def resolve_reason(reason: Union[ChallengeGround, str, None]) -> Optional[ChallengeGround]:
    """
    Map a caller-chosen reason to a ChallengeGround.

    Accepts a ground value ("keeper_liability"), a ground name ("KEEPER_LIABILITY")
    or an app reason id ("NOT_VEHICLE_OWNER").

    Raises:
        ValueError: for an unknown reason
    """
    if reason is None or isinstance(reason, ChallengeGround):
        return reason
    text = str(reason).strip()
    if not text:
        return None
    try:
        return ChallengeGround(text.lower())
    except ValueError:
        pass
    key = text.upper()
    if key in ChallengeGround.__members__:
        return ChallengeGround[key]
    if key in REASON_ALIASES:
        return REASON_ALIASES[key]
    raise ValueError(f"Unknown challenge reason: {reason}")


# =============================================================================
# HELPERS
# =============================================================================

def normalize_registration(registration: Optional[str]) -> Optional[str]:
    """'ab12 cde' → 'AB12CDE'. None when nothing remains."""
    if registration is None:
        return None
    cleaned = re.sub(r"[^A-Za-z0-9]", "", str(registration)).upper()
    return cleaned or None


def _as_utc(value: datetime) -> datetime:
    """Comparable form for mixed naive/aware values. Naive values are UK local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UK_TIMEZONE)
    return value.astimezone(timezone.utc)


def affirms(pattern: re.Pattern, text: Optional[str]) -> bool:
    """True when some sentence of `text` matches `pattern` and is not negated."""
    if not text:
        return False
    for sentence in SENTENCE_BREAK.split(text):
        if pattern.search(sentence) and not NEGATION_PATTERN.search(sentence):
            return True
    return False


def issuer_type_of(facts: TicketFacts) -> Optional[IssuerType]:
    return facts.issuer_type or infer_issuer_type(facts.issuer)


def is_eligible(ground: ChallengeGround, issuer_type: Optional[IssuerType]) -> bool:
    """Issuer-specific grounds need a known, matching issuer type."""
    allowed = ISSUER_SPECIFIC_GROUNDS.get(ground)
    if allowed is None:
        return True
    return issuer_type in allowed


Predicate = Callable[[TicketFacts, ChallengeContext, Optional[IssuerType]], Optional[str]]


class StrategySelector:
    """
    Select the challenge grounds for a ticket.

    Input: TicketFacts (SSOT #1) + optional ChallengeContext
    Output: ChallengeStrategy (SSOT #2)

    Ground selection happens here and ONLY here.
    The drafting engine cannot add, drop or reorder grounds.
    """

    def __init__(self, grace_period_minutes: int = GRACE_PERIOD_MINUTES):
        self.grace_period = timedelta(minutes=grace_period_minutes)
        self._predicates: Dict[ChallengeGround, Predicate] = {
            ChallengeGround.PROCEDURAL_IMPROPRIETY: self._procedural_impropriety,
            ChallengeGround.INVALID_TMO: self._invalid_tmo,
            ChallengeGround.EXCEEDED_AMOUNT: self._exceeded_amount,
            ChallengeGround.DETAILS_MISMATCH: self._details_mismatch,
            ChallengeGround.KEEPER_LIABILITY: self._keeper_liability,
            ChallengeGround.HIRE_FIRM: self._hire_firm,
            ChallengeGround.PAYMENT_ALREADY_MADE: self._payment_already_made,
            ChallengeGround.NO_BREACH_OF_CONTRACT: self._no_breach_of_contract,
            ChallengeGround.BROKEN_EQUIPMENT: self._broken_equipment,
            ChallengeGround.GRACE_PERIOD: self._grace_period,
            ChallengeGround.SIGNAGE_INADEQUATE: self._signage_inadequate,
            ChallengeGround.LOADING_EXEMPTION: self._loading_exemption,
            ChallengeGround.MITIGATING_CIRCUMSTANCES: self._mitigating_circumstances,
        }

    def select(
        self,
        facts: TicketFacts,
        context: Optional[ChallengeContext] = None
    ) -> ChallengeStrategy:
        """
        Create a ChallengeStrategy from TicketFacts.

        Args:
            facts: TicketFacts (SSOT #1); carries contravention code and issuer
            context: What the user told us (free text, arrival time, registration,
                and optionally the reason they picked)

        Returns:
            ChallengeStrategy (SSOT #2) - never empty
        """
        context = context or ChallengeContext()
        issuer_type = issuer_type_of(facts)
        explicit = resolve_reason(context.reason)
        selected: List[SelectedGround] = []

        if explicit is not None and not is_eligible(explicit, issuer_type):
            logger.warning(
                f"Ignoring reason {explicit.value} for PCN {facts.pcn_number}: "
                f"not available for issuer type {issuer_type.value if issuer_type else 'unknown'}"
            )

        for ground in GROUND_PRIORITY:
            predicate = self._predicates.get(ground)
            if predicate is None or not is_eligible(ground, issuer_type):
                continue
            rationale = predicate(facts, context, issuer_type)
            if not rationale and ground == explicit:
                rationale = self._stated_rationale(ground, facts, context, issuer_type)
            if rationale:
                selected.append(SelectedGround(ground=ground, rationale=rationale))

        if not selected:
            selected.append(SelectedGround(
                ground=ChallengeGround.GENERIC_CHALLENGE,
                rationale=(
                    "No specific defence identified; the operator is put to strict proof of the alleged breach."
                    if issuer_type == IssuerType.PRIVATE_COMPANY else
                    "No specific defence identified; the authority is put to strict proof of the contravention."
                ),
            ))

        strategy = ChallengeStrategy(grounds=tuple(selected))
        logger.info(
            f"Selected {len(selected)} ground(s) for PCN {facts.pcn_number}: "
            f"{[g.value for g in strategy.ground_types]}"
        )
        return strategy

    def _stated_rationale(
        self,
        ground: ChallengeGround,
        facts: TicketFacts,
        context: ChallengeContext,
        issuer_type: Optional[IssuerType],
    ) -> str:
        if ground in (
            ChallengeGround.KEEPER_LIABILITY,
            ChallengeGround.PAYMENT_ALREADY_MADE,
            ChallengeGround.SIGNAGE_INADEQUATE,
            ChallengeGround.MITIGATING_CIRCUMSTANCES,
        ):
            return self._issuer_rationale(ground, issuer_type)
        if ground == ChallengeGround.EXCEEDED_AMOUNT and issuer_type == IssuerType.PRIVATE_COMPANY:
            return "The vehicle owner states that the charge is excessive and not a genuine pre-estimate of loss."
        if ground == ChallengeGround.PROCEDURAL_IMPROPRIETY and issuer_type == IssuerType.PRIVATE_COMPANY:
            return (
                "The vehicle owner states that the operator did not follow the procedure required "
                "by the private parking Code of Practice."
            )
        return STATED_RATIONALES[ground]

    @staticmethod
    def _issuer_rationale(ground: ChallengeGround, issuer_type: Optional[IssuerType]) -> str:
        private = issuer_type == IssuerType.PRIVATE_COMPANY
        if ground == ChallengeGround.KEEPER_LIABILITY:
            if private:
                return (
                    "The recipient was not the driver at the time, and the operator has not established "
                    "keeper liability under Schedule 4 of the Protection of Freedoms Act 2012."
                )
            return (
                "The recipient was not the owner of the vehicle at the time, "
                "or the vehicle had been taken without consent."
            )
        if ground == ChallengeGround.PAYMENT_ALREADY_MADE:
            if private:
                return "Valid payment was made in accordance with the parking terms."
            return "Payment for parking had already been made for the period in question."
        if ground == ChallengeGround.SIGNAGE_INADEQUATE:
            if private:
                return "The parking terms were not clearly displayed, so no contract was formed with the driver."
            return "The signs or road markings were missing, unclear or inadequate."
        return "Circumstances beyond the driver's control (emergency, illness or breakdown) applied."

    # =========================================================================
    # PREDICATES - each returns a rationale when the ground applies
    # =========================================================================

    def _procedural_impropriety(self, facts, context, issuer_type) -> Optional[str]:
        code = facts.contravention_code
        if code is not None and not is_recognized(code):
            return (
                f"Contravention code '{code}' is not a recognised contravention code, "
                "so the notice does not properly state the alleged contravention."
            )

        if facts.issued_at is not None and facts.discount_deadline is not None:
            window = facts.discount_deadline.date() - facts.issued_at.date()
            if window.days < MIN_DISCOUNT_WINDOW_DAYS:
                return (
                    f"The discount period stated on the notice is {window.days} day(s), "
                    f"shorter than the required {MIN_DISCOUNT_WINDOW_DAYS} days from the date of issue."
                )
        return None

    def _invalid_tmo(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and TMO_PATTERN.search(context.user_context):
            return STATED_RATIONALES[ChallengeGround.INVALID_TMO]
        return None

    def _exceeded_amount(self, facts, context, issuer_type) -> Optional[str]:
        cap = MAX_PENALTY_PENNIES.get(issuer_type)
        if facts.amount_due is not None and cap is not None and facts.amount_due > cap:
            return (
                f"The amount demanded (£{facts.amount_due / 100:.2f}) exceeds the maximum of "
                f"£{cap / 100:.2f} applicable to this type of notice."
            )
        if context.user_context and EXCESSIVE_PATTERN.search(context.user_context):
            return self._stated_rationale(ChallengeGround.EXCEEDED_AMOUNT, facts, context, issuer_type)
        return None

    def _details_mismatch(self, facts, context, issuer_type) -> Optional[str]:
        on_ticket = normalize_registration(facts.vehicle_registration)
        on_record = normalize_registration(context.vehicle_registration)
        if on_ticket and on_record and on_ticket != on_record:
            return (
                f"The vehicle registration on the notice ({facts.vehicle_registration}) does not match "
                f"the registration of the vehicle concerned ({context.vehicle_registration})."
            )
        return None

    def _keeper_liability(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and KEEPER_PATTERN.search(context.user_context):
            return self._issuer_rationale(ChallengeGround.KEEPER_LIABILITY, issuer_type)
        return None

    def _hire_firm(self, facts, context, issuer_type) -> Optional[str]:
        if affirms(HIRE_PATTERN, context.user_context):
            return STATED_RATIONALES[ChallengeGround.HIRE_FIRM]
        return None

    def _payment_already_made(self, facts, context, issuer_type) -> Optional[str]:
        for text in (context.user_context, facts.notes):
            if affirms(PAYMENT_PATTERN, text):
                return self._issuer_rationale(ChallengeGround.PAYMENT_ALREADY_MADE, issuer_type)
        return None

    def _no_breach_of_contract(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and NO_BREACH_PATTERN.search(context.user_context):
            return STATED_RATIONALES[ChallengeGround.NO_BREACH_OF_CONTRACT]
        return None

    def _broken_equipment(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and BROKEN_EQUIPMENT_PATTERN.search(context.user_context):
            return STATED_RATIONALES[ChallengeGround.BROKEN_EQUIPMENT]
        return None

    def _grace_period(self, facts, context, issuer_type) -> Optional[str]:
        arrival = context.arrival_time or facts.first_seen_at
        if arrival is None or facts.issued_at is None:
            return None
        elapsed = _as_utc(facts.issued_at) - _as_utc(arrival)
        if timedelta(0) <= elapsed < self.grace_period:
            minutes = int(elapsed.total_seconds() // 60)
            return (
                f"The notice was issued {minutes} minute(s) after arrival, "
                f"within the {int(self.grace_period.total_seconds() // 60)}-minute grace period."
            )
        return None

    def _signage_inadequate(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and SIGNAGE_PATTERN.search(context.user_context):
            return self._issuer_rationale(ChallengeGround.SIGNAGE_INADEQUATE, issuer_type)
        return None

    def _loading_exemption(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and LOADING_PATTERN.search(context.user_context):
            return STATED_RATIONALES[ChallengeGround.LOADING_EXEMPTION]
        return None

    def _mitigating_circumstances(self, facts, context, issuer_type) -> Optional[str]:
        if context.user_context and MITIGATING_PATTERN.search(context.user_context):
            return self._issuer_rationale(ChallengeGround.MITIGATING_CIRCUMSTANCES, issuer_type)
        return None


def select_strategy(
    facts: TicketFacts,
    context: Optional[ChallengeContext] = None
) -> ChallengeStrategy:
    """
    Factory function to create a ChallengeStrategy.

    Args:
        facts: TicketFacts (SSOT #1)
        context: Optional caller-supplied context

    Returns:
        ChallengeStrategy (SSOT #2)
    """
    selector = StrategySelector()
    return selector.select(facts, context)
