"""
PCN Challenge Engine - Ticket Fact Extractor

Takes raw OCR text (or a manual-entry TicketFacts) and produces TicketFacts (SSOT #1).

Parsing rules:
- Each `key: value` line is split on the first colon, key and value stripped
- Known keys map onto the closed field set via FIELD_ALIASES
- Everything else lands in `unrecognized` - nothing is dropped
- The full text is always retained in `source_text`
"""
from __future__ import annotations
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple, Union

from dateutil import parser as date_parser

from ...models.ssot import IssuerType, TicketFacts, OverflowValue

logger = logging.getLogger(__name__)


KEY_VALUE_LINE = re.compile(r"^\s*([^:]+?)\s*:\s*(.*)$")

CONTRAVENTION_CODE = re.compile(r"^\s*(\d{1,3})\s*[a-zA-Z]?\s*$")
PLAIN_NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")


# Normalised key → TicketFacts field
FIELD_ALIASES: Dict[str, str] = {
    # PCN reference
    "pcn": "pcn_number",
    "pcn no": "pcn_number",
    "pcn number": "pcn_number",
    "pcn reference": "pcn_number",
    "penalty charge notice": "pcn_number",
    "penalty charge notice no": "pcn_number",
    "penalty charge notice number": "pcn_number",
    "notice number": "pcn_number",
    "reference": "pcn_number",

    # Issuer
    "issuer": "issuer",
    "issued by": "issuer",
    "council": "issuer",
    "authority": "issuer",
    "enforcement authority": "issuer",
    "operator": "issuer",
    "issuer type": "issuer_type",

    # Contravention
    "contravention": "contravention_code",
    "contravention code": "contravention_code",
    "code": "contravention_code",

    # Where and when
    "location": "location",
    "street": "location",
    "place": "location",
    "date": "issued_at",
    "date of issue": "issued_at",
    "issued": "issued_at",
    "issued at": "issued_at",
    "date of contravention": "issued_at",
    "first seen": "first_seen_at",
    "first observed": "first_seen_at",
    "observed from": "first_seen_at",
    "observation start": "first_seen_at",

    # Vehicle
    "vrm": "vehicle_registration",
    "registration": "vehicle_registration",
    "vehicle reg": "vehicle_registration",
    "vehicle registration": "vehicle_registration",
    "vehicle registration mark": "vehicle_registration",

    # Money
    "amount": "amount_due",
    "amount due": "amount_due",
    "penalty": "amount_due",
    "penalty charge": "amount_due",
    "charge": "amount_due",
    "discount deadline": "discount_deadline",
    "discount until": "discount_deadline",
    "pay by": "discount_deadline",

    # Free text
    "notes": "notes",
    "note": "notes",
    "remarks": "notes",
    "ceo notes": "notes",
}

DATE_FIELDS = {"issued_at", "first_seen_at", "discount_deadline"}

ISSUER_TYPE_WORDS = {
    "council": IssuerType.COUNCIL,
    "tfl": IssuerType.TFL,
    "transport for london": IssuerType.TFL,
    "private": IssuerType.PRIVATE_COMPANY,
    "private company": IssuerType.PRIVATE_COMPANY,
    "private_company": IssuerType.PRIVATE_COMPANY,
}


# =============================================================================
# VALUE COERCION
# =============================================================================

def normalize_key(raw_key: str) -> str:
    """Lowercase, collapse whitespace, drop trailing punctuation (e.g. 'PCN No.')."""
    key = re.sub(r"\s+", " ", raw_key.strip().lower())
    return key.rstrip(".#")


def coerce_number(value: str) -> OverflowValue:
    """Plain decimal text ('42', '-6.5') becomes int/float; anything else stays as text."""
    text = value.strip()
    if not PLAIN_NUMBER_PATTERN.match(text):
        return text
    if "." in text:
        return float(text)
    return int(text)


def parse_pennies(value: str) -> Optional[int]:
    """'£65.00', '65', '65.5', 'GBP 65' → pennies. None when not an amount."""
    cleaned = re.sub(r"(?i)^(gbp|£)\s*", "", value.strip()).replace(",", "")
    try:
        pounds = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not pounds.is_finite() or pounds < 0:
        return None
    return int((pounds * 100).to_integral_value())


def parse_date(value: str) -> Optional[datetime]:
    """UK day-first date parsing."""
    try:
        return date_parser.parse(value, dayfirst=True)
    except (ValueError, OverflowError):
        return None


def parse_contravention_code(value: str) -> Optional[str]:
    """'01a' → '01', '1' → '01'. None when not a code."""
    match = CONTRAVENTION_CODE.match(value)
    if not match:
        return None
    return match.group(1).zfill(2)


def parse_issuer_type(value: str) -> Optional[IssuerType]:
    return ISSUER_TYPE_WORDS.get(value.strip().lower())


def infer_issuer_type(issuer: Optional[str]) -> Optional[IssuerType]:
    """Best-effort issuer type from an issuer name."""
    if not issuer:
        return None
    lowered = issuer.lower()
    if "transport for london" in lowered or re.search(r"\btfl\b", lowered):
        return IssuerType.TFL
    if "council" in lowered or "borough" in lowered:
        return IssuerType.COUNCIL
    if any(word in lowered for word in ("parking", "ltd", "limited", "plc")):
        return IssuerType.PRIVATE_COMPANY
    return None


# =============================================================================
# EXTRACTOR
# =============================================================================

class FactExtractor:
    """
    Extract TicketFacts from ticket text.

    Input: OCR text, manual TicketFacts, or None
    Output: TicketFacts (SSOT #1)

    Extraction never raises on content; a malformed value is kept verbatim
    in `unrecognized` rather than discarded.
    """

    def __init__(self, aliases: Optional[Dict[str, str]] = None):
        self.aliases = aliases or FIELD_ALIASES

    def extract(self, source: Union[str, TicketFacts, None]) -> TicketFacts:
        if source is None:
            return TicketFacts()
        if isinstance(source, TicketFacts):
            return source

        facts = TicketFacts(source_text=source)
        parsed_lines = 0

        for line in source.splitlines():
            match = KEY_VALUE_LINE.match(line)
            if not match:
                continue
            raw_key, raw_value = match.group(1), match.group(2).strip()
            if not raw_key.strip():
                continue
            parsed_lines += 1
            self._assign(facts, raw_key.strip(), raw_value)

        if facts.issuer_type is None:
            facts.issuer_type = infer_issuer_type(facts.issuer)

        logger.info(
            f"Extracted {parsed_lines} key/value lines "
            f"({len(facts.unrecognized)} unrecognized)"
        )
        return facts

    def _assign(self, facts: TicketFacts, raw_key: str, raw_value: str) -> None:
        field_name = self.aliases.get(normalize_key(raw_key))

        if field_name is None or getattr(facts, field_name) is not None:
            # Unknown key, or a second value for an already-filled field
            self._overflow(facts, raw_key, coerce_number(raw_value))
            return

        ok, value = self._typed_value(field_name, raw_value)
        if ok:
            setattr(facts, field_name, value)
        else:
            self._overflow(facts, raw_key, raw_value)

    @staticmethod
    def _typed_value(field_name: str, raw_value: str) -> Tuple[bool, object]:
        if not raw_value:
            return False, None
        if field_name in DATE_FIELDS:
            parsed = parse_date(raw_value)
            return parsed is not None, parsed
        if field_name == "amount_due":
            pennies = parse_pennies(raw_value)
            return pennies is not None, pennies
        if field_name == "contravention_code":
            code = parse_contravention_code(raw_value)
            return code is not None, code
        if field_name == "issuer_type":
            issuer_type = parse_issuer_type(raw_value)
            return issuer_type is not None, issuer_type
        return True, raw_value

    @staticmethod
    def _overflow(facts: TicketFacts, key: str, value: OverflowValue) -> None:
        slot = key
        suffix = 2
        while slot in facts.unrecognized:
            slot = f"{key} ({suffix})"
            suffix += 1
        facts.unrecognized[slot] = value


def extract_facts(source: Union[str, TicketFacts, None]) -> TicketFacts:
    """
    Factory function to extract TicketFacts.

    Args:
        source: OCR text, manual TicketFacts, or None

    Returns:
        TicketFacts (SSOT #1)
    """
    extractor = FactExtractor()
    return extractor.extract(source)
