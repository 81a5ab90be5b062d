"""
Tests for the Ticket Fact Extractor.

Verifies:
1. Text without key/value lines yields empty facts but keeps the text
2. Known keys map onto TicketFacts fields with typed values
3. Unknown keys and malformed values land in `unrecognized`
4. Manual facts pass through; merge prefers manual values
"""
from datetime import datetime

import pytest

from challenge_engine.models.ssot import TicketFacts, IssuerType, merge_facts
from challenge_engine.services.extraction import FactExtractor, extract_facts
from challenge_engine.services.extraction.facts import (
    coerce_number, parse_pennies, parse_contravention_code, infer_issuer_type
)


OCR_TEXT = """PENALTY CHARGE NOTICE
Westminster City Council
PCN No: WM12345678
Issued by: Westminster Council
Contravention Code: 01a
Location: Marylebone High Street
Date of issue: 03/04/2024 14:32
VRM: AB12 CDE
Amount: £65.00
CEO Number: 4471
Observed From: 03/04/2024 14:25
"""


# =============================================================================
# TEST: UNSTRUCTURED INPUT
# =============================================================================

class TestUnstructuredInput:
    """Inputs with no key/value lines."""

    def test_no_key_value_lines_yields_empty_facts(self):
        text = "PENALTY CHARGE NOTICE\nThis vehicle was parked illegally\nPay promptly"
        facts = extract_facts(text)

        assert facts.is_empty()
        assert facts.unrecognized == {}
        assert facts.source_text == text

    def test_empty_string_is_not_an_error(self):
        facts = extract_facts("")
        assert facts.is_empty()
        assert facts.source_text == ""

    def test_none_yields_empty_facts(self):
        facts = extract_facts(None)
        assert facts.is_empty()

    def test_manual_facts_pass_through(self):
        manual = TicketFacts(pcn_number="LN12345", issuer="Westminster Council")
        assert extract_facts(manual) is manual


# =============================================================================
# TEST: STRUCTURED FIELDS
# =============================================================================

class TestStructuredFields:
    """Known keys become typed TicketFacts fields."""

    @pytest.fixture
    def facts(self):
        return FactExtractor().extract(OCR_TEXT)

    def test_pcn_number(self, facts):
        assert facts.pcn_number == "WM12345678"

    def test_issuer_and_inferred_type(self, facts):
        assert facts.issuer == "Westminster Council"
        assert facts.issuer_type == IssuerType.COUNCIL

    def test_contravention_code_suffix_stripped(self, facts):
        assert facts.contravention_code == "01"

    def test_uk_dates_are_day_first(self, facts):
        assert facts.issued_at == datetime(2024, 4, 3, 14, 32)
        assert facts.first_seen_at == datetime(2024, 4, 3, 14, 25)

    def test_amount_in_pennies(self, facts):
        assert facts.amount_due == 6500

    def test_registration_kept_as_text(self, facts):
        assert facts.vehicle_registration == "AB12 CDE"

    def test_unknown_key_is_preserved_and_coerced(self, facts):
        assert facts.unrecognized == {"CEO Number": 4471}

    def test_source_text_retained(self, facts):
        assert facts.source_text == OCR_TEXT

    def test_key_whitespace_is_stripped(self):
        facts = extract_facts("   PCN Number   :   LN99   ")
        assert facts.pcn_number == "LN99"


# =============================================================================
# TEST: NOTHING IS DROPPED
# =============================================================================

class TestOverflow:
    """Values that cannot be typed are preserved verbatim."""

    def test_unparseable_date_goes_to_unrecognized(self):
        facts = extract_facts("Date of issue: sometime last week")
        assert facts.issued_at is None
        assert facts.unrecognized == {"Date of issue": "sometime last week"}

    def test_unparseable_amount_goes_to_unrecognized(self):
        facts = extract_facts("Amount: sixty five pounds")
        assert facts.amount_due is None
        assert facts.unrecognized["Amount"] == "sixty five pounds"

    def test_duplicate_keys_are_suffixed(self):
        facts = extract_facts("Ref: 1\nRef: 2\nRef: three")
        assert facts.unrecognized == {"Ref": 1, "Ref (2)": 2, "Ref (3)": "three"}

    def test_second_value_for_filled_field_is_kept(self):
        facts = extract_facts("PCN: AA1\nPCN: BB2")
        assert facts.pcn_number == "AA1"
        assert facts.unrecognized == {"PCN": "BB2"}

    def test_float_values_are_coerced(self):
        facts = extract_facts("Speed: 12.5")
        assert facts.unrecognized == {"Speed": 12.5}


# =============================================================================
# TEST: HELPERS
# =============================================================================

class TestValueHelpers:

    def test_coerce_number(self):
        assert coerce_number("42") == 42
        assert coerce_number("4.5") == 4.5
        assert coerce_number("AB12") == "AB12"

    def test_coerce_number_keeps_non_decimal_text(self):
        assert coerce_number("-6.5") == -6.5
        assert coerce_number("1_000") == "1_000"
        assert coerce_number("nan") == "nan"
        assert coerce_number("inf") == "inf"
        assert coerce_number("1e400") == "1e400"
        assert coerce_number("12,5") == "12,5"

    def test_parse_pennies(self):
        assert parse_pennies("£65.00") == 6500
        assert parse_pennies("65") == 6500
        assert parse_pennies("GBP 32.50") == 3250
        assert parse_pennies("1,130.00") == 113000
        assert parse_pennies("free") is None
        assert parse_pennies("-5") is None

    def test_parse_contravention_code(self):
        assert parse_contravention_code("01a") == "01"
        assert parse_contravention_code("1") == "01"
        assert parse_contravention_code("Parked") is None

    def test_infer_issuer_type(self):
        assert infer_issuer_type("Transport for London") == IssuerType.TFL
        assert infer_issuer_type("London Borough of Camden") == IssuerType.COUNCIL
        assert infer_issuer_type("Euro Car Parks Ltd") == IssuerType.PRIVATE_COMPANY
        assert infer_issuer_type(None) is None


# =============================================================================
# TEST: MERGE
# =============================================================================

class TestMergeFacts:

    def test_manual_fields_win_and_ocr_fills_gaps(self):
        manual = TicketFacts(pcn_number="LN12345", issuer="Westminster Council")
        ocr = extract_facts("PCN: WRONG1\nLocation: Baker Street\nCEO: 12")

        merged = merge_facts(manual, ocr)

        assert merged.pcn_number == "LN12345"
        assert merged.issuer == "Westminster Council"
        assert merged.location == "Baker Street"
        assert merged.unrecognized == {"CEO": 12}
        assert "Baker Street" in merged.source_text

    def test_missing_fields_reported(self):
        facts = TicketFacts(pcn_number="LN12345")
        assert facts.missing_fields() == ["issuer", "contravention_code", "issued_at"]
