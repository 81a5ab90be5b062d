"""PCN Challenge Engine - Fact Extraction

This layer takes ticket text and produces TicketFacts (SSOT #1).
"""
from .facts import FactExtractor, extract_facts, FIELD_ALIASES

__all__ = ["FactExtractor", "extract_facts", "FIELD_ALIASES"]
