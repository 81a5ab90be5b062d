"""PCN Challenge Engine - Letter Drafting

This layer takes ChallengeStrategy (SSOT #2) and produces LetterDraft (SSOT #3).
"""
from .engine import LetterDraftingEngine, validate_draft
from .prompts import build_prompt, CHALLENGE_LETTER_INSTRUCTIONS

__all__ = ["LetterDraftingEngine", "validate_draft", "build_prompt", "CHALLENGE_LETTER_INSTRUCTIONS"]
