"""
PCN Challenge Engine - Letter Drafting Engine

Takes TicketFacts (SSOT #1) + ChallengeStrategy (SSOT #2) and produces LetterDraft (SSOT #3).

One generation call per draft() invocation. The engine does not retry;
failures are raised as typed errors for the orchestrator to handle.
"""
from __future__ import annotations
import logging
import re
from typing import Optional

from ...errors import GenerationUnavailable, MalformedDraft
from ...models.ssot import (
    TicketFacts, ChallengeStrategy, ChallengeContext, SenderDetails, LetterDraft
)
from ..integrations.base import TextGenerator
from .prompts import build_prompt

logger = logging.getLogger(__name__)


CLOSING_PATTERN = re.compile(r"yours\s+(faithfully|sincerely)", re.IGNORECASE)


def validate_draft(text: Optional[str], sender_name: str) -> str:
    """
    Structural validation of generated letter text.

    A valid draft is non-empty, has a formal closing, and is signed with
    the sender's name somewhere after that closing.

    Returns:
        The stripped letter body

    Raises:
        MalformedDraft: when any check fails
    """
    body = (text or "").strip()
    if not body:
        raise MalformedDraft("Generated letter is empty")

    closings = list(CLOSING_PATTERN.finditer(body))
    if not closings:
        raise MalformedDraft("Generated letter has no formal closing")

    signature_block = body[closings[-1].end():]
    if sender_name.strip().lower() not in signature_block.lower():
        raise MalformedDraft("Generated letter is not signed by the sender after the closing")

    return body


class LetterDraftingEngine:
    """
    Draft challenge letters through a text generation capability.

    Input: TicketFacts (SSOT #1), ChallengeStrategy (SSOT #2)
    Output: LetterDraft (SSOT #3)

    The drafting engine CANNOT change the selected grounds.
    """

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def draft(
        self,
        ticket_id: str,
        facts: TicketFacts,
        strategy: ChallengeStrategy,
        sender: SenderDetails,
        context: Optional[ChallengeContext] = None,
        attempt: int = 1,
    ) -> LetterDraft:
        prompt = build_prompt(facts, strategy, sender, context)
        logger.info(f"Drafting letter for ticket {ticket_id} (attempt {attempt}, {len(prompt)} chars prompt)")

        try:
            text = await self.generator.generate(prompt)
        except Exception as exc:
            raise GenerationUnavailable(
                f"Text generation failed: {type(exc).__name__}: {exc}",
                ticket_id=ticket_id,
            ) from exc

        try:
            body = validate_draft(text, sender.full_name)
        except MalformedDraft as exc:
            exc.ticket_id = ticket_id
            raise

        draft = LetterDraft(
            ticket_id=ticket_id,
            body=body,
            grounds=tuple(strategy.ground_types),
            attempt=attempt,
        )
        logger.info(f"Accepted draft {draft.letter_id} ({draft.word_count} words)")
        return draft
