"""
PCN Challenge Engine - Groq Text Generator

Implements TextGenerator over the Groq chat completions API.
SDK-level retries are disabled: the orchestrator owns retry policy.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Optional

from groq import AsyncGroq

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You write formal UK parking appeal letters. Reply with the letter text only."


class GroqTextGenerator:
    """Single-shot letter generation through Groq."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        temperature: float = 0.4,
        client: Optional[AsyncGroq] = None,
    ):
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.client = client or AsyncGroq(api_key=api_key, max_retries=0, timeout=timeout)

    async def generate(self, prompt: str) -> str:
        completion = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            ),
            timeout=self.timeout,
        )
        content = completion.choices[0].message.content if completion.choices else None
        logger.info(f"Groq returned {len(content or '')} chars (model={self.model})")
        return content or ""
