"""Moderation gate with protocol-based swappable classifiers.

Production code uses ``OpenAIModerator`` which calls the OpenAI moderation
endpoint through the async SDK.  Tests use ``InMemoryModerator`` which flags
configured phrases and records every classified text.

The ``openai`` import is lazy so this module loads without the SDK installed.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from insureyou.prompts import MODERATION_DENIAL_MESSAGE_DEFAULT, MODERATION_DENIAL_MESSAGES
from insureyou.schemas.chat import ModerationVerdict


class Moderator(Protocol):
    """Protocol for classifying user text as allowed or denied."""

    async def classify(self, text: str) -> ModerationVerdict:
        """Classify non-empty *text*.

        Raises on transport or provider failure; the caller decides whether
        that blocks the request.
        """
        ...


def denial_message_for(categories: Iterable[str]) -> str:
    """Pick the denial message of the highest-priority flagged category."""
    flagged = set(categories)
    for category, message in MODERATION_DENIAL_MESSAGES.items():
        if category in flagged:
            return message
    return MODERATION_DENIAL_MESSAGE_DEFAULT


class OpenAIModerator:
    """Production classifier backed by ``client.moderations.create``."""

    def __init__(
        self,
        api_key: str,
        model: str = "omni-moderation-latest",
        timeout_seconds: float = 30.0,
    ) -> None:
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=1)
        self._model = model

    async def classify(self, text: str) -> ModerationVerdict:
        """Call the moderation endpoint and map flagged categories to a denial."""
        response = await self._client.moderations.create(model=self._model, input=text)
        result = response.results[0]
        if not result.flagged:
            return ModerationVerdict(flagged=False)

        categories = [
            name
            for name, hit in result.categories.model_dump(by_alias=True).items()
            if hit
        ]
        return ModerationVerdict(
            flagged=True,
            denial_message=denial_message_for(categories),
            categories=categories,
        )


class InMemoryModerator:
    """Test double that flags texts containing configured phrases."""

    def __init__(
        self,
        flagged_phrases: Iterable[str] = (),
        denial_message: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.flagged_phrases = [p.lower() for p in flagged_phrases]
        self.denial_message = denial_message
        self.error = error
        self.calls: list[str] = []

    async def classify(self, text: str) -> ModerationVerdict:
        """Record *text*, raise the configured error, or flag on phrase match."""
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        lowered = text.lower()
        if any(phrase in lowered for phrase in self.flagged_phrases):
            return ModerationVerdict(flagged=True, denial_message=self.denial_message)
        return ModerationVerdict(flagged=False)
