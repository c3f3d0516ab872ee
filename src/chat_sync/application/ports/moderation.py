from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.moderation import ModerationResult


class ContentValidator(Protocol):
    async def validate(self, text: str) -> ModerationResult: ...


class PassthroughValidator:
    """Accepts everything unchanged."""

    async def validate(self, text: str) -> ModerationResult:
        return ModerationResult(is_valid=True, message=text)
