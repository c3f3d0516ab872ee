from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class TypingChanged:
    conversation_id: UUID
    user_id: UUID
    is_typing: bool
