from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationUpdated:
    conversation_id: UUID | None
    action: str = ""  # "created" | "message" | "invalidated" | "loaded"
