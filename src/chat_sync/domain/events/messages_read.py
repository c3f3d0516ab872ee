from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessagesRead:
    conversation_id: UUID
    user_id: UUID
    message_ids: tuple[UUID, ...]
    unread_count: int
