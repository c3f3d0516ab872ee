from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class UnreadCounter:
    conversation_id: UUID
    user_id: UUID
    count: int = 0

    def decremented(self, by: int) -> UnreadCounter:
        return UnreadCounter(self.conversation_id, self.user_id, max(0, self.count - by))
