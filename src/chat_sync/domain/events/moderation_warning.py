from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ModerationWarning:
    thread_id: UUID
    message_id: UUID
    warning: str | None
    notify_moderator: bool = False
