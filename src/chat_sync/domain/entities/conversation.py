from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_sync.domain.entities.profile import Profile
from chat_sync.domain.value_objects.enums import ConversationStatus


@dataclass(frozen=True, slots=True)
class LastMessage:
    id: UUID
    content: str
    sender_id: UUID
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    participants: tuple[Profile, Profile]
    last_message: LastMessage | None
    last_message_time: datetime | None
    status: str
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if len(self.participants) != 2:
            raise ValueError(
                f"Conversation {self.id} must have exactly 2 participants, "
                f"got {len(self.participants)}"
            )

    @property
    def participant_ids(self) -> tuple[UUID, UUID]:
        return self.participants[0].id, self.participants[1].id

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE

    def other_participant(self, user_id: UUID) -> Profile:
        first, second = self.participants
        return second if first.id == user_id else first


def sort_conversations(conversations: list[Conversation]) -> list[Conversation]:
    """Most recent activity first; conversations without messages go last.

    Ties (and the no-message tail) are ordered by created_at, newest first.
    """
    by_created = sorted(conversations, key=lambda c: c.created_at, reverse=True)
    with_time = [c for c in by_created if c.last_message_time is not None]
    without_time = [c for c in by_created if c.last_message_time is None]
    with_time.sort(key=lambda c: c.last_message_time, reverse=True)  # type: ignore[arg-type, return-value]
    return with_time + without_time
