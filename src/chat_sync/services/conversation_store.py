"""Canonical in-memory state of the chat session."""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from uuid import UUID

from chat_sync.domain.entities.conversation import Conversation, LastMessage, sort_conversations
from chat_sync.domain.entities.message import Message, sort_key
from chat_sync.domain.entities.unread_counter import UnreadCounter
from chat_sync.domain.value_objects.enums import LoadState

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConversationEntry:
    state: LoadState = LoadState.UNLOADED
    messages: list[Message] = field(default_factory=list)
    error: str | None = None


class ConversationStore:
    """Conversation list, per-conversation messages, typing flags, unread counters.

    Every conversation moves through ``unloaded -> loading -> loaded ->
    stale -> loading``. Invalidation bumps a generation counter: a load that
    began under an older generation still merges its rows but leaves the
    entry stale. A released entry drops late results entirely.

    Messages are kept sorted by server ``created_at``; ``read`` never goes
    back from True to False.
    """

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        self.active_conversation_id: UUID | None = None
        self._conversations: dict[UUID, Conversation] = {}
        self._list_state = LoadState.UNLOADED
        self._list_generation = 0
        self._entries: dict[UUID, ConversationEntry] = {}
        self._generations: dict[UUID, int] = {}
        self._typing: dict[UUID, dict[UUID, bool]] = {}
        self._unread: dict[tuple[UUID, UUID], int] = {}

    # -- conversation list --------------------------------------------------

    @property
    def conversations_state(self) -> LoadState:
        return self._list_state

    def conversations(self) -> list[Conversation]:
        return sort_conversations(list(self._conversations.values()))

    def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        return self._conversations.get(conversation_id)

    @property
    def active_conversation(self) -> Conversation | None:
        if self.active_conversation_id is None:
            return None
        return self._conversations.get(self.active_conversation_id)

    @property
    def conversations_generation(self) -> int:
        return self._list_generation

    def begin_conversations_load(self) -> None:
        self._list_state = LoadState.LOADING

    def apply_conversations(
        self,
        conversations: list[Conversation],
        unread_counts: dict[UUID, int],
        generation: int,
    ) -> bool:
        """Replace the list; return True when the result is current."""
        self._conversations = {c.id: c for c in conversations}
        for conversation_id, count in unread_counts.items():
            self._unread[(conversation_id, self.user_id)] = max(0, count)
        fresh = generation == self._list_generation
        self._list_state = LoadState.LOADED if fresh else LoadState.STALE
        return fresh

    def fail_conversations_load(self) -> None:
        self._list_state = LoadState.STALE if self._conversations else LoadState.UNLOADED

    def invalidate_conversations(self) -> None:
        self._list_generation += 1
        if self._list_state != LoadState.UNLOADED:
            self._list_state = LoadState.STALE

    def upsert_conversation(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation

    def touch_conversation(self, message: Message) -> Conversation | None:
        """Point the conversation's last message at ``message`` if it is newer."""
        conversation = self._conversations.get(message.conversation_id)  # type: ignore[arg-type]
        if conversation is None:
            return None
        current = conversation.last_message_time
        if current is not None and current > message.created_at:
            return conversation
        updated = dataclasses.replace(
            conversation,
            last_message=LastMessage(
                id=message.id,
                content=message.content,
                sender_id=message.sender_id,
                created_at=message.created_at,
            ),
            last_message_time=message.created_at,
        )
        self._conversations[updated.id] = updated
        return updated

    # -- messages -----------------------------------------------------------

    def state_of(self, conversation_id: UUID) -> LoadState:
        entry = self._entries.get(conversation_id)
        return entry.state if entry else LoadState.UNLOADED

    def error_of(self, conversation_id: UUID) -> str | None:
        entry = self._entries.get(conversation_id)
        return entry.error if entry else None

    def messages(self, conversation_id: UUID) -> list[Message]:
        entry = self._entries.get(conversation_id)
        return list(entry.messages) if entry else []

    def get_message(self, conversation_id: UUID, message_id: UUID) -> Message | None:
        for message in self.messages(conversation_id):
            if message.id == message_id:
                return message
        return None

    def generation(self, conversation_id: UUID) -> int:
        return self._generations.get(conversation_id, 0)

    def begin_loading(self, conversation_id: UUID) -> None:
        entry = self._entries.setdefault(conversation_id, ConversationEntry())
        entry.state = LoadState.LOADING
        entry.error = None

    def apply_messages(
        self,
        conversation_id: UUID,
        rows: list[Message],
        generation: int,
    ) -> bool:
        """Merge rows fetched under ``generation``; return True when now loaded.

        Returns False both when the result was dropped (entry released) and
        when it was merged but an invalidation arrived meanwhile.
        """
        entry = self._entries.get(conversation_id)
        if entry is None or entry.state == LoadState.UNLOADED:
            logger.debug("Dropping messages for released conversation %s", conversation_id)
            return False
        self._merge(entry, rows)
        fresh = generation == self._generations.get(conversation_id, 0)
        entry.state = LoadState.LOADED if fresh else LoadState.STALE
        return fresh

    def fail_loading(self, conversation_id: UUID, error: str) -> None:
        entry = self._entries.get(conversation_id)
        if entry is None:
            return
        entry.error = error
        entry.state = LoadState.STALE if entry.messages else LoadState.UNLOADED

    def invalidate(self, conversation_id: UUID) -> LoadState:
        self._generations[conversation_id] = self._generations.get(conversation_id, 0) + 1
        entry = self._entries.get(conversation_id)
        if entry is None:
            return LoadState.UNLOADED
        if entry.state != LoadState.UNLOADED:
            entry.state = LoadState.STALE
        return entry.state

    def release(self, conversation_id: UUID) -> None:
        self._entries.pop(conversation_id, None)
        self._generations[conversation_id] = self._generations.get(conversation_id, 0) + 1
        self._typing.pop(conversation_id, None)
        if self.active_conversation_id == conversation_id:
            self.active_conversation_id = None

    def stale_conversations(self) -> list[UUID]:
        return [cid for cid, e in self._entries.items() if e.state == LoadState.STALE]

    def add_message(self, message: Message) -> bool:
        """Insert a single authoritative row; False if it was already known."""
        conversation_id = message.thread_id
        if conversation_id is None:
            return False
        entry = self._entries.setdefault(conversation_id, ConversationEntry())
        if any(m.id == message.id for m in entry.messages):
            self._merge(entry, [message])
            return False
        self._merge(entry, [message])
        return True

    def mark_read(self, conversation_id: UUID, message_ids: list[UUID]) -> list[UUID]:
        """Flip the given messages to read; return the ids that actually changed."""
        entry = self._entries.get(conversation_id)
        if entry is None:
            return []
        wanted = set(message_ids)
        flipped: list[UUID] = []
        for index, message in enumerate(entry.messages):
            if message.id in wanted and not message.read:
                entry.messages[index] = dataclasses.replace(message, read=True)
                flipped.append(message.id)
        return flipped

    def unread_incoming(self, conversation_id: UUID) -> list[Message]:
        return [
            m for m in self.messages(conversation_id)
            if not m.read and m.sender_id != self.user_id
        ]

    def _merge(self, entry: ConversationEntry, rows: list[Message]) -> None:
        by_id = {m.id: m for m in entry.messages}
        for row in rows:
            local = by_id.get(row.id)
            if local is not None and local.read and not row.read:
                row = dataclasses.replace(row, read=True)
            by_id[row.id] = row
        entry.messages = sorted(by_id.values(), key=sort_key)

    # -- typing -------------------------------------------------------------

    def set_typing(self, conversation_id: UUID, user_id: UUID, is_typing: bool) -> bool:
        """Return True when the flag changed."""
        flags = self._typing.setdefault(conversation_id, {})
        changed = flags.get(user_id, False) != is_typing
        flags[user_id] = is_typing
        return changed

    def typing(self, conversation_id: UUID) -> dict[UUID, bool]:
        return dict(self._typing.get(conversation_id, {}))

    def is_typing(self, conversation_id: UUID, user_id: UUID) -> bool:
        return self._typing.get(conversation_id, {}).get(user_id, False)

    # -- unread counters ----------------------------------------------------

    def unread_count(self, conversation_id: UUID, user_id: UUID | None = None) -> int:
        return self._unread.get((conversation_id, user_id or self.user_id), 0)

    def set_unread_count(
        self, conversation_id: UUID, count: int, user_id: UUID | None = None,
    ) -> None:
        self._unread[(conversation_id, user_id or self.user_id)] = max(0, count)

    def decrement_unread(
        self, conversation_id: UUID, by: int, user_id: UUID | None = None,
    ) -> int:
        """Order threads have no counter; nothing is created for them."""
        if (conversation_id, user_id or self.user_id) not in self._unread:
            return 0
        counter = UnreadCounter(
            conversation_id, user_id or self.user_id, self.unread_count(conversation_id, user_id),
        ).decremented(by)
        self._unread[(counter.conversation_id, counter.user_id)] = counter.count
        return counter.count

    def unread_counters(self) -> list[UnreadCounter]:
        return [
            UnreadCounter(conversation_id, user_id, count)
            for (conversation_id, user_id), count in self._unread.items()
        ]

    def unread_by_conversation(self) -> dict[UUID, int]:
        return {
            conversation_id: count
            for (conversation_id, user_id), count in self._unread.items()
            if user_id == self.user_id
        }

    @property
    def total_unread(self) -> int:
        return sum(self.unread_by_conversation().values())
