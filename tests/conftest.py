"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio

from chat_sync.application.dto.events import RealtimeEvent
from chat_sync.application.dto.message import NewMessage
from chat_sync.application.dto.moderation import ModerationResult
from chat_sync.application.exceptions import NetworkError
from chat_sync.application.ports.realtime import OnRealtimeEvent
from chat_sync.config import Settings
from chat_sync.domain.entities.conversation import Conversation, LastMessage
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.profile import Profile
from chat_sync.domain.value_objects.enums import ConversationStatus, RealtimeEventType, ThreadKind
from chat_sync.services.context import SyncContext
from chat_sync.services.sync_orchestrator import SyncOrchestrator

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(user_id: UUID | None = None, *, username: str = "user") -> Profile:
    return Profile(id=user_id or uuid.uuid4(), username=username)


def make_conversation(
    user_id: UUID,
    other_id: UUID | None = None,
    *,
    conversation_id: UUID | None = None,
    last_message_time: datetime | None = None,
    created_at: datetime = T0,
    status: str = ConversationStatus.ACTIVE,
) -> Conversation:
    conversation_id = conversation_id or uuid.uuid4()
    last_message = None
    if last_message_time is not None:
        last_message = LastMessage(
            id=uuid.uuid4(),
            content="hi",
            sender_id=other_id or user_id,
            created_at=last_message_time,
        )
    return Conversation(
        id=conversation_id,
        participants=(make_profile(user_id), make_profile(other_id)),
        last_message=last_message,
        last_message_time=last_message_time,
        status=status,
        created_at=created_at,
        updated_at=created_at,
    )


def make_message(
    conversation_id: UUID,
    sender_id: UUID,
    *,
    created_at: datetime = T0,
    read: bool = False,
    content: str = "hello",
    message_id: UUID | None = None,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        read=read,
        created_at=created_at,
    )


def make_order_message(
    order_id: UUID,
    sender_id: UUID,
    *,
    created_at: datetime = T0,
    read: bool = False,
    content: str = "about the order",
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=None,
        order_id=order_id,
        sender_id=sender_id,
        content=content,
        read=read,
        created_at=created_at,
    )


def message_insert_event(message: Message) -> RealtimeEvent:
    record = {
        "id": str(message.id),
        "sender_id": str(message.sender_id),
        "content": message.content,
        "read": message.read,
        "created_at": message.created_at.isoformat(),
    }
    if message.conversation_id is not None:
        record["conversation_id"] = str(message.conversation_id)
    if message.order_id is not None:
        record["order_id"] = str(message.order_id)
    return RealtimeEvent(type=RealtimeEventType.INSERT, table="messages", record=record)


@dataclass
class FakeClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeChatGateway:
    """In-memory persistence service with call counters and failure injection."""

    conversations: dict[UUID, list[Conversation]] = field(default_factory=dict)
    unread_counts: dict[UUID, dict[UUID, int]] = field(default_factory=dict)
    messages: dict[UUID, list[Message]] = field(default_factory=dict)
    calls: dict[str, int] = field(default_factory=dict)
    read_updates: list[tuple[UUID, UUID, list[UUID]]] = field(default_factory=list)
    listed: list[tuple[UUID, ThreadKind]] = field(default_factory=list)
    failures: dict[str, int] = field(default_factory=dict)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    clock: datetime = T0

    async def _enter(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        remaining = self.failures.get(name, 0)
        if remaining:
            self.failures[name] = remaining - 1
            raise NetworkError(f"{name} unavailable")

    def fail(self, name: str, times: int = 1) -> None:
        self.failures[name] = times

    def block(self, name: str) -> asyncio.Event:
        gate = self.gates[name] = asyncio.Event()
        return gate

    def count(self, name: str) -> int:
        return self.calls.get(name, 0)

    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        await self._enter("list_conversations")
        return list(self.conversations.get(user_id, []))

    async def get_unread_counts(self, user_id: UUID) -> dict[UUID, int]:
        await self._enter("get_unread_counts")
        return dict(self.unread_counts.get(user_id, {}))

    async def list_messages(
        self, thread_id: UUID, kind: ThreadKind = ThreadKind.CONVERSATION,
    ) -> list[Message]:
        await self._enter("list_messages")
        self.listed.append((thread_id, kind))
        return sorted(self.messages.get(thread_id, []), key=lambda m: m.created_at)

    async def insert_message(self, message: NewMessage) -> Message:
        await self._enter("insert_message")
        self.clock += timedelta(seconds=1)
        row = Message(
            id=uuid.uuid4(),
            conversation_id=message.conversation_id,
            order_id=message.order_id,
            sender_id=message.sender_id,
            content=message.content,
            read=False,
            created_at=self.clock,
            message_type=message.message_type,
            attachment=message.attachment,
        )
        self.messages.setdefault(message.thread_id, []).append(row)
        return row

    async def mark_messages_read(
        self, thread_id: UUID, user_id: UUID, message_ids: list[UUID],
    ) -> None:
        await self._enter("mark_messages_read")
        self.read_updates.append((thread_id, user_id, list(message_ids)))
        wanted = set(message_ids)
        rows = self.messages.get(thread_id, [])
        for index, row in enumerate(rows):
            if row.id in wanted:
                rows[index] = dataclasses.replace(row, read=True)

    async def get_or_create_conversation(
        self, user_id: UUID, other_user_id: UUID,
    ) -> tuple[Conversation, bool]:
        await self._enter("get_or_create_conversation")
        for conversation in self.conversations.get(user_id, []):
            if set(conversation.participant_ids) == {user_id, other_user_id}:
                return conversation, False
        conversation = make_conversation(user_id, other_user_id, created_at=self.clock)
        self.conversations.setdefault(user_id, []).append(conversation)
        self.conversations.setdefault(other_user_id, []).append(conversation)
        return conversation, True


@dataclass
class FakeChannelHandle:
    topic: str
    transport: FakeRealtimeTransport
    unsubscribed: bool = False
    fail_unsubscribe: bool = False

    async def unsubscribe(self) -> None:
        self.unsubscribed = True
        self.transport.subscriptions.pop(self.topic, None)
        if self.fail_unsubscribe:
            raise ConnectionError("socket closed")


@dataclass
class FakeRealtimeTransport:
    subscriptions: dict[str, OnRealtimeEvent] = field(default_factory=dict)
    handles: list[FakeChannelHandle] = field(default_factory=list)
    published: list[tuple[str, RealtimeEvent]] = field(default_factory=list)
    fail_subscribe: bool = False
    fail_publish: bool = False

    async def subscribe(self, topic: str, callback: OnRealtimeEvent) -> FakeChannelHandle:
        if self.fail_subscribe:
            raise ConnectionError("realtime unavailable")
        self.subscriptions[topic] = callback
        handle = FakeChannelHandle(topic=topic, transport=self)
        self.handles.append(handle)
        return handle

    async def publish(self, topic: str, event: RealtimeEvent) -> None:
        if self.fail_publish:
            raise ConnectionError("realtime unavailable")
        self.published.append((topic, event))

    async def deliver(self, topic: str, event: RealtimeEvent) -> None:
        await self.subscriptions[topic](event)


@dataclass
class FakeStorage:
    uploads: list[tuple[str, str, int]] = field(default_factory=list)
    error: Exception | None = None

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((filename, content_type, len(data)))
        return f"https://files.example.test/{filename}"


@dataclass
class FakeValidator:
    result: ModerationResult | None = None
    seen: list[str] = field(default_factory=list)

    async def validate(self, text: str) -> ModerationResult:
        self.seen.append(text)
        return self.result or ModerationResult(is_valid=True, message=text)


@dataclass
class RecordingSleep:
    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def user_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def other_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        READ_SETTLE_SECONDS=0.05,
        RETRY_BASE_DELAY_SECONDS=1.0,
        RETRY_MAX_ATTEMPTS=3,
        REFRESH_INTERVAL_SECONDS=0.01,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeChatGateway:
    return FakeChatGateway()


@pytest.fixture
def realtime() -> FakeRealtimeTransport:
    return FakeRealtimeTransport()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def ctx(user_id, gateway, realtime, storage, validator, test_settings, clock) -> SyncContext:
    return SyncContext(
        user_id,
        gateway,
        realtime,
        storage=storage,
        validator=validator,
        settings=test_settings,
        clock=clock,
    )


@pytest_asyncio.fixture
async def orchestrator(ctx, sleep):
    orchestrator = SyncOrchestrator(ctx, sleep=sleep)
    yield orchestrator
    await orchestrator.aclose()


def record(**values: Any) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, UUID) else v for k, v in values.items()}


async def wait_until(predicate, attempts: int = 200, interval: float = 0) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(interval)
    raise AssertionError("condition never became true")
