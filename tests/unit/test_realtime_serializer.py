from __future__ import annotations

import json
import uuid
from datetime import datetime

from chat_sync.application.dto.events import MessageRecord, RealtimeEvent
from chat_sync.domain.value_objects.enums import MessageType, RealtimeEventType
from chat_sync.infrastructure.realtime.serializer import deserialize_event, serialize_event
from tests.conftest import T0, make_message, message_insert_event


def test_serialized_event_is_plain_json():
    event = RealtimeEvent(
        type=RealtimeEventType.UPDATE,
        table="conversation_participants",
        record={"conversation_id": uuid.UUID(int=7), "unread_count": 0},
    )

    payload = json.loads(serialize_event(event))

    assert payload["type"] == "UPDATE"
    assert payload["record"]["conversation_id"] == str(uuid.UUID(int=7))
    assert payload["old_record"] is None


def test_record_datetimes_are_iso_strings():
    event = RealtimeEvent(
        type=RealtimeEventType.INSERT,
        table="messages",
        record={"id": uuid.uuid4(), "created_at": T0},
    )

    payload = json.loads(serialize_event(event))

    assert datetime.fromisoformat(payload["record"]["created_at"]) == T0


def test_insert_event_decodes_to_message_entity():
    message = make_message(uuid.uuid4(), uuid.uuid4(), created_at=T0, content="hi")

    event = deserialize_event(serialize_event(message_insert_event(message)))
    entity = MessageRecord.model_validate(event.record).to_entity()

    assert event.is_database_change is True
    assert entity.id == message.id
    assert entity.created_at == T0
    assert entity.read is False
    assert entity.message_type == MessageType.TEXT
    assert entity.attachment is None


def test_attachment_columns_become_attachment():
    record = MessageRecord(
        id=uuid.uuid4(),
        conversation_id=uuid.uuid4(),
        sender_id=uuid.uuid4(),
        created_at=T0,
        message_type=MessageType.ATTACHMENT,
        attachment_url="https://files/a.pdf",
        attachment_name="a.pdf",
    )

    attachment = record.to_entity().attachment

    assert attachment is not None
    assert attachment.url == "https://files/a.pdf"
    assert attachment.type == "application/octet-stream"


def test_typing_events_are_not_database_changes():
    event = RealtimeEvent(type=RealtimeEventType.TYPING, table="typing")
    assert event.is_database_change is False
