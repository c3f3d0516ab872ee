from __future__ import annotations

import uuid
from datetime import timedelta

from chat_sync.infrastructure.db.mappers import conversation as conversation_mapper
from chat_sync.infrastructure.db.mappers import message as message_mapper
from chat_sync.infrastructure.db.models import (
    ConversationModel,
    MessageModel,
    ParticipantModel,
    ProfileModel,
)
from tests.conftest import T0


def _participant(conversation_id, joined_at, username):
    profile = ProfileModel(id=uuid.uuid4(), username=username)
    return ParticipantModel(
        conversation_id=conversation_id,
        participant_id=profile.id,
        joined_at=joined_at,
        profile=profile,
    )


def test_conversation_model_maps_participants_in_join_order():
    cid = uuid.uuid4()
    second = _participant(cid, T0 + timedelta(seconds=1), "seller")
    first = _participant(cid, T0, "buyer")
    last = MessageModel(
        id=uuid.uuid4(),
        conversation_id=cid,
        sender_id=first.participant_id,
        content="is it available?",
        created_at=T0,
    )
    model = ConversationModel(
        id=cid,
        status="active",
        last_message_time=T0,
        created_at=T0,
        updated_at=T0,
        participants=[second, first],
        last_message=last,
    )

    entity = conversation_mapper.model_to_entity(model)

    assert [p.username for p in entity.participants] == ["buyer", "seller"]
    assert entity.last_message is not None
    assert entity.last_message.content == "is it available?"
    assert entity.is_active


def test_message_model_maps_attachment_columns():
    model = MessageModel(
        id=uuid.uuid4(),
        conversation_id=uuid.uuid4(),
        sender_id=uuid.uuid4(),
        content="",
        message_type="attachment",
        read=False,
        attachment_url="https://files/photo.jpg",
        attachment_type="image/jpeg",
        attachment_name="photo.jpg",
        created_at=T0,
    )

    entity = message_mapper.model_to_entity(model)

    assert entity.attachment is not None
    assert entity.attachment.type == "image/jpeg"
    assert entity.read is False
    assert entity.thread_id == model.conversation_id
