from __future__ import annotations

from chat_sync.domain.entities.conversation import Conversation, LastMessage
from chat_sync.domain.entities.profile import Profile
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.profile import ProfileModel


def profile_to_entity(model: ProfileModel) -> Profile:
    return Profile(
        id=model.id,
        username=model.username,
        full_name=model.full_name,
        avatar_url=model.avatar_url,
        last_seen=model.last_seen,
    )


def model_to_entity(model: ConversationModel) -> Conversation:
    last = model.last_message
    return Conversation(
        id=model.id,
        participants=tuple(  # type: ignore[arg-type]
            profile_to_entity(p.profile)
            for p in sorted(model.participants, key=lambda p: p.joined_at)
        ),
        last_message=LastMessage(
            id=last.id,
            content=last.content,
            sender_id=last.sender_id,
            created_at=last.created_at,
        ) if last is not None else None,
        last_message_time=model.last_message_time,
        status=model.status,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
