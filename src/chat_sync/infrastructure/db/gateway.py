"""ChatGateway backed by Postgres through SQLAlchemy asyncio."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from chat_sync.application.dto.message import NewMessage
from chat_sync.application.exceptions import NetworkError
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ConversationStatus, ThreadKind
from chat_sync.infrastructure.db.mappers import conversation as conversation_mapper
from chat_sync.infrastructure.db.mappers import message as message_mapper
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel

logger = logging.getLogger(__name__)


class SqlAlchemyChatGateway:
    """Implements application.ports.persistence.ChatGateway.

    Each call runs in its own session; connection-level failures surface
    as NetworkError so the retry controller can treat them as transient.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            raise NetworkError(str(exc.orig) if exc.orig else str(exc)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise NetworkError(str(exc)) from exc
            raise
        except (OSError, TimeoutError) as exc:
            raise NetworkError(str(exc) or type(exc).__name__) from exc

    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(ParticipantModel.participant_id == user_id)
            .order_by(
                ConversationModel.last_message_time.desc().nullslast(),
                ConversationModel.created_at.desc(),
            )
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            models = result.unique().scalars().all()
        conversations = []
        for model in models:
            if len(model.participants) != 2:
                logger.warning(
                    "Skipping conversation %s with %d participants",
                    model.id, len(model.participants),
                )
                continue
            conversations.append(conversation_mapper.model_to_entity(model))
        return conversations

    async def get_unread_counts(self, user_id: UUID) -> dict[UUID, int]:
        stmt = select(ParticipantModel.conversation_id, ParticipantModel.unread_count).where(
            ParticipantModel.participant_id == user_id,
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return {row.conversation_id: row.unread_count for row in result.all()}

    async def list_messages(
        self, thread_id: UUID, kind: ThreadKind = ThreadKind.CONVERSATION,
    ) -> list[Message]:
        column = MessageModel.order_id if kind == ThreadKind.ORDER else MessageModel.conversation_id
        stmt = (
            select(MessageModel)
            .where(column == thread_id)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [message_mapper.model_to_entity(m) for m in result.scalars().all()]

    async def insert_message(self, message: NewMessage) -> Message:
        attachment = message.attachment
        stmt = (
            pg_insert(MessageModel)
            .values(
                conversation_id=message.conversation_id,
                order_id=message.order_id,
                sender_id=message.sender_id,
                content=message.content,
                message_type=message.message_type.value,
                read=False,
                attachment_url=attachment.url if attachment else None,
                attachment_type=attachment.type if attachment else None,
                attachment_name=attachment.name if attachment else None,
            )
            .returning(MessageModel)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            row = result.scalar_one()
            if message.conversation_id is not None:
                await session.execute(
                    update(ConversationModel)
                    .where(ConversationModel.id == message.conversation_id)
                    .values(last_message_id=row.id, last_message_time=row.created_at)
                )
                await session.execute(
                    update(ParticipantModel)
                    .where(
                        ParticipantModel.conversation_id == message.conversation_id,
                        ParticipantModel.participant_id != message.sender_id,
                    )
                    .values(unread_count=ParticipantModel.unread_count + 1)
                )
            await session.commit()
            return message_mapper.model_to_entity(row)

    async def mark_messages_read(
        self,
        thread_id: UUID,
        user_id: UUID,
        message_ids: list[UUID],
    ) -> None:
        if not message_ids:
            return
        async with self._session() as session:
            result = await session.execute(
                update(MessageModel)
                .where(
                    MessageModel.id.in_(message_ids),
                    or_(
                        MessageModel.conversation_id == thread_id,
                        MessageModel.order_id == thread_id,
                    ),
                    MessageModel.sender_id != user_id,
                    MessageModel.read.is_(False),
                )
                .values(read=True)
            )
            flipped = result.rowcount or 0
            if flipped:
                await session.execute(
                    update(ParticipantModel)
                    .where(
                        ParticipantModel.conversation_id == thread_id,
                        ParticipantModel.participant_id == user_id,
                    )
                    .values(
                        unread_count=func.greatest(ParticipantModel.unread_count - flipped, 0),
                        last_read_message_id=message_ids[-1],
                    )
                )
            await session.commit()
        logger.debug("Marked %d/%d messages read in %s", flipped, len(message_ids), thread_id)

    async def get_or_create_conversation(
        self,
        user_id: UUID,
        other_user_id: UUID,
    ) -> tuple[Conversation, bool]:
        mine = aliased(ParticipantModel)
        theirs = aliased(ParticipantModel)
        stmt = (
            select(ConversationModel)
            .join(mine, mine.conversation_id == ConversationModel.id)
            .join(theirs, theirs.conversation_id == ConversationModel.id)
            .where(mine.participant_id == user_id, theirs.participant_id == other_user_id)
            .limit(1)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            existing = result.unique().scalar_one_or_none()
            if existing is not None:
                return conversation_mapper.model_to_entity(existing), False

            model = ConversationModel(status=ConversationStatus.ACTIVE.value)
            session.add(model)
            await session.flush()
            await session.execute(
                pg_insert(ParticipantModel)
                .values([
                    {"conversation_id": model.id, "participant_id": user_id},
                    {"conversation_id": model.id, "participant_id": other_user_id},
                ])
                .on_conflict_do_nothing(constraint="uq_participant_member")
            )
            await session.commit()
            created = await session.get(
                ConversationModel, model.id, populate_existing=True,
            )
            assert created is not None
            return conversation_mapper.model_to_entity(created), True
