from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageReceived:
    message: Message
    own: bool
