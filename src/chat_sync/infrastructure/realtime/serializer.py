from __future__ import annotations

from chat_sync.application.dto.events import RealtimeEvent


def serialize_event(event: RealtimeEvent) -> str:
    return event.model_dump_json()


def deserialize_event(raw: str | bytes) -> RealtimeEvent:
    return RealtimeEvent.model_validate_json(raw)
