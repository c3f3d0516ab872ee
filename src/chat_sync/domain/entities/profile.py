from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Profile:
    id: UUID
    username: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    last_seen: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "User"
