from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(frozen=True, slots=True)
class UnreadCountsChanged:
    total: int
    by_conversation: dict[UUID, int] = field(default_factory=dict)
