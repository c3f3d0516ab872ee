from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class ModerationResult:
    """Outcome of content moderation.

    ``message`` is the text to send, possibly censored; it is used as-is.
    """

    is_valid: bool
    message: str
    warning_message: str | None = None
    should_notify_moderator: bool = False
    errors: list[str] = field(default_factory=list)
