"""Per-session chat state.

Each conversation owns its ChatSession; handlers receive it explicitly
instead of reading a shared global store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from forwardops.chat.modes import MODES, AssistantMode, detect_mode

logger = structlog.get_logger(logger_name=__name__)

_ROLES = frozenset({"system", "user", "assistant"})


@dataclass
class ChatMessage:
    role: str
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unknown message role {self.role!r}")

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatSession:
    """State of one conversation: owner, active assistant mode and history."""

    owner_id: str | None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    mode: AssistantMode = AssistantMode.GENERAL_SUPPORT
    messages: list[ChatMessage] = field(default_factory=list)
    title: str | None = None

    def add_message(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self.messages.append(message)
        return message

    def switch_mode(self, mode: AssistantMode) -> bool:
        """Activate *mode*; returns False (and records nothing) if already active."""
        mode = AssistantMode(mode)
        if mode == self.mode:
            return False
        self.mode = mode
        self.add_message("system", f"Switched to {MODES[mode].title}.")
        logger.debug("Mode switched", session_id=self.session_id, mode=mode.value)
        return True

    def detect_and_switch(self, text: str) -> AssistantMode:
        """Switch to the mode detected in *text*, if any; return the active mode."""
        detected = detect_mode(text)
        if detected is not None:
            self.switch_mode(detected)
        return self.mode

    def recent_messages(self, limit: int = 10) -> list[ChatMessage]:
        """Return the last *limit* user/assistant messages, oldest first."""
        history = [m for m in self.messages if m.role != "system"]
        return history[-limit:] if limit > 0 else []

    def clear(self) -> None:
        """Drop the history but keep the active mode."""
        self.messages.clear()
