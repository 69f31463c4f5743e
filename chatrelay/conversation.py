"""
Conversation model and formatting.

Client-side messages use the roles "user" and "bot". The provider expects
"user" and "model" with the text wrapped in parts.
"""

from __future__ import annotations

from dataclasses import dataclass

from chatrelay.config import DEFAULT_HISTORY_WINDOW


@dataclass
class Message:
    role: str
    text: str

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        text = data.get("text")
        return cls(role=str(data.get("role", "user")), text="" if text is None else str(text))

    def to_dict(self) -> dict:
        return {"role": self.role, "text": self.text}


def provider_role(role: str) -> str:
    return "model" if role == "bot" else "user"


def format_conversation(conversation: list[Message]) -> list[dict]:
    """Map client messages to provider content units, one per message, in order."""
    return [
        {"role": provider_role(msg.role), "parts": [{"text": msg.text}]}
        for msg in conversation
    ]


def history_window(conversation: list, size: int = DEFAULT_HISTORY_WINDOW) -> list:
    """The last `size` messages, the part actually sent upstream."""
    if size <= 0:
        return []
    return list(conversation[max(0, len(conversation) - size):])


def excluded_count(total: int, size: int = DEFAULT_HISTORY_WINDOW) -> int:
    return max(0, total - max(size, 0))


def excluded_flags(conversation: list, size: int = DEFAULT_HISTORY_WINDOW) -> list[bool]:
    """Per message: True when it falls outside the window (not in model memory)."""
    cut = excluded_count(len(conversation), size)
    return [i < cut for i in range(len(conversation))]
