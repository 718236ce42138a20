from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class ChatUser:
    unique_id: str
    nickname: str
    addressable_name: str | None = None

    def __str__(self) -> str:
        return f"{self.nickname} ({self.unique_id})"


@dataclass(frozen=True)
class ChatMessage:
    sender: ChatUser
    channel: str
    body: str
    is_action: bool = False
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_quote_text(self) -> str:
        if self.is_action:
            return f"*{self.sender.nickname} {self.body}*"
        return self.body
