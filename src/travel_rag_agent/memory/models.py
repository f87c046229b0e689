from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Session:
    session_id: str
    title: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class Message:
    id: str
    session_id: str
    seq: int
    role: str
    content: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "seq": self.seq,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class SessionWithMessages:
    session: Session
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.session.to_dict()
        data["messages"] = [m.to_dict() for m in self.messages]
        return data
