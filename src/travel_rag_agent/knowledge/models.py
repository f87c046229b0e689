from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ContextRow:
    id: str
    content: str
    distance: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "distance": self.distance}


@dataclass(frozen=True)
class KnowledgeChunk:
    id: int
    chunk_index: int
    content: str
    source: str
    created_at: str
