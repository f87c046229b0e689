from __future__ import annotations

import numpy as np

from travel_rag_agent.knowledge.models import ContextRow, KnowledgeChunk
from travel_rag_agent.memory.utils import utc_now
from travel_rag_agent.storage import Database


class KnowledgeStore:
    """Embedded knowledge fragments with cosine-distance nearest-neighbour lookup.

    Embeddings are stored as float32 blobs. ``nearest`` mirrors pgvector's
    ``<=>`` operator: distance = 1 - cosine similarity, ascending.
    """

    def __init__(self, db: Database):
        self._db = db

    def add(self, content: str, embedding: list[float], *, chunk_index: int = 0, source: str = "none") -> int:
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.size == 0:
            raise ValueError("Embedding must be a non-empty flat vector")

        with self._db.transaction():
            cursor = self._db.execute(
                """
                INSERT INTO embeddings (chunk_index, content, source, dimensions, embedding, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (chunk_index, content, source, int(vector.size), vector.tobytes(), utc_now()),
            )
        return int(cursor.lastrowid)

    def count(self) -> int:
        row = self._db.execute("SELECT COUNT(*) AS c FROM embeddings").fetchone()
        return int(row["c"])

    def get(self, chunk_id: int) -> KnowledgeChunk | None:
        row = self._db.execute(
            "SELECT id, chunk_index, content, source, created_at FROM embeddings WHERE id = ? LIMIT 1",
            (chunk_id,),
        ).fetchone()
        if row is None:
            return None
        return KnowledgeChunk(
            id=int(row["id"]),
            chunk_index=int(row["chunk_index"]),
            content=str(row["content"]),
            source=str(row["source"]),
            created_at=str(row["created_at"]),
        )

    def nearest(self, vector: list[float], k: int) -> list[ContextRow]:
        query = np.asarray(vector, dtype=np.float32)
        rows = self._db.execute(
            "SELECT id, content, dimensions, embedding FROM embeddings ORDER BY id ASC"
        ).fetchall()
        if not rows or k <= 0:
            return []

        for row in rows:
            if int(row["dimensions"]) != query.size:
                raise ValueError(
                    f"Embedding dimension mismatch: query has {query.size}, row {row['id']} has {row['dimensions']}"
                )

        matrix = np.stack([np.frombuffer(row["embedding"], dtype=np.float32) for row in rows])
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarity = np.where(norms > 0, matrix @ query / norms, 0.0)
        distances = 1.0 - similarity

        # Stable sort keeps insertion order among equal distances
        order = np.argsort(distances, kind="stable")[:k]
        return [
            ContextRow(
                id=str(rows[i]["id"]),
                content=str(rows[i]["content"]),
                distance=float(distances[i]),
            )
            for i in order
        ]
