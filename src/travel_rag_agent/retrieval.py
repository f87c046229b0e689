from __future__ import annotations

from loguru import logger

from travel_rag_agent.embedding import Embedder
from travel_rag_agent.errors import RetrievalFailure
from travel_rag_agent.knowledge.models import ContextRow
from travel_rag_agent.knowledge.store import KnowledgeStore

DEFAULT_TOP_K = 5
DEFAULT_CHUNK_CHARS = 1500


def build_context_prompt(rows: list[ContextRow]) -> str:
    return "\n\n".join(f"Context {i + 1}:\n{row.content}" for i, row in enumerate(rows))


def chunk_text(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> list[str]:
    """Split text into chunks on paragraph boundaries.

    Paragraphs are packed greedily up to ``max_chars``; a single paragraph
    longer than that is split hard.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    paragraphs = [p.strip() for p in text.replace("\r\n", "\n").split("\n\n")]
    chunks: list[str] = []
    current = ""
    for paragraph in paragraphs:
        if not paragraph:
            continue
        while len(paragraph) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(paragraph[:max_chars])
            paragraph = paragraph[max_chars:].lstrip()
        if not paragraph:
            continue
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) > max_chars:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def _check_top_k(top_k: object) -> int:
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
        raise ValueError(f"top_k must be a positive integer, got {top_k!r}")
    return top_k


class RetrievalService:
    def __init__(self, embedder: Embedder, store: KnowledgeStore):
        self._embedder = embedder
        self._store = store

    async def retrieve_context(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[ContextRow]:
        """Embed ``query`` and return the ``top_k`` closest stored rows, closest first.

        Raises:
            ValueError: ``top_k`` is not a positive integer.
            RetrievalFailure: the embedder or the store failed. Not retried.
        """
        _check_top_k(top_k)
        try:
            vector = await self._embedder.embed(query)
            rows = self._store.nearest(vector, top_k)
        except Exception as ex:
            logger.warning(f"Context retrieval failed: {type(ex).__name__}: {ex}")
            raise RetrievalFailure(f"Context retrieval failed: {ex}") from ex
        logger.debug(f"Retrieved {len(rows)} context rows (top_k={top_k})")
        return rows

    async def generate_context(self, query: str, top_k: int = DEFAULT_TOP_K) -> str:
        return build_context_prompt(await self.retrieve_context(query, top_k))

    async def ingest_text(self, text: str, source: str = "none", *, max_chars: int = DEFAULT_CHUNK_CHARS) -> list[int]:
        chunks = chunk_text(text, max_chars)
        ids: list[int] = []
        try:
            for index, chunk in enumerate(chunks):
                vector = await self._embedder.embed(chunk)
                ids.append(self._store.add(chunk, vector, chunk_index=index, source=source))
        except Exception as ex:
            raise RetrievalFailure(f"Ingestion failed after {len(ids)} chunk(s): {ex}") from ex
        logger.info(f"Ingested {len(ids)} chunk(s) from source={source}")
        return ids
