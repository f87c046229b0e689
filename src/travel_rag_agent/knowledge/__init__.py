from travel_rag_agent.knowledge.models import ContextRow, KnowledgeChunk
from travel_rag_agent.knowledge.store import KnowledgeStore

__all__ = ["ContextRow", "KnowledgeChunk", "KnowledgeStore"]
