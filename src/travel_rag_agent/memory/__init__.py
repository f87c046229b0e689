from travel_rag_agent.memory.models import Message, Session, SessionWithMessages
from travel_rag_agent.memory.store import MemoryStore
from travel_rag_agent.memory.utils import generate_session_id, generate_session_title

__all__ = [
    "MemoryStore",
    "Message",
    "Session",
    "SessionWithMessages",
    "generate_session_id",
    "generate_session_title",
]
