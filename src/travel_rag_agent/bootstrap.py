from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from travel_rag_agent.app_config import AppConfig, RuntimeEnv, load_json_config, parse_app_config, resolve_runtime_env
from travel_rag_agent.embedding import Embedder, OpenAIEmbedder
from travel_rag_agent.knowledge.store import KnowledgeStore
from travel_rag_agent.logging_config import setup_logging
from travel_rag_agent.memory import MemoryStore
from travel_rag_agent.orchestrator import ConversationOrchestrator
from travel_rag_agent.provider import LLMProvider, create_provider
from travel_rag_agent.retrieval import RetrievalService
from travel_rag_agent.storage import Database
from travel_rag_agent.tool import Tool
from travel_rag_agent.tool_dispatcher import ToolDispatcher
from travel_rag_agent.tool_registry import get_all


@dataclass
class AppRuntime:
    orchestrator: ConversationOrchestrator
    database: Database
    memory_store: MemoryStore | None
    knowledge_store: KnowledgeStore
    retrieval: RetrievalService
    dispatcher: ToolDispatcher
    tools: list[Tool]
    log_descriptions: list[str]

    def close(self) -> None:
        self.database.close()


def _resolve_db_path(db_path: str) -> str:
    if db_path == ":memory:":
        return db_path
    path = Path(db_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    return str(path)


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    provider: LLMProvider | None = None,
    embedder: Embedder | None = None,
) -> AppRuntime:
    """Construct every collaborator once and wire them into the orchestrator."""
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    database = Database(_resolve_db_path(app.db_path))
    knowledge_store = KnowledgeStore(database)
    retrieval = RetrievalService(
        embedder or OpenAIEmbedder(env.openai_api_key, app.embedding_model),
        knowledge_store,
    )

    memory_store: MemoryStore | None = None
    if app.memory_enabled:
        memory_store = MemoryStore(database)

    tools = get_all(
        retrieval=retrieval,
        brave_api_key=env.brave_api_key,
        custom_api_url=app.custom_api_url,
        tool_timeout_seconds=app.tool_timeout_seconds,
    )
    dispatcher = ToolDispatcher(tools, timeout_seconds=app.tool_timeout_seconds)

    orchestrator = ConversationOrchestrator(
        provider=provider or create_provider(app.provider_name, env.provider_api_key),
        retrieval=retrieval,
        dispatcher=dispatcher,
        model=app.model,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        memory=memory_store,
        memory_enabled=app.memory_enabled,
        response_format=app.response_format,
        history_window=app.history_window,
        top_k=app.top_k,
        model_timeout_seconds=app.model_timeout_seconds,
    )
    logger.info(
        f"Runtime ready: provider={app.provider_name}, model={app.model}, "
        f"format={app.response_format}, memory={app.memory_enabled}, tools={[t.name for t in tools]}"
    )

    return AppRuntime(
        orchestrator=orchestrator,
        database=database,
        memory_store=memory_store,
        knowledge_store=knowledge_store,
        retrieval=retrieval,
        dispatcher=dispatcher,
        tools=tools,
        log_descriptions=log_descriptions,
    )


def load_runtime(config_path: Path | None = None) -> AppRuntime:
    """Load ``.env`` and ``config.json`` and bootstrap the runtime from them."""
    load_dotenv()
    app = parse_app_config(load_json_config(config_path))
    env = resolve_runtime_env(app.provider_name)
    if not env.provider_api_key:
        raise ValueError(f"{env.provider_env_var} environment variable is required.")
    if not env.openai_api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required for embeddings.")
    return bootstrap_runtime(app, env)
