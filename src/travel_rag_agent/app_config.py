from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

RESPONSE_FORMATS = ("json", "markdown")


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str
    openai_api_key: str
    brave_api_key: str | None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    embedding_model: str
    max_tokens: int
    temperature: float
    response_format: str
    top_k: int
    history_window: int
    memory_enabled: bool
    db_path: str
    model_timeout_seconds: float
    tool_timeout_seconds: float
    custom_api_url: str | None
    log_level: str
    log_consumers: list | None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _positive_int(value: object, name: str) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return number


def parse_app_config(config: dict) -> AppConfig:
    response_format = str(config.get("ResponseFormat", "json")).strip().lower()
    if response_format not in RESPONSE_FORMATS:
        raise ValueError(f"Unknown ResponseFormat: {response_format!r}. Supported: {', '.join(RESPONSE_FORMATS)}")

    return AppConfig(
        provider_name=str(config.get("Provider", "openai")).strip().lower(),
        model=config.get("Model", "gpt-4.1"),
        embedding_model=config.get("EmbeddingModel", "text-embedding-ada-002"),
        max_tokens=int(config.get("MaxTokens", 2048)),
        temperature=float(config.get("Temperature", 0.7)),
        response_format=response_format,
        top_k=_positive_int(config.get("TopK", 5), "TopK"),
        history_window=_positive_int(config.get("HistoryWindow", 8), "HistoryWindow"),
        memory_enabled=_to_bool(config.get("MemoryEnabled", True), default=True),
        db_path=str(config.get("DbPath", ".travel_rag/travel.db")),
        model_timeout_seconds=float(config.get("ModelTimeoutSeconds", 60)),
        tool_timeout_seconds=float(config.get("ToolTimeoutSeconds", 30)),
        custom_api_url=str(config.get("CustomApiUrl", "")).strip() or None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    openai_api_key = os.environ.get("OPENAI_API_KEY", "")
    if provider_name == "anthropic":
        provider_api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        provider_env_var = "ANTHROPIC_API_KEY"
    else:
        provider_api_key = openai_api_key
        provider_env_var = "OPENAI_API_KEY"

    return RuntimeEnv(
        provider_api_key=provider_api_key,
        provider_env_var=provider_env_var,
        openai_api_key=openai_api_key,
        brave_api_key=os.environ.get("BRAVE_API_KEY"),
    )
