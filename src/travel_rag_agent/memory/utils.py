from __future__ import annotations

import re
import secrets
import time
from datetime import UTC, datetime

SESSION_ID_PREFIX = "chat_"
TITLE_MAX_LENGTH = 50

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_WHITESPACE = re.compile(r"\s+")


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id(now_ms: int | None = None) -> str:
    """Time-ordered id with a random suffix, e.g. ``chat_m1x2y3z4_k9f0qa``.

    The ``chat_`` prefix keeps generated ids distinguishable from anything a
    caller might send in.
    """
    timestamp = _to_base36(now_ms if now_ms is not None else time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{SESSION_ID_PREFIX}{timestamp}_{suffix}"


def generate_session_title(first_message: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    cleaned = _WHITESPACE.sub(" ", first_message).strip()
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3] + "..."
