from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

STATUS_VALUES = ("pending", "executing", "completed", "failed")

STEP_ANALYZE = 1
STEP_PREPARE = 2
STEP_MODEL_CALL = 3
STEP_TOOL = 4
STEP_FOLLOW_UP = 5
STEP_FINALIZE = 6
STEP_FAILURE = -1


@dataclass(frozen=True)
class StatusEvent:
    step: int
    description: str
    status: str
    timestamp: int
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "step": self.step,
            "description": self.description,
            "status": self.status,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


StatusObserver = Callable[[StatusEvent], None]


class StatusMessages:
    ANALYZING_QUERY = "Analyzing your query and preparing request"
    SESSION_CREATED = "Chat session created"
    HISTORY_LOADED = "Chat history loaded"
    QUERY_ANALYZED = "Query analyzed"
    QUERY_PREPARED = "Query prepared, calling the model"
    WAITING_MODEL = "Waiting for model response"
    RECEIVED_RESPONSE = "Received initial response from the model"
    SENDING_TOOL_RESULTS = "Sending tool results back to the model"
    RECEIVED_FINAL = "Received final response from the model"
    RESPONSE_COMPLETE = "Response generation completed"
    RESPONSE_COMPLETE_NO_TOOLS = "Response generation completed (no tools needed)"

    @staticmethod
    def executing_tool(tool_type: str) -> str:
        return f"Executing {tool_type}"

    @staticmethod
    def tool_completed(tool_type: str) -> str:
        return f"{tool_type} completed successfully"

    @staticmethod
    def tool_failed(tool_type: str, error: str) -> str:
        return f"{tool_type} failed: {error}"

    @staticmethod
    def default_behavior(tool_type: str) -> str:
        return f"Using default behavior for {tool_type}"

    @staticmethod
    def error_occurred(error: str) -> str:
        return f"Error occurred: {error}"


def epoch_ms() -> int:
    return int(time.time() * 1000)


class StatusTracker:
    """Ordered log of pipeline transitions for a single run.

    Every transition is appended to the log and then pushed synchronously to
    the observer, if one was given. One tracker belongs to exactly one run.
    Timestamps never go backwards within a run, even if the clock does.
    """

    def __init__(
        self,
        observer: StatusObserver | None = None,
        *,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._observer = observer
        self._clock = clock
        self._steps: list[StatusEvent] = []

    def pending(self, step: int, description: str, data: dict[str, Any] | None = None) -> StatusEvent:
        return self._record(step, description, "pending", data)

    def executing(self, step: int, description: str, data: dict[str, Any] | None = None) -> StatusEvent:
        return self._record(step, description, "executing", data)

    def completed(self, step: int, description: str, data: dict[str, Any] | None = None) -> StatusEvent:
        return self._record(step, description, "completed", data)

    def failed(self, step: int, description: str, data: dict[str, Any] | None = None) -> StatusEvent:
        return self._record(step, description, "failed", data)

    def get_steps(self) -> list[StatusEvent]:
        return list(self._steps)

    def get_latest_status(self) -> StatusEvent | None:
        return self._steps[-1] if self._steps else None

    def has_failures(self) -> bool:
        return any(event.status == "failed" for event in self._steps)

    def get_failures(self) -> list[StatusEvent]:
        return [event for event in self._steps if event.status == "failed"]

    def reset(self) -> None:
        self._steps.clear()

    def get_summary(self) -> dict[str, int]:
        counts = {status: 0 for status in STATUS_VALUES}
        for event in self._steps:
            counts[event.status] += 1
        duration = self._steps[-1].timestamp - self._steps[0].timestamp if self._steps else 0
        return {
            "totalSteps": len(self._steps),
            "completed": counts["completed"],
            "failed": counts["failed"],
            "executing": counts["executing"],
            "pending": counts["pending"],
            "duration": duration,
        }

    def _record(self, step: int, description: str, status: str, data: dict[str, Any] | None) -> StatusEvent:
        timestamp = int(self._clock())
        if self._steps and timestamp < self._steps[-1].timestamp:
            timestamp = self._steps[-1].timestamp
        event = StatusEvent(
            step=step,
            description=description,
            status=status,
            timestamp=timestamp,
            data=data,
        )
        self._steps.append(event)
        if self._observer is not None:
            try:
                self._observer(event)
            except Exception as ex:
                # Observer errors never reach the pipeline; the step stays in the log
                logger.warning(f"Status observer failed on step {step}: {type(ex).__name__}: {ex}")
        return event
