"""Step runner for the linear commit pipeline."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, TypeVar

from .errors import (
    CodedHydratorError,
    HydratorError,
    OperationCancelledError,
    VersionControlError,
    wrap_step_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """Monotonic deadline supplied by the caller; ``None`` seconds never expires."""

    def __init__(
        self,
        seconds: float | None = None,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        self._now_fn = now_fn or time.monotonic
        self._expires_at = None if not seconds else self._now_fn() + float(seconds)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._now_fn() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._now_fn())


@dataclass(frozen=True)
class StepResult:
    step: str
    status: Literal["ok", "error", "cancelled"]
    elapsed_ms: float
    error_code: str = ""


@dataclass
class StepRunner:
    """Run named steps in order, short-circuiting on the first failure.

    Each step is checked against the deadline before it starts, logged with its
    elapsed time, and recorded as a ``StepResult``. Errors leave the runner
    wrapped with the step name.
    """

    correlation_id: str
    deadline: Deadline = field(default_factory=Deadline)
    context: dict[str, Any] = field(default_factory=dict)
    results: list[StepResult] = field(default_factory=list)

    def run(
        self,
        step: str,
        operation: Callable[[], T],
        error_type: type[CodedHydratorError] = VersionControlError,
    ) -> T:
        if self.deadline.expired:
            self._record(step, "cancelled", 0.0, OperationCancelledError.error_code.value)
            raise OperationCancelledError(
                f"deadline exceeded before {step.replace('_', ' ')}",
                details={"step": step},
            )

        started = time.perf_counter()
        try:
            result = operation()
        except HydratorError as exc:
            self._record(step, "error", time.perf_counter() - started, exc.code.value)
            wrap_step_error(step, exc)
            raise
        except Exception as exc:  # noqa: BLE001
            wrapped = error_type(str(exc) or exc.__class__.__name__)
            self._record(step, "error", time.perf_counter() - started, wrapped.code.value)
            raise wrap_step_error(step, wrapped) from exc

        self._record(step, "ok", time.perf_counter() - started)
        return result

    @property
    def failed_step(self) -> str:
        for item in self.results:
            if item.status != "ok":
                return item.step
        return ""

    def _record(self, step: str, status: str, elapsed_seconds: float, error_code: str = "") -> None:
        result = StepResult(
            step=step,
            status=status,  # type: ignore[arg-type]
            elapsed_ms=round(elapsed_seconds * 1000, 3),
            error_code=error_code,
        )
        self.results.append(result)
        payload: dict[str, Any] = {
            "event_type": "hydrator_step",
            "correlation_id": self.correlation_id,
            "step": step,
            "status": status,
            "elapsed_ms": result.elapsed_ms,
            **self.context,
        }
        if error_code:
            payload["error_code"] = error_code
        log = logger.info if status == "ok" else logger.error
        log("hydrator_step %s", json.dumps(payload, ensure_ascii=True, sort_keys=True))
