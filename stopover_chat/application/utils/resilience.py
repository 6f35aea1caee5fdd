from __future__ import annotations

import copy
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from stopover_chat.application.exceptions import PersistenceError

T = TypeVar("T")

SERVICES = ("kv", "assets", "durable-objects")
MAX_RECORDED_ERRORS = 100
HEALTH_WINDOW_SECONDS = 5 * 60

_RETRYABLE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (r"timeout", r"timed out", r"network", r"connection", r"rate limit", r"throttle", r"502", r"503", r"504")
)

_MISSING = object()

# Returned when every attempt failed and no local fallback applies.
GRACEFUL_DEFAULTS: dict[str, Any] = {
    "kv:get-session": None,
    "kv:set-session": False,
    "kv:get-conversation-context": None,
    "kv:set-conversation-context": False,
    "assets:get-asset-urls": {},
    "durable-objects:init": False,
    "durable-objects:get-state": None,
    "durable-objects:update": False,
    "durable-objects:message": False,
}


@dataclass(frozen=True)
class ServiceError:
    service: str
    operation: str
    error: str
    timestamp: float
    retryable: bool


def is_retryable(error: BaseException) -> bool:
    """Only errors that look transient are retried."""
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    if getattr(error, "retryable", False) is True:
        return True
    message = str(error)
    return any(pattern.search(message) for pattern in _RETRYABLE_PATTERNS)


class ResilientExecutor:
    """Runs storage operations with bounded retries and a fallback chain.

    After retries run out the result comes from, in order: the caller's
    fallback value, the static local fallback table, the graceful default.
    With graceful degradation on, execute() never raises.
    """

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        exponential_backoff: bool = True,
        fallback_to_local: bool = True,
        graceful_degradation: bool = True,
        local_fallbacks: dict[str, Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._exponential_backoff = exponential_backoff
        self._fallback_to_local = fallback_to_local
        self._graceful_degradation = graceful_degradation
        self._local_fallbacks = dict(local_fallbacks or {})
        self._sleep = sleep
        self._clock = clock
        self._errors: list[ServiceError] = []
        self._logger = logging.getLogger(__name__)

    def retry_delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if not self._exponential_backoff:
            return self._retry_delay
        return self._retry_delay * (2 ** (attempt - 1))

    def execute(
        self,
        operation: Callable[[], T],
        service: str,
        operation_name: str,
        fallback_value: Any = _MISSING,
    ) -> T:
        last_error: Exception | None = None
        attempt = 0
        while attempt <= self._max_retries:
            try:
                return operation()
            except Exception as e:
                last_error = e
                attempt += 1
                retryable = is_retryable(e)
                self._record(service, operation_name, e, retryable)
                if attempt <= self._max_retries and retryable:
                    self._sleep(self.retry_delay_for(attempt))
                    continue
                break

        key = f"{service}:{operation_name}"
        if self._fallback_to_local and fallback_value is not _MISSING:
            self._logger.warning("Using caller fallback", extra={"service": service, "operation": operation_name})
            return fallback_value
        if self._fallback_to_local and key in self._local_fallbacks:
            self._logger.warning("Using local fallback", extra={"service": service, "operation": operation_name})
            return copy.deepcopy(self._local_fallbacks[key])
        if self._graceful_degradation:
            return copy.deepcopy(GRACEFUL_DEFAULTS.get(key))
        raise PersistenceError(f"{key} failed: {last_error}", service=service, operation=operation_name) from last_error

    def _record(self, service: str, operation: str, error: Exception, retryable: bool) -> None:
        self._errors.append(
            ServiceError(
                service=service,
                operation=operation,
                error=str(error) or type(error).__name__,
                timestamp=self._clock(),
                retryable=retryable,
            )
        )
        if len(self._errors) > MAX_RECORDED_ERRORS:
            self._errors = self._errors[-MAX_RECORDED_ERRORS:]
        self._logger.error(
            "Data service error",
            extra={"service": service, "operation": operation, "reason": str(error), "retryable": retryable},
        )

    def error_stats(self) -> dict[str, Any]:
        by_service: dict[str, int] = {}
        by_operation: dict[str, int] = {}
        for err in self._errors:
            by_service[err.service] = by_service.get(err.service, 0) + 1
            by_operation[err.operation] = by_operation.get(err.operation, 0) + 1
        return {
            "total": len(self._errors),
            "byService": by_service,
            "byOperation": by_operation,
            "recentErrors": [
                {
                    "service": e.service,
                    "operation": e.operation,
                    "error": e.error,
                    "timestamp": e.timestamp,
                    "retryable": e.retryable,
                }
                for e in self._errors[-10:]
            ],
        }

    def service_health(self) -> dict[str, str]:
        cutoff = self._clock() - HEALTH_WINDOW_SECONDS
        health = {}
        for service in SERVICES:
            count = sum(1 for e in self._errors if e.service == service and e.timestamp > cutoff)
            if count == 0:
                health[service] = "healthy"
            elif count < 5:
                health[service] = "degraded"
            else:
                health[service] = "unhealthy"
        return health

    def clear_errors(self) -> None:
        self._errors = []
