"""
Resilience Patterns — Retry with Backoff, Circuit Breaker, bounded calls.

Applied to every collaborator call (inference, learning). Whatever goes wrong
inside a collaborator reaches the core as DependencyError; the core's own
errors pass through unchanged.
"""

import asyncio
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from pricecast.errors import DependencyError, PriceCastError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# ── Retry with Exponential Backoff ─────────────────────────────────────────


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Retry an async function with exponential backoff and jitter.

    Strategy: base_delay * 2^attempt + random(0, jitter)
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt == max_retries:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            delay += random.uniform(0, jitter)
            logger.warning(
                "retry_attempt",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")


# ── Circuit Breaker ─────────────────────────────────────────────────────────


class CircuitState(str, Enum):
    CLOSED = "closed"       # Normal operation
    OPEN = "open"           # Rejecting all requests
    HALF_OPEN = "half_open" # Testing with one request


class CircuitOpenError(Exception):
    """Raised when a circuit breaker is open and rejects a call."""


class CircuitBreaker:
    """
    Stop hammering a collaborator that keeps failing.

    States: CLOSED → OPEN → HALF_OPEN → CLOSED
    - CLOSED: normal. After `failure_threshold` failures in `window_seconds` → OPEN
    - OPEN: reject immediately for `recovery_timeout` seconds
    - HALF_OPEN: allow 1 request. Success → CLOSED; Failure → OPEN
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout

        self._state = CircuitState.CLOSED
        self._failures: list[float] = []
        self._opened_at: float = 0.0
        self._half_open_in_progress = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", breaker=self.name)
        return self._state

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute fn through the circuit breaker."""
        state = self.state

        if state == CircuitState.OPEN:
            logger.warning("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN")

        if state == CircuitState.HALF_OPEN:
            if self._half_open_in_progress:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is testing")
            self._half_open_in_progress = True

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state in (CircuitState.HALF_OPEN, CircuitState.OPEN):
            logger.info("circuit_closed", breaker=self.name)
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._half_open_in_progress = False

    def _on_failure(self) -> None:
        now = time.monotonic()
        self._half_open_in_progress = False

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = now
            logger.warning("circuit_reopened", breaker=self.name)
            return

        cutoff = now - self.window_seconds
        self._failures = [t for t in self._failures if t > cutoff]
        self._failures.append(now)

        if len(self._failures) >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = now
            logger.warning(
                "circuit_opened",
                breaker=self.name,
                failures=len(self._failures),
                threshold=self.failure_threshold,
            )


# ── Bounded collaborator calls ─────────────────────────────────────────────


async def call_dependency(
    dependency: str,
    operation: str,
    fn: Callable[[], Awaitable[T]],
    timeout: float,
) -> T:
    """
    Await a collaborator call with a hard timeout.

    Timeouts, open circuits and unexpected collaborator exceptions become
    DependencyError. PriceCastError subclasses raised by the collaborator
    propagate untouched.
    """
    started = time.monotonic()
    try:
        return await asyncio.wait_for(fn(), timeout=timeout)
    except PriceCastError:
        raise
    except asyncio.TimeoutError as exc:
        logger.error(
            "dependency_timeout",
            dependency=dependency,
            operation=operation,
            timeout_seconds=timeout,
        )
        raise DependencyError(
            dependency, f"{operation} timed out after {timeout:g}s", {"operation": operation}
        ) from exc
    except CircuitOpenError as exc:
        raise DependencyError(dependency, str(exc), {"operation": operation}) from exc
    except Exception as exc:
        logger.error(
            "dependency_failed",
            dependency=dependency,
            operation=operation,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise DependencyError(dependency, f"{operation} failed: {exc}", {"operation": operation}) from exc
