"""Retry with exponential backoff, circuit breaking and error classification.

The error handler never talks to a database or a toast widget directly: it is
given an error logger and a notifier (see ``erpcore.reporting``) so the control
flow can run without any I/O.

Example:
    >>> handler = ErrorHandler(logger=StorageErrorLogger(storage))
    >>> rows = await handler.with_retry(fetch_stock_summary)
    >>> guarded = handler.circuit_breaker(fetch_vendor_scores, failure_threshold=3)
    >>> scores = await guarded()
"""

import asyncio
import logging
import time
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from .config import Settings
from .models import (
    CircuitState,
    ErrorLogEntry,
    Notification,
    RetryPolicy,
    Severity,
)
from .reporting import ErrorLogger, LoggingErrorLogger, Notifier

T = TypeVar("T")

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

# First matching substring wins.
_USER_MESSAGES = (
    ("network", "Network connection issue. Please check your internet connection."),
    ("timeout", "Request timed out. Please try again."),
    ("unauthorized", "You are not authorized to perform this action."),
    ("not found", "The requested resource was not found."),
)


class CircuitOpenError(Exception):
    """Raised when the circuit is open and the call was rejected."""

    def __init__(self, message: str = "Circuit breaker is open"):
        super().__init__(message)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def _operation_name(operation: Callable[..., Any]) -> str:
    return getattr(operation, "__name__", None) or "anonymous"


def _format_trace(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def classify_severity(error: BaseException) -> Severity:
    """Severity from the error message: auth is critical, network/database high."""
    message = str(error).lower()
    if "auth" in message:
        return Severity.CRITICAL
    if "network" in message or "database" in message:
        return Severity.HIGH
    return Severity.MEDIUM


def get_error_message(error: BaseException) -> str:
    """User-friendly message for an error."""
    message = str(error)
    for needle, text in _USER_MESSAGES:
        if needle in message:
            return text
    return GENERIC_ERROR_MESSAGE


class CircuitBreaker:
    """Rejects calls for a recovery window after repeated failures.

    ``failure_count`` is only reset by a successful half-open trial; successes
    while closed leave it untouched. Calls on one instance must be serialized
    if exact threshold behaviour matters: two overlapping failures can both be
    counted before either sees the breaker open.
    """

    def __init__(
        self,
        operation: Operation,
        failure_threshold: int = 5,
        recovery_time_ms: float = 60000,
        clock: Optional[Clock] = None,
    ):
        self.operation = operation
        self.failure_threshold = failure_threshold
        self.recovery_time_ms = recovery_time_ms
        self.clock = clock or _monotonic_ms
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.state = CircuitState.CLOSED

    async def call(self) -> Any:
        """Run the operation through the breaker."""
        now = self.clock()

        if self.state == CircuitState.OPEN:
            if now - self.last_failure_time >= self.recovery_time_ms:
                self.state = CircuitState.HALF_OPEN
                logger.info("Circuit for %s half-open, trying once", _operation_name(self.operation))
            else:
                raise CircuitOpenError()

        try:
            result = await self.operation()
        except Exception:
            self.failure_count += 1
            self.last_failure_time = now
            if self.failure_count >= self.failure_threshold:
                if self.state != CircuitState.OPEN:
                    logger.warning(
                        "Circuit for %s opened after %d failures",
                        _operation_name(self.operation),
                        self.failure_count,
                    )
                self.state = CircuitState.OPEN
            raise

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            logger.info("Circuit for %s closed", _operation_name(self.operation))

        return result

    async def __call__(self) -> Any:
        return await self.call()


def circuit_breaker(
    operation: Operation,
    failure_threshold: int = 5,
    recovery_time_ms: float = 60000,
) -> CircuitBreaker:
    """Wrap ``operation`` in a new circuit breaker."""
    return CircuitBreaker(operation, failure_threshold, recovery_time_ms)


class ErrorHandler:
    """Retries, circuit breakers and error reporting around async operations.

    ``policy``, ``failure_threshold`` and ``recovery_time_ms`` are the defaults
    for :meth:`with_retry` and :meth:`circuit_breaker`. Use
    :meth:`from_settings` to take them from the configuration.
    """

    def __init__(
        self,
        logger: Optional[ErrorLogger] = None,
        notifier: Optional[Notifier] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Optional[Clock] = None,
        policy: Optional[RetryPolicy] = None,
        failure_threshold: int = 5,
        recovery_time_ms: float = 60000,
    ):
        self.logger = logger or LoggingErrorLogger()
        self.notifier = notifier
        self.sleep = sleep
        self.clock = clock
        self.policy = policy or RetryPolicy()
        self.failure_threshold = failure_threshold
        self.recovery_time_ms = recovery_time_ms
        # with_retry calls currently past their first attempt
        self._retrying = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        logger: Optional[ErrorLogger] = None,
        notifier: Optional[Notifier] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Optional[Clock] = None,
    ) -> "ErrorHandler":
        """Build a handler whose retry and breaker defaults come from ``settings``."""
        return cls(
            logger=logger,
            notifier=notifier,
            sleep=sleep,
            clock=clock,
            policy=settings.retry_policy(),
            failure_threshold=settings.failure_threshold,
            recovery_time_ms=settings.recovery_time_ms,
        )

    @property
    def is_retrying(self) -> bool:
        """True while any ``with_retry`` call on this handler is retrying."""
        return self._retrying > 0

    def log_error(self, entry: ErrorLogEntry) -> None:
        """Hand an entry to the error logger. Logger failures are swallowed."""
        try:
            self.logger.log(entry)
        except Exception as e:
            logger.warning("Failed to log error: %s", e)

    async def with_retry(self, operation: Operation, policy: Optional[RetryPolicy] = None) -> T:
        """Run ``operation``, retrying failures with exponential backoff.

        The first attempt runs immediately. After ``policy.max_retries``
        retries the last error is logged once and re-raised unchanged.
        """
        policy = policy or self.policy
        attempt = 0
        try:
            while True:
                try:
                    if attempt > 0:
                        if attempt == 1:
                            self._retrying += 1
                        delay = policy.delay_for(attempt)
                        logger.debug(
                            "Retrying %s in %.0fms (attempt %d/%d)",
                            _operation_name(operation),
                            delay,
                            attempt,
                            policy.max_retries,
                        )
                        await self.sleep(delay / 1000)

                    return await operation()
                except Exception as e:
                    if attempt >= policy.max_retries:
                        self.log_error(
                            ErrorLogEntry(
                                error_type="operation_failed",
                                error_message=str(e),
                                stack_trace=_format_trace(e),
                                context={
                                    "attempts": attempt + 1,
                                    "operation": _operation_name(operation),
                                },
                                severity=Severity.HIGH,
                            )
                        )
                        raise
                    logger.warning(
                        "%s failed (attempt %d): %s", _operation_name(operation), attempt + 1, e
                    )
                    attempt += 1
        finally:
            if attempt > 0:
                self._retrying -= 1

    def circuit_breaker(
        self,
        operation: Operation,
        failure_threshold: Optional[int] = None,
        recovery_time_ms: Optional[float] = None,
    ) -> CircuitBreaker:
        """Wrap ``operation`` in a new circuit breaker using this handler's clock
        and, unless given, its threshold and recovery time.
        """
        return CircuitBreaker(
            operation,
            self.failure_threshold if failure_threshold is None else failure_threshold,
            self.recovery_time_ms if recovery_time_ms is None else recovery_time_ms,
            clock=self.clock,
        )

    def handle_error(
        self,
        error: BaseException,
        context: Optional[Dict[str, Any]] = None,
        show_toast: bool = True,
    ) -> str:
        """Log ``error`` and optionally notify the user. Returns the user message."""
        self.log_error(
            ErrorLogEntry(
                error_type=type(error).__name__,
                error_message=str(error),
                stack_trace=_format_trace(error),
                context=context or {},
                severity=classify_severity(error),
            )
        )

        message = get_error_message(error)
        if show_toast and self.notifier is not None:
            try:
                self.notifier.notify(
                    Notification(title="Error", description=message, variant="destructive")
                )
            except Exception as e:
                logger.warning("Failed to show notification: %s", e)
        return message


async def with_retry(
    operation: Operation,
    policy: Optional[RetryPolicy] = None,
    *,
    logger: Optional[ErrorLogger] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` with retries using a one-off error handler."""
    return await ErrorHandler(logger=logger, sleep=sleep).with_retry(operation, policy)
