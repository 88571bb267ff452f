"""
Resilience — bounded retry, exponential backoff and provider failover.

Every outbound call (market data, holdings, AI inference, research) goes
through `call()`. Failures are classified before any retry budget is spent:

  - transient (timeout, 5xx, 429, dropped connection) → retried with
    exponential backoff, `min(base_delay * 2^(attempt-1), max_delay)`
  - fatal (auth, other 4xx, malformed payload) → surfaced at once

When the primary operation exhausts its attempts and a fallback is
configured, the same policy runs once against the fallback. Retries are
strictly sequential, so an order-side call is never duplicated in parallel.

Usage:
    result = await call(
        Operation("grok", lambda: grok.infer(prompt)),
        settings.ai_budget().call.with_fallback(
            Operation("openai", lambda: openai.infer(prompt))
        ),
    )
    result.value, result.provider, result.retries
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx
import pydantic
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from marketpilot.errors import (
    CallError,
    FatalCallFailure,
    InvalidConfig,
    MalformedResponseError,
    MarketPilotError,
    MaxRetriesExceededError,
    TransientCallFailure,
    UpstreamAuthError,
    UpstreamRateLimitError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[Any]]


class AttemptOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    RETRYABLE_FAILURE = "RETRYABLE_FAILURE"
    FATAL_FAILURE = "FATAL_FAILURE"


@dataclass(frozen=True)
class ExternalCallAttempt:
    """One attempt of one outbound call. Lives as long as the call chain."""

    provider: str
    attempt_number: int
    backoff_delay: float
    outcome: AttemptOutcome
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "attempt_number": self.attempt_number,
            "backoff_delay": self.backoff_delay,
            "outcome": self.outcome.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class Operation(Generic[T]):
    """An idempotent outbound request bound to the provider that serves it."""

    provider: str
    func: Callable[[], Awaitable[T]]

    def __call__(self) -> Awaitable[T]:
        return self.func()


@dataclass(frozen=True)
class CallConfig:
    """Retry policy for one outbound call, plus an optional fallback target."""

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    timeout: float = 30.0
    fallback: Operation | None = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise InvalidConfig("max_attempts must be >= 1", field="max_attempts")
        if self.base_delay < 0 or self.max_delay < 0:
            raise InvalidConfig("backoff delays must be >= 0", field="base_delay")
        if self.timeout <= 0:
            raise InvalidConfig("timeout must be > 0", field="timeout")

    def backoff(self, attempt_number: int) -> float:
        """Delay to wait after a transient failure of `attempt_number`."""
        return min(self.base_delay * 2 ** (attempt_number - 1), self.max_delay)

    def with_fallback(self, fallback: Operation | None) -> CallConfig:
        return replace(self, fallback=fallback)


@dataclass
class CallResult(Generic[T]):
    """Successful call: the value, who served it, and how we got there."""

    value: T
    provider: str
    attempts: list[ExternalCallAttempt] = field(default_factory=list)

    @property
    def retries(self) -> int:
        return max(len(self.attempts) - 1, 0)

    @property
    def used_fallback(self) -> bool:
        return bool(self.attempts) and self.attempts[0].provider != self.provider


# ── Classification ───────────────────────────────────────────────────


def classify_failure(exc: BaseException, provider: str) -> CallError | None:
    """Map an exception raised by an outbound operation onto the call taxonomy.

    Returns None for exceptions that are not call failures (domain errors,
    programming errors); those propagate untouched and are never retried.
    """
    if isinstance(exc, CallError):
        if exc.provider is None:
            exc.provider = provider
            exc.dependency = exc.dependency or provider
        return exc
    if isinstance(exc, MarketPilotError):
        return None

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TransientCallFailure(f"{provider} timed out", provider=provider)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = f"{provider} returned HTTP {status}"
        if status == 429:
            return UpstreamRateLimitError(message, provider=provider, status_code=status)
        if status >= 500:
            return TransientCallFailure(message, provider=provider, status_code=status)
        if status in (401, 403):
            return UpstreamAuthError(message, provider=provider, status_code=status)
        return FatalCallFailure(message, provider=provider, status_code=status)
    if isinstance(exc, httpx.TransportError):
        return TransientCallFailure(
            f"{provider} connection failed: {exc}", provider=provider
        )
    if isinstance(
        exc, (json.JSONDecodeError, pydantic.ValidationError, KeyError, ValueError, TypeError)
    ):
        return MalformedResponseError(
            f"{provider} returned a malformed response: {exc}", provider=provider
        )
    return None


# ── Call ─────────────────────────────────────────────────────────────


async def call(
    operation: Operation[T],
    config: CallConfig | None = None,
    *,
    sleep: Sleeper = asyncio.sleep,
) -> CallResult[T]:
    """Run `operation` under the retry policy, failing over once if configured.

    Raises:
        FatalCallFailure: a non-retryable failure (no fallback attempted).
        MaxRetriesExceededError: primary (and fallback) exhausted their attempts.
        asyncio.CancelledError: the caller cancelled; no further attempts run.
    """
    config = config or CallConfig()
    history: list[ExternalCallAttempt] = []
    providers = [operation.provider]

    try:
        value = await _run_attempts(operation, config, history, sleep)
        return CallResult(value=value, provider=operation.provider, attempts=history)
    except FatalCallFailure as e:
        e.attempts = list(history)
        raise
    except TransientCallFailure as e:
        last_failure: CallError = e

    fallback = config.fallback
    if fallback is not None:
        providers.append(fallback.provider)
        logger.warning(
            "external_call_failover",
            primary=operation.provider,
            fallback=fallback.provider,
            error=str(last_failure),
        )
        try:
            value = await _run_attempts(fallback, config, history, sleep)
            return CallResult(value=value, provider=fallback.provider, attempts=history)
        except FatalCallFailure as e:
            e.attempts = list(history)
            raise
        except TransientCallFailure as e:
            last_failure = e

    logger.error(
        "external_call_exhausted",
        providers=providers,
        attempts=len(history),
        error=str(last_failure),
    )
    exhausted = MaxRetriesExceededError(
        f"All attempts failed for {' -> '.join(providers)}: {last_failure}",
        provider=last_failure.provider,
        status_code=last_failure.status_code,
        providers=providers,
    )
    exhausted.attempts = list(history)
    raise exhausted from last_failure


async def _run_attempts(
    operation: Operation[T],
    config: CallConfig,
    history: list[ExternalCallAttempt],
    sleep: Sleeper,
) -> T:
    """Attempt `operation` up to `config.max_attempts` times, appending to `history`."""
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(multiplier=config.base_delay, max=config.max_delay),
        retry=retry_if_exception_type(TransientCallFailure),
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            number = attempt.retry_state.attempt_number
            try:
                value = await asyncio.wait_for(operation(), timeout=config.timeout)
            except asyncio.CancelledError:
                logger.info(
                    "external_call_cancelled",
                    provider=operation.provider,
                    attempt=number,
                )
                raise
            except Exception as exc:
                failure = classify_failure(exc, operation.provider)
                if failure is None:
                    raise
                _record_failure(operation.provider, number, failure, config, history)
                if failure is exc:
                    raise
                raise failure from exc

            history.append(
                ExternalCallAttempt(
                    provider=operation.provider,
                    attempt_number=number,
                    backoff_delay=0.0,
                    outcome=AttemptOutcome.SUCCESS,
                )
            )
            if number > 1:
                logger.info(
                    "external_call_recovered",
                    provider=operation.provider,
                    attempt=number,
                )
            return value

    # AsyncRetrying either returns through the body above or re-raises.
    raise RuntimeError("retry loop ended without a result")


def _record_failure(
    provider: str,
    number: int,
    failure: CallError,
    config: CallConfig,
    history: list[ExternalCallAttempt],
) -> None:
    transient = isinstance(failure, TransientCallFailure)
    will_retry = transient and number < config.max_attempts
    delay = config.backoff(number) if will_retry else 0.0

    history.append(
        ExternalCallAttempt(
            provider=provider,
            attempt_number=number,
            backoff_delay=delay,
            outcome=(
                AttemptOutcome.RETRYABLE_FAILURE if transient else AttemptOutcome.FATAL_FAILURE
            ),
            error=str(failure),
        )
    )

    if will_retry:
        logger.warning(
            "external_call_retry",
            provider=provider,
            attempt=number,
            retries_left=config.max_attempts - number,
            wait_seconds=round(delay, 3),
            error=str(failure),
        )
    elif not transient:
        logger.error(
            "external_call_fatal",
            provider=provider,
            attempt=number,
            error_code=failure.error_code,
            error=str(failure),
        )
