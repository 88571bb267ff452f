"""
Structured Error Taxonomy — Typed exceptions for MarketPilot.

Design principles:
  - Every error carries `retryable` + `error_code` for automated decisions
  - Hierarchy mirrors the core layers: Call → Market/Position → Strategy
  - HTTP-safe: each class maps to a recommended status code
  - Every error names the component and upstream dependency that failed,
    and whether a partial result is still usable
"""

from __future__ import annotations

from typing import Any

__all__ = [
    # Base
    "MarketPilotError",
    # Outbound call layer
    "CallError",
    "TransientCallFailure",
    "UpstreamRateLimitError",
    "FatalCallFailure",
    "UpstreamAuthError",
    "MalformedResponseError",
    "MaxRetriesExceededError",
    "DeadlineExceededError",
    # Domain
    "InvariantViolation",
    "InvalidConfig",
]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Base
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MarketPilotError(Exception):
    """Root exception for MarketPilot.

    Attributes:
        retryable: If True, the caller should consider retrying the operation.
        error_code: Machine-readable code for dashboards and alerting.
        http_status: Suggested HTTP status code for API responses.
        component: Core component that surfaced the error (e.g. "market").
        dependency: Upstream service involved (e.g. "polymarket", "grok").
        partial: Results obtained before the failure that are still usable.
    """

    retryable: bool = False
    error_code: str = "MARKETPILOT_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        component: str | None = None,
        dependency: str | None = None,
        partial: dict[str, Any] | None = None,
    ):
        self.detail = detail
        self.component = component
        self.dependency = dependency
        self.partial = partial
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize for structured logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": str(self),
            "detail": self.detail,
            "retryable": self.retryable,
            "http_status": self.http_status,
            "component": self.component,
            "dependency": self.dependency,
            "partial_result_available": bool(self.partial),
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Call Layer — Errors from outbound calls to external services
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class CallError(MarketPilotError):
    """Base for all outbound call errors.

    `attempts` holds the `ExternalCallAttempt` records of the call chain
    that produced this error (filled in by the resilience layer).
    """

    error_code = "CALL_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        self.provider = provider
        self.status_code = status_code
        self.attempts: list = []
        kwargs.setdefault("dependency", provider)
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["provider"] = self.provider
        d["status_code"] = self.status_code
        d["attempts"] = [a.to_dict() for a in self.attempts]
        return d


class TransientCallFailure(CallError):
    """Timeout, 5xx or dropped connection — may resolve by retrying."""

    retryable = True
    error_code = "TRANSIENT_CALL_FAILURE"
    http_status = 503


class UpstreamRateLimitError(TransientCallFailure):
    """External service returned a rate limit error (429)."""

    error_code = "UPSTREAM_RATE_LIMIT"
    http_status = 429


class FatalCallFailure(CallError):
    """4xx, auth failure or malformed payload — retrying cannot help."""

    retryable = False
    error_code = "FATAL_CALL_FAILURE"
    http_status = 502


class UpstreamAuthError(FatalCallFailure):
    """Authentication/authorization failed for the external service."""

    error_code = "UPSTREAM_AUTH"
    http_status = 401


class MalformedResponseError(FatalCallFailure):
    """Response could not be parsed into the expected shape."""

    error_code = "MALFORMED_RESPONSE"
    http_status = 502


class MaxRetriesExceededError(CallError):
    """Every attempt against the primary (and fallback, if any) failed transiently."""

    retryable = False
    error_code = "MAX_RETRIES_EXCEEDED"
    http_status = 504

    def __init__(self, message: str, *, providers: list[str] | None = None, **kwargs):
        self.providers = providers or []
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["providers"] = self.providers
        return d


class DeadlineExceededError(CallError):
    """A service's outer deadline elapsed before the whole request finished."""

    retryable = True
    error_code = "DEADLINE_EXCEEDED"
    http_status = 504

    def __init__(self, message: str, *, deadline: float = 0.0, **kwargs):
        self.deadline = deadline
        super().__init__(message, **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Domain Layer — Invariants and caller-supplied parameters
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InvariantViolation(MarketPilotError):
    """Fetched data breaks a model invariant (price sum, cycle boundary)."""

    retryable = False
    error_code = "INVARIANT_VIOLATION"
    http_status = 502

    def __init__(self, message: str, *, invariant: str = "", **kwargs):
        self.invariant = invariant
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["invariant"] = self.invariant
        return d


class InvalidConfig(MarketPilotError):
    """Caller-supplied parameters are out of range. Raised before any I/O."""

    retryable = False
    error_code = "INVALID_CONFIG"
    http_status = 400

    def __init__(self, message: str, *, field: str = "", **kwargs):
        self.field = field
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["field"] = self.field
        return d
