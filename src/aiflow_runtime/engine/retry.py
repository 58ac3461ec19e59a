"""Agent-call failure classification, retry decisions and the retry loop.

Classification maps a caught error onto an error class (`hard`,
`transient`, `unknown`) and an optional sub-code (`timeout`, `rate_limit`,
`network`). The decision and backoff are pure functions of that
classification, the attempt number and the policy, so the loop below can
record the intended backoff even when real sleeping is disabled.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorClass(str, Enum):
    HARD = "hard"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class ErrorCode(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"


RETRY_CATEGORIES: frozenset[str] = frozenset(
    [c.value for c in ErrorClass] + [c.value for c in ErrorCode]
)

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_RETRY_ON: frozenset[str] = frozenset({ErrorClass.TRANSIENT.value})
DEFAULT_BACKOFF_CAP_MS = 60_000
DEFAULT_RATE_LIMIT_BACKOFF_MS = 1_000

_HARD_STATUSES = {400, 401, 403}
_TIMEOUT_STATUSES = {408, 504}

_HARD_QUOTA_MARKERS = ("requests per day", "per day", "quota exceeded for metric", "daily limit")
_RATE_LIMIT_MARKERS = ("resource exhausted", "resource_exhausted", "rate limit", "too many requests", "quota")
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline exceeded", "deadline_exceeded")
_NETWORK_MARKERS = (
    "unavailable",
    "fetch failed",
    "connection reset",
    "connection error",
    "connection refused",
    "socket hang up",
    "econnreset",
    "econnrefused",
    "enotfound",
    "eai_again",
)

_RETRY_DELAY_FIELD_RE = re.compile(r"retry_?delay\"?\s*[:=]\s*\"?(\d+(?:\.\d+)?)s", re.IGNORECASE)
_RETRY_IN_RE = re.compile(r"retry in (\d+(?:\.\d+)?)\s*s", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_on: frozenset[str] = DEFAULT_RETRY_ON

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        unknown = set(self.retry_on) - RETRY_CATEGORIES
        if unknown:
            raise ValueError(f"Unknown retry categories: {sorted(unknown)}")

    def to_json(self) -> dict[str, object]:
        return {"max_attempts": self.max_attempts, "retry_on": sorted(self.retry_on)}

    @staticmethod
    def from_json(obj: Mapping[str, object], *, base: RetryPolicy | None = None) -> RetryPolicy:
        base = base or RetryPolicy()
        max_raw = obj.get("max_attempts", obj.get("maxAttempts"))
        retry_raw = obj.get("retry_on", obj.get("retryOn"))
        max_attempts = max_raw if isinstance(max_raw, int) and not isinstance(max_raw, bool) else base.max_attempts
        if isinstance(retry_raw, str):
            retry_on = parse_retry_on(retry_raw)
        elif isinstance(retry_raw, list | tuple | set | frozenset):
            retry_on = frozenset(str(v).strip().lower() for v in retry_raw)
        else:
            retry_on = base.retry_on
        return RetryPolicy(max_attempts=max_attempts, retry_on=retry_on)


def parse_retry_on(value: str) -> frozenset[str]:
    return frozenset(p.strip().lower() for p in value.split(",") if p.strip())


@dataclass(frozen=True, slots=True)
class ErrorDetail:
    """The inspectable fields of a failed agent call."""

    message: str
    code: str | None = None
    status: int | None = None
    payload: Any = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"message": self.message}
        if self.code is not None:
            out["code"] = self.code
        if self.status is not None:
            out["status"] = self.status
        return out


def error_detail(error: object) -> ErrorDetail:
    """Read `message`, `code`, `status` (and a payload) off an error object or mapping."""

    def _get(name: str) -> Any:
        if isinstance(error, Mapping):
            return error.get(name)
        return getattr(error, name, None)

    message = _get("message")
    if not isinstance(message, str) or not message:
        message = str(error)

    code = _get("code")
    status = _get("status")
    if status is None:
        status = _get("status_code")
    if isinstance(status, str) and status.isdigit():
        status = int(status)
    if not isinstance(status, int) or isinstance(status, bool):
        status = None

    payload = _get("payload")
    if payload is None:
        payload = _get("body")
    if payload is None:
        payload = _get("details")

    return ErrorDetail(
        message=message,
        code=str(code) if code is not None else None,
        status=status,
        payload=payload,
    )


@dataclass(frozen=True, slots=True)
class ErrorClassification:
    error_class: ErrorClass
    error_code: ErrorCode | None = None


def classify_error(error: object) -> ErrorClassification:
    detail = error if isinstance(error, ErrorDetail) else error_detail(error)
    msg = detail.message.lower()
    code = (detail.code or "").lower()
    status = detail.status

    if status in _HARD_STATUSES:
        return ErrorClassification(ErrorClass.HARD)

    if status == 429 or any(m in msg for m in _RATE_LIMIT_MARKERS) or code == "resource_exhausted":
        if any(m in msg for m in _HARD_QUOTA_MARKERS):
            return ErrorClassification(ErrorClass.HARD, ErrorCode.RATE_LIMIT)
        return ErrorClassification(ErrorClass.TRANSIENT, ErrorCode.RATE_LIMIT)

    if (
        status in _TIMEOUT_STATUSES
        or any(m in msg for m in _TIMEOUT_MARKERS)
        or any(m in code for m in ("timeout", "etimedout", "deadline_exceeded"))
    ):
        return ErrorClassification(ErrorClass.TRANSIENT, ErrorCode.TIMEOUT)

    if status == 503 or any(m in msg for m in _NETWORK_MARKERS) or any(m in code for m in _NETWORK_MARKERS):
        return ErrorClassification(ErrorClass.TRANSIENT, ErrorCode.NETWORK)

    return ErrorClassification(ErrorClass.UNKNOWN)


@dataclass(frozen=True, slots=True)
class RetryDecision:
    should_retry: bool
    reason: str


def decide_retry(
    classification: ErrorClassification, *, attempt: int, policy: RetryPolicy
) -> RetryDecision:
    if attempt >= policy.max_attempts:
        return RetryDecision(False, "max_attempts_reached")
    if classification.error_class is ErrorClass.HARD:
        return RetryDecision(False, "hard_error")

    code = classification.error_code
    if code is not None and code.value in policy.retry_on:
        return RetryDecision(True, f"policy_match:{code.value}")
    if classification.error_class.value in policy.retry_on:
        return RetryDecision(True, f"policy_match:{classification.error_class.value}")

    label = code.value if code is not None else classification.error_class.value
    return RetryDecision(False, f"policy_no_match:{label}")


def _find_retry_delay(payload: Any) -> float | None:
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if str(key).lower() in ("retrydelay", "retry_delay"):
                if isinstance(value, int | float) and not isinstance(value, bool):
                    return float(value)
                if isinstance(value, str):
                    m = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*s?\s*", value)
                    if m:
                        return float(m.group(1))
            found = _find_retry_delay(value)
            if found is not None:
                return found
    elif isinstance(payload, list | tuple):
        for item in payload:
            found = _find_retry_delay(item)
            if found is not None:
                return found
    return None


def suggested_retry_delay_ms(detail: ErrorDetail, *, cap_ms: int = DEFAULT_BACKOFF_CAP_MS) -> int | None:
    """Provider-suggested delay from the payload or message, capped at `cap_ms`."""

    seconds = _find_retry_delay(detail.payload)
    if seconds is None:
        for pattern in (_RETRY_DELAY_FIELD_RE, _RETRY_IN_RE):
            m = pattern.search(detail.message)
            if m:
                seconds = float(m.group(1))
                break
    if seconds is None:
        return None
    return min(math.ceil(seconds * 1000), cap_ms)


def compute_backoff_ms(
    classification: ErrorClassification,
    detail: ErrorDetail,
    *,
    cap_ms: int = DEFAULT_BACKOFF_CAP_MS,
) -> int:
    if classification.error_code is not ErrorCode.RATE_LIMIT:
        return 0
    suggested = suggested_retry_delay_ms(detail, cap_ms=cap_ms)
    if suggested is not None:
        return suggested
    return min(DEFAULT_RATE_LIMIT_BACKOFF_MS, cap_ms)


class AttemptStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    attempt: int
    status: AttemptStatus
    raw_output: str | None = None
    error: ErrorDetail | None = None
    error_class: ErrorClass | None = None
    error_code: ErrorCode | None = None
    should_retry: bool = False
    retry_reason: str | None = None
    backoff_ms: int = 0

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"attempt": self.attempt, "status": self.status.value}
        if self.status is AttemptStatus.SUCCESS:
            out["raw_output"] = self.raw_output
            return out
        out.update(
            {
                "error": self.error.to_json() if self.error else None,
                "error_class": self.error_class.value if self.error_class else None,
                "error_code": self.error_code.value if self.error_code else None,
                "should_retry": self.should_retry,
                "retry_reason": self.retry_reason,
                "backoff_ms": self.backoff_ms,
            }
        )
        return out


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RetryOutcome(Generic[T]):
    state: RetryState
    value: T | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def last_attempt(self) -> AttemptRecord | None:
        return self.attempts[-1] if self.attempts else None


def run_with_retry(
    call: Callable[[int], T],
    policy: RetryPolicy,
    *,
    raw_output: Callable[[T], str | None] = lambda _: None,
    sleep: Callable[[float], None] | None = None,
    backoff_cap_ms: int = DEFAULT_BACKOFF_CAP_MS,
    log_extra: Mapping[str, object] | None = None,
) -> RetryOutcome[T]:
    """Drive `call(attempt)` through Attempting -> {Success | Retrying -> Attempting | Failed}.

    Every attempt is recorded with its classification and backoff. `sleep`
    is only invoked for a non-zero backoff; pass None to record the backoff
    without waiting.
    """

    outcome: RetryOutcome[T] = RetryOutcome(state=RetryState.ATTEMPTING)
    attempt = 0
    backoff_ms = 0
    extra = dict(log_extra or {})

    while True:
        match outcome.state:
            case RetryState.ATTEMPTING:
                attempt += 1
                try:
                    value = call(attempt)
                except Exception as e:  # any collaborator failure is classified, not propagated
                    detail = error_detail(e)
                    classification = classify_error(detail)
                    decision = decide_retry(classification, attempt=attempt, policy=policy)
                    backoff_ms = (
                        compute_backoff_ms(classification, detail, cap_ms=backoff_cap_ms)
                        if decision.should_retry
                        else 0
                    )
                    outcome.attempts.append(
                        AttemptRecord(
                            attempt=attempt,
                            status=AttemptStatus.ERROR,
                            error=detail,
                            error_class=classification.error_class,
                            error_code=classification.error_code,
                            should_retry=decision.should_retry,
                            retry_reason=decision.reason,
                            backoff_ms=backoff_ms,
                        )
                    )
                    logger.warning(
                        "Agent call failed",
                        extra={
                            **extra,
                            "attempt": attempt,
                            "error_class": classification.error_class.value,
                            "error_code": classification.error_code.value if classification.error_code else None,
                            "retry_reason": decision.reason,
                            "backoff_ms": backoff_ms,
                        },
                    )
                    outcome.state = RetryState.RETRYING if decision.should_retry else RetryState.FAILED
                else:
                    outcome.attempts.append(
                        AttemptRecord(attempt=attempt, status=AttemptStatus.SUCCESS, raw_output=raw_output(value))
                    )
                    outcome.value = value
                    outcome.state = RetryState.SUCCESS
            case RetryState.RETRYING:
                if backoff_ms > 0 and sleep is not None:
                    sleep(backoff_ms / 1000)
                outcome.state = RetryState.ATTEMPTING
            case RetryState.SUCCESS | RetryState.FAILED:
                return outcome
