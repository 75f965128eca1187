"""Bounded retry around one logical Gemini request.

RetryController classifies provider failures into the biosynth.llm.errors
taxonomy and retries only the two recoverable kinds:

- RateLimitError: provider retry hint if present, else 1s, 2s, 4s
- TransientStatusMessageError: 2s, 4s, 6s

Invalid credentials are terminal and everything else is raised after one
attempt. Attempts are sequential; max_retries=2 means at most 3 calls.
"""

from __future__ import annotations

import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from google.api_core.exceptions import PermissionDenied, ResourceExhausted
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from biosynth.config import LLM_MAX_RETRIES, LLM_STATUS_BACKOFF_SECONDS
from biosynth.llm.errors import (
    InvalidCredentialError,
    LLMError,
    RateLimitError,
    RemoteCallError,
    TransientStatusMessageError,
)
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, log_event

logger = get_logger(__name__)

T = TypeVar("T")

RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
_RETRY_IN_RE = re.compile(r"retry in ([\d.]+)\s*seconds?", re.IGNORECASE)
_CREDENTIAL_MARKERS = (
    "leaked",
    "invalid api key",
    "api key not valid",
    "permission denied",
    "api key was reported",
)


@dataclass
class RetryState:
    """Progress of one outbound call chain."""

    attempt_number: int = 0
    max_attempts: int = LLM_MAX_RETRIES + 1
    last_error_kind: str | None = None


def _status_code(exc: BaseException) -> int | None:
    for attr in ("code", "status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _status_name(exc: BaseException) -> str | None:
    status = getattr(exc, "status", None)
    if isinstance(status, str):
        return status.upper()
    grpc_code = getattr(exc, "grpc_status_code", None)
    if grpc_code is not None:
        return getattr(grpc_code, "name", str(grpc_code)).upper()
    return None


def _error_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    return message if isinstance(message, str) and message else str(exc)


def extract_retry_delay(exc: BaseException) -> float | None:
    """
    Provider-suggested delay in seconds, rounded up to the millisecond.

    Looks at google.rpc.RetryInfo details (REST dict or protobuf form) first,
    then at a "retry in N seconds" phrase in the message.
    """
    for detail in getattr(exc, "details", None) or ():
        if isinstance(detail, dict):
            if detail.get("@type") != RETRY_INFO_TYPE:
                continue
            raw_delay = str(detail.get("retryDelay", "")).strip().rstrip("s")
            try:
                return math.ceil(float(raw_delay) * 1000) / 1000
            except ValueError:
                continue
        delay = getattr(detail, "retry_delay", None)
        if delay is not None and hasattr(delay, "seconds"):
            seconds = delay.seconds + getattr(delay, "nanos", 0) / 1e9
            return math.ceil(seconds * 1000) / 1000

    match = _RETRY_IN_RE.search(_error_message(exc))
    if match:
        try:
            return math.ceil(float(match.group(1)) * 1000) / 1000
        except ValueError:
            return None
    return None


def classify_remote_error(exc: BaseException) -> LLMError:
    """Map a provider/transport exception onto the LLMError taxonomy."""
    if isinstance(exc, LLMError):
        return exc

    status_code = _status_code(exc)
    message = _error_message(exc)
    lowered = message.lower()

    if isinstance(exc, PermissionDenied):
        status_code = 403

    if status_code == 403 and any(marker in lowered for marker in _CREDENTIAL_MARKERS):
        return InvalidCredentialError(
            "Gemini API key is invalid or has been revoked", status_code=403
        )

    if (
        isinstance(exc, ResourceExhausted)
        or status_code == 429
        or _status_name(exc) == "RESOURCE_EXHAUSTED"
    ):
        return RateLimitError(
            f"Gemini rate limit exceeded: {message}",
            retry_after=extract_retry_delay(exc),
            status_code=status_code or 429,
        )

    return RemoteCallError(message, status_code=status_code)


class RetryController:
    """Run a remote call with the retry policy described in the module docstring."""

    def __init__(
        self,
        max_retries: int = LLM_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        status_backoff_seconds: float = LLM_STATUS_BACKOFF_SECONDS,
    ):
        self.max_retries = max_retries
        self.sleep = sleep
        self.status_backoff_seconds = status_backoff_seconds

    def compute_delay(self, error: BaseException, attempt_number: int) -> float:
        """Seconds to wait after the attempt_number-th (1-based) failed attempt."""
        if isinstance(error, RateLimitError):
            if error.retry_after is not None:
                return error.retry_after
            return float(2 ** (attempt_number - 1))
        if isinstance(error, TransientStatusMessageError):
            return self.status_backoff_seconds * attempt_number
        return 0.0

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Call func until it succeeds or a non-retryable error is raised.

        Raises:
            InvalidCredentialError: immediately, is_terminal=True
            RateLimitError / TransientStatusMessageError: after the last attempt
            LLMError: any other classified failure, without retry

        Side Effects:
            - Sleeps between attempts through self.sleep
            - Writes retry warnings and counters
        """
        state = RetryState(max_attempts=self.max_retries + 1)

        def _wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            return self.compute_delay(error, retry_state.attempt_number)

        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            counter("llm.retry")
            if isinstance(error, RateLimitError):
                counter("llm.rate_limited")
            logger.warning(
                "Gemini call failed with %s (attempt %d/%d). Retrying in %.1fs...",
                getattr(error, "kind", type(error).__name__),
                retry_state.attempt_number,
                state.max_attempts,
                delay,
            )

        def _attempt() -> T:
            state.attempt_number += 1
            try:
                return func(*args, **kwargs)
            except LLMError as e:
                state.last_error_kind = e.kind
                raise
            except Exception as e:
                classified = classify_remote_error(e)
                state.last_error_kind = classified.kind
                raise classified from e

        retrying = Retrying(
            stop=stop_after_attempt(state.max_attempts),
            wait=_wait,
            retry=retry_if_exception_type((RateLimitError, TransientStatusMessageError)),
            sleep=self.sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

        try:
            return retrying(_attempt)
        except InvalidCredentialError:
            counter("llm.invalid_credential")
            log_event("llm.invalid_credential", attempts=state.attempt_number)
            raise
        except LLMError as e:
            log_event(
                "llm.call_failed",
                kind=e.kind,
                status=e.status_code,
                attempts=state.attempt_number,
            )
            raise
