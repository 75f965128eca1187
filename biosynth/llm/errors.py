"""Error taxonomy for calls to the generative model.

Parser errors and remote-call errors share LLMError so the orchestrator can
catch one type at its per-item boundary. Each error keeps a short prefix of
the raw model text for diagnostics.
"""

from __future__ import annotations

from biosynth.config import LLM_RAW_TEXT_PREVIEW_CHARS


class LLMError(RuntimeError):
    """Base class for failures while producing a structured model response."""

    kind: str = "llm_error"
    is_terminal: bool = False

    def __init__(
        self,
        message: str,
        raw_text: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.raw_text = raw_text[:LLM_RAW_TEXT_PREVIEW_CHARS] if raw_text else None
        self.status_code = status_code


class NoJsonFoundError(LLMError):
    """The response contains no '{' or '[' at all."""

    kind = "no_json"


class MalformedJsonError(LLMError):
    """Candidate JSON spans were found but none of them parse."""

    kind = "malformed_json"


AmbiguousOrMalformedJsonError = MalformedJsonError


class InvalidCredentialError(LLMError):
    """The API key is invalid, revoked, or reported as leaked. Never retried."""

    kind = "invalid_credential"
    is_terminal = True


class RateLimitError(LLMError):
    """HTTP 429 / RESOURCE_EXHAUSTED. retry_after is the provider hint in seconds, if any."""

    kind = "rate_limit"

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        raw_text: str | None = None,
        status_code: int | None = 429,
    ):
        super().__init__(message, raw_text=raw_text, status_code=status_code)
        self.retry_after = retry_after


class TransientStatusMessageError(LLMError):
    """The call succeeded but returned a loading/initializing placeholder."""

    kind = "transient_status"


class RemoteCallError(LLMError):
    """Any other remote failure, with the original status code preserved."""

    kind = "remote_call"
