"""JSON-producing Gemini client.

GeminiJsonClient is the single seam the job processors talk to: one
generate_json() call is one logical request, retried by RetryController and
decoded by ResponseParser.
"""

from __future__ import annotations

from typing import Any, Protocol

from biosynth.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from biosynth.llm.errors import (
    MalformedJsonError,
    NoJsonFoundError,
    RemoteCallError,
    TransientStatusMessageError,
)
from biosynth.llm.gemini import get_gemini_model
from biosynth.llm.parser import ResponseParser
from biosynth.llm.retry import RetryController, classify_remote_error
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, time_block

logger = get_logger(__name__)


class GenerativeModel(Protocol):
    def generate_content(self, contents: Any, **kwargs: Any) -> Any: ...


class JsonClient(Protocol):
    def generate_json(self, prompt: str, response_schema: dict[str, Any] | None = None) -> Any: ...


def describe_schema(schema: dict[str, Any]) -> str:
    """Render the top-level fields of a response schema as a prompt suffix."""
    lines = []
    for name, field in schema.get("properties", {}).items():
        kind = field.get("type", "string")
        description = field.get("description")
        lines.append(f"- {name} ({kind}){': ' + description if description else ''}")
    return "Return ONLY a JSON object with these fields:\n" + "\n".join(lines)


class GeminiJsonClient:
    """Generate a prompt's answer as decoded JSON."""

    def __init__(
        self,
        model: GenerativeModel | None = None,
        parser: ResponseParser | None = None,
        retry_controller: RetryController | None = None,
    ):
        self._model = model
        self.parser = parser or ResponseParser()
        self.retry_controller = retry_controller or RetryController()

    @property
    def model(self) -> GenerativeModel:
        if self._model is None:
            self._model = get_gemini_model()
        return self._model

    def generate_json(self, prompt: str, response_schema: dict[str, Any] | None = None) -> Any:
        """
        Run one logical request and return the decoded JSON payload.

        Raises:
            LLMError subclasses (see biosynth.llm.errors)
            GeminiInitializationError: if no model backend is configured
        """
        if response_schema is not None:
            prompt = f"{prompt.rstrip()}\n\n{describe_schema(response_schema)}"

        model = self.model
        with time_block("llm.generate_json"):
            return self.retry_controller.call(
                self._attempt, model, prompt, response_schema is not None
            )

    def _attempt(self, model: GenerativeModel, prompt: str, json_mode: bool) -> Any:
        generation_config: dict[str, Any] = {
            "temperature": GEMINI_TEMPERATURE,
            "max_output_tokens": GEMINI_MAX_TOKENS,
        }
        # The SDKs disagree on response_schema types, so only the mime type is set.
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        counter("llm.calls")
        try:
            response = model.generate_content(prompt, generation_config=generation_config)
            text = response.text
        except Exception as e:
            raise classify_remote_error(e) from e

        if not text:
            raise RemoteCallError("No response from AI")

        status = self.parser.leading_status(text)
        if status == "error":
            counter("llm.status_error")
            raise RemoteCallError(
                f"AI service returned an error message instead of JSON: {text[:100]!r}",
                raw_text=text,
            )

        try:
            return self.parser.parse(text)
        except (NoJsonFoundError, MalformedJsonError) as e:
            if status == "transient" or self.parser.mentions_transient_status(text):
                counter("llm.status_placeholder")
                raise TransientStatusMessageError(
                    f"AI service returned a status message instead of JSON: {text[:100]!r}",
                    raw_text=text,
                ) from e
            raise
