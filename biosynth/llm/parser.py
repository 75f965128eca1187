"""
Extract a single JSON value from free-form model output.

Gemini sometimes wraps its JSON in markdown fences, prefixes it with prose
("Initializing model...", "Here is the result:") or trails it with more text.
ResponseParser pulls out the one object/array the caller asked for:

1. strip ``` fences and try the whole text as JSON
2. pick the first '{' / '[' not preceded (within 50 chars) by a status word
3. depth-match to its closing delimiter
4. reject spans that themselves open with a status word
5. json.loads, falling back to a brute-force scan of every start position
6. split comma-separated strings in list-shaped fields into lists

The status word list is a heuristic tuned to observed Gemini failure text,
so it is a constructor argument rather than a constant.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

from biosynth.config import PARSER_LOOKBACK_CHARS, PARSER_STATUS_KEYWORDS
from biosynth.llm.errors import MalformedJsonError, NoJsonFoundError
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter

logger = get_logger(__name__)

LIST_FIELDS: tuple[str, ...] = ("steps", "applications", "tags")

# Words that mark a response without JSON as a loading placeholder
TRANSIENT_STATUS_WORDS: tuple[str, ...] = (
    "initialization",
    "initializing",
    "loading",
    "processing",
)
ERROR_STATUS_PREFIXES: tuple[str, ...] = ("error", "failed")

_FENCE_JSON_RE = re.compile(r"```json\s*", re.IGNORECASE)
_FENCE_RE = re.compile(r"```\s*")

_PAIRS = {"{": "}", "[": "]"}


def split_list_field(value: str) -> list[str]:
    """Split "a, b, c" into ["a", "b", "c"], dropping empty entries."""
    return [part.strip() for part in value.split(",") if part.strip()]


def coerce_list_fields(payload: Any, fields: Iterable[str] = LIST_FIELDS) -> Any:
    """Replace string values of list-shaped fields with their comma-split form."""
    if not isinstance(payload, dict):
        return payload
    for field in fields:
        value = payload.get(field)
        if isinstance(value, str):
            payload[field] = split_list_field(value)
    return payload


def _match_close(text: str, start: int) -> int | None:
    """Index one past the delimiter closing text[start], counting only that delimiter kind."""
    open_char = text[start]
    close_char = _PAIRS[open_char]
    depth = 0
    for i in range(start, len(text)):
        char = text[i]
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return i + 1
    return None


class ResponseParser:
    """Parse the JSON payload out of a model response."""

    def __init__(
        self,
        status_keywords: Iterable[str] | None = None,
        list_fields: Iterable[str] = LIST_FIELDS,
        lookback_chars: int = PARSER_LOOKBACK_CHARS,
    ):
        keywords = PARSER_STATUS_KEYWORDS if status_keywords is None else status_keywords
        self.status_keywords = tuple(word.lower() for word in keywords)
        self.list_fields = tuple(list_fields)
        self.lookback_chars = lookback_chars

    def parse(self, raw_text: str) -> Any:
        """
        Return the decoded JSON value embedded in raw_text.

        Raises:
            NoJsonFoundError: raw_text has no '{' or '['
            MalformedJsonError: candidates exist but none decode
        """
        text = self.strip_fences(raw_text or "")

        if "{" not in text and "[" not in text:
            counter("llm.parser.no_json")
            raise NoJsonFoundError(
                f"Response contains no JSON: {text[:50]!r}", raw_text=raw_text
            )

        try:
            return coerce_list_fields(json.loads(text), self.list_fields)
        except json.JSONDecodeError:
            pass

        value: Any = None
        found = False

        candidate = self.extract_candidate(text)
        if candidate is not None:
            try:
                value = json.loads(candidate)
                found = True
            except json.JSONDecodeError as e:
                logger.debug("Primary JSON candidate failed to parse: %s", e)

        if not found:
            counter("llm.parser.brute_force")
            found, value = self._scan_all_positions(text)

        if not found:
            counter("llm.parser.malformed")
            raise MalformedJsonError(
                f"Response contains no parseable JSON: {text[:50]!r}", raw_text=raw_text
            )

        return coerce_list_fields(value, self.list_fields)

    @staticmethod
    def strip_fences(text: str) -> str:
        return _FENCE_RE.sub("", _FENCE_JSON_RE.sub("", text)).strip()

    def extract_candidate(self, text: str) -> str | None:
        """Depth-matched span starting at the first plausible '{' or '['."""
        start = self._find_start(text)
        if start is None:
            return None

        end = _match_close(text, start)
        if end is None:
            return None

        span = text[start:end].strip()
        if not (span[:1] in _PAIRS and span[-1:] == _PAIRS[span[0]]):
            return None
        if self._has_status_keyword(span[: self.lookback_chars]):
            return None
        return span

    def mentions_transient_status(self, raw_text: str) -> bool:
        """True when the head of the response mentions a loading or initializing state."""
        head = (raw_text or "").strip()[: self.lookback_chars].lower()
        return any(word in head for word in TRANSIENT_STATUS_WORDS)

    def leading_status(self, raw_text: str) -> str | None:
        """'transient' / 'error' when the response opens with a status word, else None."""
        head = (raw_text or "").strip().lower()
        if head.startswith(TRANSIENT_STATUS_WORDS):
            return "transient"
        if head.startswith(ERROR_STATUS_PREFIXES):
            return "error"
        return None

    def _find_start(self, text: str) -> int | None:
        """
        Earliest of the first accepted '{' and the first accepted '['.

        Each delimiter kind falls back to its first occurrence when every
        occurrence follows a status word, so an outer object skipped for
        nearby prose still wins over an array nested inside it.
        """
        starts = []
        for open_char in _PAIRS:
            first = text.find(open_char)
            if first == -1:
                continue
            accepted = first
            position = first
            while position != -1:
                before = text[max(0, position - self.lookback_chars) : position]
                if not self._has_status_keyword(before):
                    accepted = position
                    break
                position = text.find(open_char, position + 1)
            starts.append(accepted)
        return min(starts) if starts else None

    def _has_status_keyword(self, fragment: str) -> bool:
        lowered = fragment.lower()
        return any(word in lowered for word in self.status_keywords)

    @staticmethod
    def _scan_all_positions(text: str) -> tuple[bool, Any]:
        for i, char in enumerate(text):
            if char not in _PAIRS:
                continue
            end = _match_close(text, i)
            if end is None:
                continue
            try:
                return True, json.loads(text[i:end])
            except json.JSONDecodeError:
                continue
        return False, None
