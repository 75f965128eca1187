"""Unit tests for client-facing error sanitization"""

from __future__ import annotations

from biosynth.utils.error_sanitizer import get_safe_error_detail, sanitize_error_message


def test_short_validation_message_passes_through():
    assert sanitize_error_message("task is required", 400) == "task is required"


def test_paths_and_sql_are_hidden():
    assert sanitize_error_message("/app/biosynth/api/app.py failed", 400).startswith("Invalid request")
    assert sanitize_error_message("UNIQUE constraint failed: users.email", 500).startswith(
        "An internal error"
    )


def test_long_tokens_are_hidden():
    message = "key AIzaSyA1234567890abcdefghijkl rejected"
    assert sanitize_error_message(message, 403) == "Access denied."


def test_server_errors_use_context():
    assert get_safe_error_detail(RuntimeError("boom"), 500, context="Automation task failed") == (
        "Automation task failed"
    )


def test_empty_message_uses_generic_text():
    assert sanitize_error_message("", 404) == "Resource not found."
