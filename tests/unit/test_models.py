"""Unit tests for automation models and list-field normalization"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from biosynth.automation.models import (
    AlgorithmRecord,
    AlgorithmType,
    AutomationLogEntry,
    ProblemSeed,
    as_string_list,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, []),
        (["a", 2], ["a", "2"]),
        ('["x", "y"]', ["x", "y"]),
        ("x, y", ["x", "y"]),
        ("[not json, still split]", ["[not json", "still split]"]),
        (7, ["7"]),
    ],
)
def test_as_string_list(value, expected):
    assert as_string_list(value) == expected


def test_record_accepts_snake_case_pseudo_code():
    record = AlgorithmRecord.from_payload(
        {
            "name": " Tidal Scheduler ",
            "inspiration": "Tides",
            "domain": "Scheduling",
            "description": "d",
            "principle": "p",
            "steps": "one, two",
            "applications": [],
            "pseudo_code": None,
            "tags": None,
        },
        AlgorithmType.HYBRID,
        [1, 2],
    )

    assert record.name == "Tidal Scheduler"
    assert record.steps == ["one", "two"]
    assert record.pseudo_code == ""
    assert record.tags == []
    assert record.type == "hybrid"
    assert record.model_dump(by_alias=True)["parentIds"] == [1, 2]


def test_record_rejects_blank_name():
    with pytest.raises(ValidationError):
        AlgorithmRecord(name="  ", inspiration="i", domain="d", description="x", principle="p")


def test_problem_seed_label():
    seed = ProblemSeed(domain="Energy", inspiration="Leaves", category="Storage")
    assert seed.domain_label() == "Energy - Storage"


def test_log_entry_from_row_decodes_details():
    entry = AutomationLogEntry.from_row(
        {
            "id": 4,
            "task_type": "auto_synthesis",
            "status": "failed",
            "details": '{"error": "boom"}',
            "algorithm_id": None,
            "created_at": "2026-01-02 03:04:05",
        }
    )

    assert entry.details == {"error": "boom"}
    assert entry.to_api()["createdAt"] == "2026-01-02T03:04:05+00:00"
