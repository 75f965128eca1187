"""
Domain models for the automation pipeline.

Rows read from SQLite are decoded into these models right after the query,
so a malformed row fails loudly at the repository boundary instead of deep
inside the orchestrator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from biosynth.llm.parser import split_list_field


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


class AlgorithmType(str, Enum):
    GENERATED = "generated"
    HYBRID = "hybrid"


class TaskType(str, Enum):
    """automation_logs.task_type values."""

    DAILY_GENERATION = "daily_generation"
    AUTO_SYNTHESIS = "auto_synthesis"
    ALGORITHM_IMPROVEMENT = "algorithm_improvement"


class LogStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ANALYSIS_COMPLETE = "analysis_complete"


class AnalysisType(str, Enum):
    SANITY = "sanity"
    BLIND_SPOT = "blind_spot"
    EXTENSION = "extension"


def as_string_list(value: Any) -> list[str]:
    """
    Normalize a list-shaped field.

    Lists pass through (items stringified), JSON-array strings are decoded,
    other strings are split on commas, None becomes [] and any other scalar
    becomes a one-element list.
    """
    if value is None:
        return []
    if isinstance(value, list | tuple):
        return [str(item) for item in value]
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                return [str(item) for item in decoded]
        return split_list_field(value)
    return [str(value)]


class GenerationRequest(BaseModel):
    """Input to the generate processor. Never persisted."""

    inspiration: str
    domain: str


class AlgorithmRecord(BaseModel):
    """
    A bio-inspired algorithm description as produced by generate/synthesize.

    steps, applications and tags are always lists once validated, whatever
    shape the model returned them in.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    name: str
    inspiration: str
    domain: str
    description: str
    principle: str
    steps: list[str] = Field(default_factory=list)
    applications: list[str] = Field(default_factory=list)
    pseudo_code: str = Field(default="", alias="pseudoCode")
    tags: list[str] = Field(default_factory=list)
    type: AlgorithmType = AlgorithmType.GENERATED
    parent_ids: list[int] | None = Field(default=None, alias="parentIds")

    @field_validator("steps", "applications", "tags", mode="before")
    @classmethod
    def normalize_list(cls, v: Any) -> list[str]:
        return as_string_list(v)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("pseudo_code", mode="before")
    @classmethod
    def pseudo_code_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        algorithm_type: AlgorithmType = AlgorithmType.GENERATED,
        parent_ids: list[int] | None = None,
    ) -> AlgorithmRecord:
        """Build a record from a processor payload (camelCase or snake_case keys)."""
        data = dict(payload)
        if "pseudoCode" not in data and "pseudo_code" in data:
            data["pseudoCode"] = data.pop("pseudo_code")
        data["type"] = algorithm_type
        data["parentIds"] = parent_ids
        return cls.model_validate(data)


class StoredAlgorithm(AlgorithmRecord):
    """An algorithms row joined with its popularity inputs."""

    id: int
    user_id: int
    visibility: str = "private"
    like_count: int = 0
    view_count: int = 0
    avg_score: float = 0.0
    created_at: str | None = None

    @field_validator("parent_ids", mode="before")
    @classmethod
    def decode_parent_ids(cls, v: Any) -> Any:
        if isinstance(v, str):
            return json.loads(v) if v.strip() else None
        return v

    @classmethod
    def from_row(cls, row: Any) -> StoredAlgorithm:
        """Decode a sqlite3.Row (or mapping) from the algorithms table."""
        data = dict(row)
        data["pseudoCode"] = data.pop("pseudo_code", "")
        data["parentIds"] = data.pop("parent_ids", None)
        data["avg_score"] = data.get("avg_score") or 0.0
        return cls.model_validate(data)

    @property
    def popularity(self) -> float:
        return self.like_count * 2 + self.view_count + self.avg_score * 10

    def summary(self) -> str:
        return f"{self.name} (Inspiration: {self.inspiration}, Principle: {self.principle})"

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Problem(BaseModel):
    """A row from the problems table."""

    id: int
    title: str
    description: str
    domain: str | None = None
    category: str | None = None
    priority: str = "medium"
    status: str = "draft"

    @classmethod
    def from_row(cls, row: Any) -> Problem:
        return cls.model_validate(dict(row))


@dataclass(frozen=True)
class ProblemSeed:
    """Where one generated algorithm draws its inspiration and domain from."""

    domain: str
    inspiration: str
    category: str

    def domain_label(self) -> str:
        return f"{self.domain} - {self.category}"

    def to_dict(self) -> dict[str, str]:
        return {"domain": self.domain, "inspiration": self.inspiration, "category": self.category}


@dataclass(frozen=True)
class AutomationLogEntry:
    """One append-only row in automation_logs."""

    task_type: TaskType
    status: LogStatus
    details: dict[str, Any] = field(default_factory=dict)
    algorithm_id: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    id: int | None = None

    @classmethod
    def from_row(cls, row: Any) -> AutomationLogEntry:
        data = dict(row)
        details = data.get("details")
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except json.JSONDecodeError:
                details = {"raw": details}
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at).replace(tzinfo=UTC)
        return cls(
            id=data.get("id"),
            task_type=TaskType(data["task_type"]),
            status=LogStatus(data["status"]),
            details=details or {},
            algorithm_id=data.get("algorithm_id"),
            created_at=created_at or utc_now(),
        )

    def to_api(self) -> dict[str, Any]:
        """Shape used by the admin API (external contract)."""
        return {
            "id": self.id,
            "taskType": self.task_type.value,
            "status": self.status.value,
            "details": self.details,
            "algorithmId": self.algorithm_id,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class TaskSummary:
    """Outcome counts for one orchestrator task run."""

    task_type: TaskType
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskType": self.task_type.value,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }
