"""
Job processors - prompt shaping around GeminiJsonClient.

Each processor builds a prompt from structured context, declares the response
schema, delegates to the JSON client (retry + parse) and checks that the
schema's required fields came back. Missing fields produce a
validation_failed JobResult that still carries the partial payload; nothing
is filled in with defaults.

LLM errors propagate to the caller. Only `analyze` touches the database, to
store its own result row.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from biosynth.automation.models import (
    AnalysisType,
    GenerationRequest,
    Problem,
    StoredAlgorithm,
)
from biosynth.llm.client import JsonClient
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, log_event

if TYPE_CHECKING:
    from biosynth.automation.repository import AutomationRepository

logger = get_logger(__name__)


class ResultKind(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"


@dataclass
class JobResult:
    """Tagged processor outcome. Callers branch on `kind`, not on messages."""

    kind: ResultKind
    payload: Any = None
    missing_fields: tuple[str, ...] = field(default_factory=tuple)
    message: str | None = None

    @classmethod
    def ok(cls, payload: Any) -> JobResult:
        return cls(kind=ResultKind.OK, payload=payload)

    @classmethod
    def not_found(cls, message: str) -> JobResult:
        return cls(kind=ResultKind.NOT_FOUND, message=message)

    @classmethod
    def validation_failed(cls, payload: Any, missing: Sequence[str]) -> JobResult:
        return cls(
            kind=ResultKind.VALIDATION_FAILED,
            payload=payload,
            missing_fields=tuple(missing),
            message=f"Response missing required fields: {', '.join(missing)}",
        )

    @property
    def is_ok(self) -> bool:
        return self.kind == ResultKind.OK


# ============================================================================
# Response schemas
# ============================================================================


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


ALGORITHM_FIELDS = [
    "name",
    "inspiration",
    "domain",
    "description",
    "principle",
    "steps",
    "applications",
    "pseudoCode",
    "tags",
]

GENERATE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "A creative, sci-fi sounding name for the algorithm"},
        "inspiration": {"type": "string", "description": "The specific biological/physical source"},
        "domain": {"type": "string", "description": "The problem domain addressed"},
        "description": {"type": "string", "description": "A concise summary of what the algorithm does"},
        "principle": {"type": "string", "description": "The core mechanism borrowed from nature"},
        "steps": _string_list("Step-by-step logic flow of the algorithm"),
        "applications": _string_list("Potential real-world use cases"),
        "pseudoCode": {"type": "string", "description": "A code-like representation of the core logic loop"},
        "tags": _string_list("Keywords (e.g., 'Optimization', 'Distributed', 'Chaos')"),
    },
    "required": ALGORITHM_FIELDS,
}

SYNTHESIZE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Name of the hybrid system"},
        "inspiration": {"type": "string", "description": "The combination of sources"},
        "domain": {"type": "string", "description": "The complex domain this hybrid solves"},
        "description": {"type": "string", "description": "Summary of the hybrid system"},
        "principle": {"type": "string", "description": "The emergent synergy principle"},
        "steps": _string_list("Logic flow of the interaction between subsystems"),
        "applications": _string_list("Advanced use cases"),
        "pseudoCode": {"type": "string", "description": "Pseudocode showing the integration"},
        "tags": _string_list("Keywords"),
    },
    "required": ALGORITHM_FIELDS,
}

IMPROVE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        **GENERATE_SCHEMA["properties"],
        "improvementNote": {"type": "string", "description": "Brief note explaining what was improved"},
    },
    "required": [*ALGORITHM_FIELDS, "improvementNote"],
}

ANALYSIS_SCHEMAS: dict[AnalysisType, dict[str, Any]] = {
    AnalysisType.SANITY: {
        "type": "object",
        "properties": {
            "score": {"type": "integer", "description": "Feasibility score from 0 to 100"},
            "verdict": {"type": "string", "description": "Short verdict"},
            "analysis": {"type": "string", "description": "Detailed analysis"},
            "gaps": _string_list("List of logical gaps"),
        },
        "required": ["score", "verdict", "analysis", "gaps"],
    },
    AnalysisType.BLIND_SPOT: {
        "type": "object",
        "properties": {
            "risks": {
                "type": "array",
                "description": "Objects with risk, explanation, severity (High, Medium or Low)",
                "items": {
                    "type": "object",
                    "properties": {
                        "risk": {"type": "string"},
                        "explanation": {"type": "string"},
                        "severity": {"type": "string", "enum": ["High", "Medium", "Low"]},
                    },
                    "required": ["risk", "explanation", "severity"],
                },
            },
        },
        "required": ["risks"],
    },
    AnalysisType.EXTENSION: {
        "type": "object",
        "properties": {
            "ideas": {
                "type": "array",
                "description": "Objects with name, description, benefit",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "benefit": {"type": "string"},
                    },
                    "required": ["name", "description", "benefit"],
                },
            },
        },
        "required": ["ideas"],
    },
}

PROBLEM_SEED_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "inspiration": {"type": "string", "description": "The biological/physical system"},
        "domain": {"type": "string", "description": "The problem domain"},
        "category": {"type": "string", "description": "A category for this problem"},
    },
    "required": ["inspiration", "domain", "category"],
}

PROBLEM_DOMAIN_MENU = [
    "Technology and Computing",
    "Healthcare and Medicine",
    "Environment and Climate",
    "Education and Learning",
    "Business and Economics",
    "Social and Community",
    "Science and Research",
    "Infrastructure and Urban Planning",
    "Agriculture and Food",
    "Energy and Resources",
    "Transportation and Logistics",
    "Communication and Information",
]


def missing_required(payload: Any, schema: dict[str, Any]) -> list[str]:
    """Required top-level fields that are absent or null in payload."""
    if not isinstance(payload, dict):
        return list(schema.get("required", []))
    return [name for name in schema.get("required", []) if payload.get(name) is None]


def _checked(payload: Any, schema: dict[str, Any], job: str) -> JobResult:
    missing = missing_required(payload, schema)
    if missing:
        counter(f"jobs.{job}.incomplete")
        logger.warning("%s response missing fields: %s", job, missing)
        return JobResult.validation_failed(payload, missing)
    counter(f"jobs.{job}.ok")
    return JobResult.ok(payload)


# ============================================================================
# Processors
# ============================================================================


class JobProcessors:
    """Stateless prompt builders bound to a JSON client (and a repository for lookups)."""

    def __init__(self, client: JsonClient, repository: AutomationRepository | None = None):
        self.client = client
        self.repository = repository

    def generate(self, request: GenerationRequest) -> JobResult:
        prompt = f"""
Design a NOVEL, theoretical algorithm inspired by "{request.inspiration}" for the problem domain of "{request.domain}".

The algorithm should not be a direct copy of an existing one (like standard Ant Colony Optimization or Neural Networks) but a creative variation or entirely new concept based on the specific biological or physical mechanics of the inspiration.

Return the response in strict JSON format.
"""
        payload = self.client.generate_json(prompt, GENERATE_SCHEMA)
        return _checked(payload, GENERATE_SCHEMA, "generate")

    def synthesize(
        self,
        algorithms: Sequence[StoredAlgorithm],
        focus: str | None = None,
    ) -> JobResult:
        if not algorithms:
            raise ValueError("synthesize needs at least one source algorithm")

        summaries = "; ".join(algo.summary() for algo in algorithms)
        focus_line = f"Focus specifically on: {focus}" if focus else ""
        prompt = f"""
Act as a System Architect. Merge the following algorithms into a unified, sophisticated HYBRID system:
{summaries}

The goal is to create a meta-algorithm that leverages the strengths of each component to solve complex problems.
{focus_line}

Create a new cohesive system identity. The logic should explain how the components interact.
"""
        payload = self.client.generate_json(prompt, SYNTHESIZE_SCHEMA)
        return _checked(payload, SYNTHESIZE_SCHEMA, "synthesize")

    def analyze(self, algorithm_id: int, analysis_type: AnalysisType | str) -> JobResult:
        """
        Run one analysis mode against a stored algorithm.

        Side Effects:
            - Inserts an algorithm_analysis row when the result is complete
        """
        analysis_type = AnalysisType(analysis_type)
        algo = self._require_repository().get_algorithm(algorithm_id)
        if algo is None:
            return JobResult.not_found(f"Algorithm {algorithm_id} not found")

        if analysis_type == AnalysisType.SANITY:
            prompt = f"""
Perform a rigorous conceptual sanity check on this bio-inspired algorithm:
Name: {algo.name}
Inspiration: {algo.inspiration}
Principle: {algo.principle}
Logic: {' -> '.join(algo.steps)}

Evaluate if the biological metaphor actually translates meaningfully to the computational domain.
"""
        elif analysis_type == AnalysisType.BLIND_SPOT:
            prompt = f"""
Act as a hostile reviewer. Find the major flaws, blind spots, edge cases, and failure modes of this algorithm:
Name: {algo.name}
Description: {algo.description}
Steps: {'; '.join(algo.steps)}
"""
        else:
            prompt = f"""
Suggest 3 exciting feature extensions or evolution paths for this algorithm:
Name: {algo.name}
Domain: {algo.domain}

How can it be made more powerful?
"""

        schema = ANALYSIS_SCHEMAS[analysis_type]
        payload = self.client.generate_json(prompt, schema)
        result = _checked(payload, schema, f"analyze.{analysis_type.value}")

        if result.is_ok:
            self._require_repository().save_analysis(algorithm_id, analysis_type, payload)
            log_event(
                "jobs.analysis_saved",
                algorithm_id=algorithm_id,
                analysis_type=analysis_type.value,
            )
        return result

    def improve(
        self,
        algorithm_id: int,
        improvement_description: str,
        improvement_type: str | None = None,
    ) -> JobResult:
        algo = self._require_repository().get_algorithm(algorithm_id)
        if algo is None:
            return JobResult.not_found(f"Algorithm {algorithm_id} not found")

        prompt = f"""
Improve the following bio-inspired algorithm based on this specific issue or enhancement request:

ISSUE/ENHANCEMENT: {improvement_description}
IMPROVEMENT TYPE: {improvement_type or 'general improvement'}

CURRENT ALGORITHM:
Name: {algo.name}
Inspiration: {algo.inspiration}
Domain: {algo.domain}
Description: {algo.description}
Principle: {algo.principle}
Steps: {' -> '.join(algo.steps)}
Pseudo Code: {algo.pseudo_code or 'N/A'}
Applications: {', '.join(algo.applications)}
Tags: {', '.join(algo.tags)}

TASK: Generate an IMPROVED version of this algorithm that addresses the issue/enhancement request.
The improved algorithm should:
1. Maintain the core biological/physical inspiration and principle
2. Address the specific issue or incorporate the requested enhancement
3. Preserve what works well in the current algorithm
4. Provide clear improvements in the description, steps, and pseudo code

Return the improved algorithm in strict JSON format with the same structure as the original.
"""
        payload = self.client.generate_json(prompt, IMPROVE_SCHEMA)
        return _checked(payload, IMPROVE_SCHEMA, "improve")

    def suggest_inspiration(self, problem: Problem) -> JobResult:
        """Ask for a natural system that could inspire a solution to an existing problem."""
        prompt = f"""
Given this problem: "{problem.title}" - {problem.description}
Domain: {problem.domain or 'General'}
Category: {problem.category or 'General'}

Suggest a specific biological or physical system/process from nature that could inspire an algorithm to solve this problem.
Return a JSON object with:
- inspiration: The biological/physical system (e.g., "Photosynthesis", "Immune System", "Ant Colony Foraging")
- domain: The problem domain (use the problem's domain if provided)
- category: A category for this problem
"""
        payload = self.client.generate_json(prompt, PROBLEM_SEED_SCHEMA)
        return _checked(payload, PROBLEM_SEED_SCHEMA, "suggest_inspiration")

    def invent_problem(self) -> JobResult:
        """Ask for a fresh real-world problem plus a matching natural inspiration."""
        menu = "\n".join(f"- {domain}" for domain in PROBLEM_DOMAIN_MENU)
        prompt = f"""
Generate a diverse, real-world problem that needs solving. Consider problems from:
{menu}
- And any other domain

Be creative and diverse. Don't limit to common problems - think of novel, interesting challenges.

Also suggest a biological or physical system from nature that could inspire an algorithm to solve this problem.

Return a JSON object with:
- domain: The problem domain/area
- inspiration: The biological/physical system (e.g., "Photosynthesis", "Neural Networks", "Swarm Behavior")
- category: A category for this problem
"""
        payload = self.client.generate_json(prompt, PROBLEM_SEED_SCHEMA)
        return _checked(payload, PROBLEM_SEED_SCHEMA, "invent_problem")

    def _require_repository(self) -> AutomationRepository:
        if self.repository is None:
            raise RuntimeError("JobProcessors was constructed without a repository")
        return self.repository
