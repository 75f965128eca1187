"""
BioSynth automation - job processors, orchestrator and cron scheduling.
"""

from biosynth.automation.models import (
    AlgorithmRecord,
    AlgorithmType,
    AnalysisType,
    AutomationLogEntry,
    GenerationRequest,
    LogStatus,
    ProblemSeed,
    StoredAlgorithm,
    TaskSummary,
    TaskType,
)
from biosynth.automation.orchestrator import AutomationConfig, AutomationOrchestrator
from biosynth.automation.processors import JobProcessors, JobResult, ResultKind
from biosynth.automation.repository import AutomationRepository

__all__ = [
    # Models
    "AlgorithmRecord",
    "AlgorithmType",
    "AnalysisType",
    "AutomationLogEntry",
    "GenerationRequest",
    "LogStatus",
    "ProblemSeed",
    "StoredAlgorithm",
    "TaskSummary",
    "TaskType",
    # Processors
    "JobProcessors",
    "JobResult",
    "ResultKind",
    # Orchestration
    "AutomationConfig",
    "AutomationOrchestrator",
    # Repository
    "AutomationRepository",
]
