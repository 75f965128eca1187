"""BioSynth Architect - scheduled generation of bio-inspired algorithms"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports for the automation module
def __getattr__(name: str):
    """
    Lazy imports to avoid loading Gemini/FastAPI when only importing lightweight modules.
    """
    if name in ("AlgorithmRecord", "AutomationLogEntry"):
        from biosynth.automation import models

        if name == "AlgorithmRecord":
            return models.AlgorithmRecord
        if name == "AutomationLogEntry":
            return models.AutomationLogEntry

    if name == "ResponseParser":
        from biosynth.llm.parser import ResponseParser

        return ResponseParser

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "AlgorithmRecord",
    "AutomationLogEntry",
    "ResponseParser",
]
