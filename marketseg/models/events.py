from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class ProcessingPhase(str, Enum):
    COLLECTING_INPUT = "collecting-input"
    MARKET_RESEARCH = "market-research"
    MARKET_ANALYSIS = "market-analysis"
    SEGMENT_IDENTIFICATION = "segment-identification"
    PERSONA_DEVELOPMENT = "persona-development"
    STRATEGY_DEVELOPMENT = "strategy-development"
    GENERATING_REPORT = "generating-report"
    COMPLETE = "complete"
    ERROR = "error"


# Strictly sequential; ERROR is terminal and may follow any phase.
PHASE_ORDER: tuple[ProcessingPhase, ...] = (
    ProcessingPhase.COLLECTING_INPUT,
    ProcessingPhase.MARKET_RESEARCH,
    ProcessingPhase.MARKET_ANALYSIS,
    ProcessingPhase.SEGMENT_IDENTIFICATION,
    ProcessingPhase.PERSONA_DEVELOPMENT,
    ProcessingPhase.STRATEGY_DEVELOPMENT,
    ProcessingPhase.GENERATING_REPORT,
    ProcessingPhase.COMPLETE,
)


class SearchPhase(str, Enum):
    """Sub-phases reported by the adaptive researcher during market research."""

    PLATFORM_ANALYSIS = "platform-analysis"
    QUERY_GENERATION = "query-generation"
    SEARCHING = "searching"
    ANALYSIS = "analysis"


@dataclass(slots=True)
class ProcessingStatus:
    phase: ProcessingPhase
    message: str
    progress: int

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.phase.value, "message": self.message, "progress": self.progress}


@dataclass(slots=True)
class SearchProgress:
    phase: SearchPhase
    completed: int
    total: int
    current_platform: str | None = None
    estimated_time_remaining: int | None = None  # minutes

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data
