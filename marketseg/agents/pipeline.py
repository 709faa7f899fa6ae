"""Run driver: walks one ProductInput through every phase to a SegmentationResult."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from loguru import logger

from marketseg.agents.market_analysis import MarketAnalysisStage
from marketseg.agents.market_research import AdaptiveMarketResearcher
from marketseg.agents.personas import PersonaStage
from marketseg.agents.roadmap import RoadmapStage
from marketseg.agents.segmentation import SegmentationStage
from marketseg.config import settings
from marketseg.errors import ConfigError, OverloadedError, RateLimitError, StageError
from marketseg.models.events import ProcessingPhase, ProcessingStatus, SearchPhase, SearchProgress
from marketseg.models.schemas import ProductInput, SegmentationResult
from marketseg.services import logger as log_service
from marketseg.services.completion_client import CompletionClient
from marketseg.services.cost_tracker import CostTracker, cost_tracker as default_cost_tracker
from marketseg.services.status_store import StatusStore, status_store as default_status_store
from marketseg.tools.serper_search import SerperClient

PHASE_PROGRESS: dict[ProcessingPhase, int] = {
    ProcessingPhase.COLLECTING_INPUT: 5,
    ProcessingPhase.MARKET_RESEARCH: 10,
    ProcessingPhase.MARKET_ANALYSIS: 65,
    ProcessingPhase.SEGMENT_IDENTIFICATION: 75,
    ProcessingPhase.PERSONA_DEVELOPMENT: 85,
    ProcessingPhase.STRATEGY_DEVELOPMENT: 92,
    ProcessingPhase.GENERATING_REPORT: 98,
    ProcessingPhase.COMPLETE: 100,
}

# Searching spans 20..55 of the overall bar.
SEARCH_PROGRESS_START = 20
SEARCH_PROGRESS_SPAN = 35


def research_status(progress: SearchProgress) -> ProcessingStatus:
    """Map a researcher sub-phase onto the user-facing market-research status."""
    if progress.phase == SearchPhase.PLATFORM_ANALYSIS:
        message, value = "Analyzing best platforms for your market...", 15
    elif progress.phase == SearchPhase.QUERY_GENERATION:
        message, value = "Generating intelligent search queries...", 20
    elif progress.phase == SearchPhase.SEARCHING:
        fraction = progress.completed / progress.total if progress.total else 0.0
        message = f"Searching {progress.current_platform or 'web'} ({round(fraction * 100)}% complete)..."
        if progress.estimated_time_remaining:
            message += f" ~{progress.estimated_time_remaining} min remaining"
        value = SEARCH_PROGRESS_START + round(fraction * SEARCH_PROGRESS_SPAN)
    else:
        message, value = "Analyzing market intelligence with AI...", 60
    return ProcessingStatus(ProcessingPhase.MARKET_RESEARCH, message, value)


def classify_error(error: BaseException) -> str:
    """User-facing message for a failed run. Type first, then message substring."""
    message = str(error)
    if isinstance(error, ConfigError):
        if "SERPER" in message:
            return "Serper API key not configured. Please check environment variables."
        return "Claude API key not configured. Please check environment variables."
    if isinstance(error, RateLimitError):
        return "API rate limit reached. Please wait a moment and try again."
    if isinstance(error, OverloadedError):
        return "Claude servers are currently overloaded. Please try again in a few minutes."

    if "ANTHROPIC_API_KEY" in message:
        return "Claude API key not configured. Please check environment variables."
    if "SERPER_API_KEY" in message:
        return "Serper API key not configured. Please check environment variables."
    if "rate limit" in message:
        return "API rate limit reached. Please wait a moment and try again."
    if "overloaded" in message or "529" in message:
        return "Claude servers are currently overloaded. Please try again in a few minutes."
    if "platform" in message:
        return "Failed to analyze platforms. Please try again."
    if "market analysis" in message:
        return "Failed to analyze market data. Please try again."
    if "segments" in message:
        return "Failed to identify market segments. Please try again."
    if "personas" in message:
        return "Failed to develop buyer personas. Please try again."
    if "roadmap" in message:
        return "Failed to generate implementation roadmap. Please try again."
    if "timeout" in message:
        return "Request timed out. The analysis is taking longer than expected."
    return f"Analysis failed: {message[:100]}"


def collect_warnings(
    market_analysis: dict[str, Any],
    segments: list[dict[str, Any]],
    personas: list[dict[str, Any]],
) -> list[str]:
    warnings: list[str] = []
    if market_analysis.get("isFallback"):
        warnings.append("Market size and growth figures are generic estimates because the analysis could not be parsed.")
    if any(c.get("isFallback") for c in market_analysis.get("competitors") or [] if isinstance(c, dict)):
        warnings.append("The competitor list is a generic placeholder because the analysis could not be parsed.")
    fallback_segments = sum(1 for s in segments if s.get("isFallback"))
    if fallback_segments:
        warnings.append(
            f"{fallback_segments} of {len(segments)} segments were generated using fallback values "
            "due to API limitations. Results may be less accurate than normal."
        )
    fallback_personas = sum(1 for p in personas if p.get("isFallback"))
    if fallback_personas:
        warnings.append(
            f"{fallback_personas} of {len(personas)} personas were generated using fallback values "
            "due to API limitations."
        )
    return warnings


class SegmentationPipeline:
    """Strictly sequential phases; any escaping exception ends the run in ``error``."""

    def __init__(
        self,
        *,
        completion: CompletionClient | None = None,
        search_client: SerperClient | None = None,
        researcher: AdaptiveMarketResearcher | None = None,
        analysis_stage: MarketAnalysisStage | None = None,
        segmentation_stage: SegmentationStage | None = None,
        persona_stage: PersonaStage | None = None,
        roadmap_stage: RoadmapStage | None = None,
        status_store: StatusStore | None = None,
        cost_tracker: CostTracker | None = None,
    ):
        self.completion = completion or CompletionClient()
        self.search_client = search_client or SerperClient()
        self.analysis_stage = analysis_stage or MarketAnalysisStage(self.completion)
        self.researcher = researcher or AdaptiveMarketResearcher(
            self.completion, self.search_client, analysis_stage=self.analysis_stage
        )
        self.segmentation_stage = segmentation_stage or SegmentationStage(self.completion)
        self.persona_stage = persona_stage or PersonaStage(self.completion)
        self.roadmap_stage = roadmap_stage or RoadmapStage(self.completion)
        self.status_store = status_store or default_status_store
        self.cost_tracker = cost_tracker or default_cost_tracker

    def _update(self, session_id: str, phase: ProcessingPhase, message: str) -> None:
        self._set(session_id, ProcessingStatus(phase, message, PHASE_PROGRESS[phase]))

    def _set(self, session_id: str, status: ProcessingStatus) -> None:
        self.status_store.update(session_id, status)
        log_service.log_pipeline_phase(
            session_id, status.phase.value, "started", {"progress": status.progress, "message": status.message}
        )

    async def run(self, product_input: ProductInput, session_id: str = "default") -> SegmentationResult:
        self.cost_tracker.reset()
        unsubscribe = self.cost_tracker.subscribe(lambda summary: self.status_store.set_costs(session_id, summary))
        try:
            return await self._run(product_input, session_id)
        except Exception as e:
            user_message = classify_error(e)
            logger.error(f"[Pipeline] Run {session_id} failed: {e!r}")
            logger.error(f"[Pipeline] Final costs before error: {self.cost_tracker.get_summary().to_dict()}")
            self.status_store.fail(session_id, user_message)
            log_service.log_pipeline_phase(session_id, ProcessingPhase.ERROR.value, "failed", {"error": str(e)})
            raise
        finally:
            unsubscribe()

    async def _run(self, product_input: ProductInput, session_id: str) -> SegmentationResult:
        self._update(session_id, ProcessingPhase.COLLECTING_INPUT, "Validating product input...")
        self.completion.ensure_configured()
        self.search_client.ensure_configured()

        research_message = (
            "Conducting market research in quick mode (2-3 minutes)..."
            if settings.quick_mode
            else "Conducting deep market research (10-15 minutes)..."
        )
        self._update(session_id, ProcessingPhase.MARKET_RESEARCH, research_message)
        market_research = await self.researcher.conduct_adaptive_market_research(
            product_input,
            on_progress=lambda progress: self._set(session_id, research_status(progress)),
        )

        self._update(session_id, ProcessingPhase.MARKET_ANALYSIS, "Analyzing market data with AI...")
        market_analysis = await self.analysis_stage.analyze_market(product_input, market_research)

        self._update(session_id, ProcessingPhase.SEGMENT_IDENTIFICATION, "Identifying customer segments...")
        segments = await self.segmentation_stage.identify_segments(product_input, market_analysis)
        if not segments:
            raise StageError("segments", "Failed to generate valid segments")

        self._update(session_id, ProcessingPhase.PERSONA_DEVELOPMENT, "Developing detailed personas...")
        personas = await self.persona_stage.develop_personas(segments, product_input)

        self._update(session_id, ProcessingPhase.STRATEGY_DEVELOPMENT, "Creating implementation roadmap...")
        roadmap = await self.roadmap_stage.generate_implementation_roadmap(segments, personas)

        self._update(session_id, ProcessingPhase.GENERATING_REPORT, "Preparing your results...")
        warnings = collect_warnings(market_analysis, segments, personas)
        for warning in warnings:
            logger.warning(f"[Pipeline] {warning}")
        result = SegmentationResult(
            market_analysis=market_analysis,
            segments=segments,
            personas=personas,
            implementation_roadmap=roadmap,
            created_at=datetime.now(timezone.utc).isoformat(),
            warnings=warnings or None,
        )

        self._update(session_id, ProcessingPhase.COMPLETE, "Analysis complete!")
        logger.info(f"[Pipeline] Final costs: {self.cost_tracker.get_summary().to_dict()}")
        return result
