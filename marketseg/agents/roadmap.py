from __future__ import annotations

from typing import Any

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.agents.segmentation import segment_percentage
from marketseg.errors import ParseError, StageError
from marketseg.services.json_extractor import extract_and_parse_json


class RoadmapStage(BaseStage):
    """Go-to-market roadmap. There is no synthetic substitute, so parse failures are fatal."""

    name = "roadmap"

    async def generate_implementation_roadmap(
        self, segments: list[dict[str, Any]], personas: list[dict[str, Any]]
    ) -> dict[str, Any]:
        segment_summary = ", ".join(
            f"{s.get('name')}: {segment_percentage(s)}%" for s in segments[:3]
        )
        response = await self.complete(
            "roadmap.generate",
            max_tokens=2000,
            operation="Implementation Roadmap",
            segment_count=len(segments),
            segment_summary=segment_summary,
            persona_count=len(personas),
        )

        try:
            roadmap = extract_and_parse_json(response)
        except ParseError as e:
            logger.error(f"[{self.name}] Failed to parse roadmap: {e}")
            logger.debug(f"[{self.name}] Response snippet: {response[:500]}")
            raise StageError(self.name, "Failed to parse roadmap response") from e
        if not isinstance(roadmap, dict):
            raise StageError(self.name, "Failed to parse roadmap response: expected a JSON object")
        return roadmap
