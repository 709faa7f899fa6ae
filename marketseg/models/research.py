"""Records owned by the adaptive researcher for the duration of one run."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class PlatformChoice:
    name: str
    weight: float
    sections: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "weight": self.weight}
        if self.sections:
            data["sections"] = list(self.sections)
        return data


@dataclass(slots=True)
class PlatformStrategy:
    platforms: list[PlatformChoice]
    query_volume: int
    reasoning: str = ""
    is_fallback: bool = False

    @classmethod
    def from_payload(cls, payload: Any, default_query_volume: int) -> "PlatformStrategy":
        """Build from parsed model output. Raises ValueError when the shape is unusable."""
        if not isinstance(payload, dict):
            raise ValueError("platform strategy must be a JSON object")
        raw_platforms = payload.get("platforms")
        if not isinstance(raw_platforms, list):
            raise ValueError("platform strategy is missing a platforms list")

        platforms: list[PlatformChoice] = []
        for item in raw_platforms:
            if isinstance(item, str):
                platforms.append(PlatformChoice(name=item, weight=0))
                continue
            if not isinstance(item, dict) or not item.get("name"):
                continue
            sections = item.get("sections") or item.get("subreddits") or item.get("focus")
            try:
                weight = float(item.get("weight") or 0)
            except (TypeError, ValueError):
                weight = 0.0
            platforms.append(
                PlatformChoice(
                    name=str(item["name"]),
                    weight=weight,
                    sections=[str(s) for s in sections] if isinstance(sections, list) else None,
                )
            )
        if not platforms:
            raise ValueError("platform strategy contains no usable platforms")

        try:
            query_volume = int(payload.get("queryVolume") or default_query_volume)
        except (TypeError, ValueError):
            query_volume = default_query_volume
        return cls(
            platforms=platforms,
            query_volume=query_volume,
            reasoning=str(payload.get("reasoning") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "platforms": [p.to_dict() for p in self.platforms],
            "reasoning": self.reasoning,
            "queryVolume": self.query_volume,
        }


@dataclass(slots=True)
class SearchResult:
    """One issued query. A permanently failed query carries ``error`` and no hits."""

    query: str
    platform: str
    organic: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        results: dict[str, Any] = {**self.extra, "organic": list(self.organic)}
        if self.error is not None:
            results["error"] = self.error
        return {
            "query": self.query,
            "platform": self.platform,
            "results": results,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class SearchMetadata:
    total_queries: int
    successful_searches: int
    total_results_found: int
    search_duration: float  # minutes
    platforms_covered: list[str]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQueries": self.total_queries,
            "successfulSearches": self.successful_searches,
            "totalResultsFound": self.total_results_found,
            "searchDuration": self.search_duration,
            "platformsCovered": list(self.platforms_covered),
            "timestamp": self.timestamp,
        }
