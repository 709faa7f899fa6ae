from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Callable

import pytest

from marketseg.agents.pipeline import SegmentationPipeline
from marketseg.models.research import SearchResult
from marketseg.models.schemas import ProductInput
from marketseg.services.cost_tracker import CostTracker
from marketseg.services.status_store import StatusStore
from marketseg.tools.serper_search import get_platform_from_query

PRODUCT_PAYLOAD: dict[str, Any] = {
    "businessType": "b2b",
    "productOverview": "A workflow automation platform that helps operations teams remove repetitive manual work.",
    "customerProblems": [
        "Teams waste hours on manual data entry",
        "Approvals stall because nobody owns them",
        "Reporting requires stitching spreadsheets together",
    ],
    "priceRangeMin": 49,
    "priceRangeMax": 499,
    "stage": "early-stage",
    "businessModel": "subscription",
    "industryFocus": "SaaS",
    "jobTitles": "Head of Operations",
}

QUERIES = [
    "workflow automation pain site:reddit.com",
    "ops team manual work site:reddit.com",
    "operations automation tools site:linkedin.com",
    "workflow automation reviews site:g2.com",
    "approval workflow software site:capterra.com",
    "best workflow automation software 2024",
    "workflow automation market size",
    "no-code automation for operations teams",
]


@pytest.fixture
def product_payload() -> dict[str, Any]:
    return json.loads(json.dumps(PRODUCT_PAYLOAD))


@pytest.fixture
def product_input() -> ProductInput:
    return ProductInput.model_validate(PRODUCT_PAYLOAD)


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace asyncio.sleep with a recorder that still yields to the loop."""
    delays: list[float] = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return delays


Responder = str | BaseException | list | Callable[[str, int, str], str]


class ScriptedCompletion:
    """Completion client double answering by operation-name prefix.

    A list value is consumed one item per call; its last item repeats.
    Exceptions in the script are raised instead of returned.
    """

    def __init__(self, responses: dict[str, Responder] | None = None, *, available: bool = True):
        self.responses = dict(responses or {})
        self.available = available
        self.calls: list[tuple[str, str, int]] = []

    def ensure_configured(self) -> None:
        return None

    async def check_availability(self) -> bool:
        return self.available

    def calls_for(self, prefix: str) -> list[tuple[str, str, int]]:
        return [c for c in self.calls if c[0].startswith(prefix)]

    async def generate_completion(self, prompt: str, max_tokens: int = 4000, operation: str = "Unknown") -> str:
        self.calls.append((operation, prompt, max_tokens))
        for prefix, value in self.responses.items():
            if not operation.startswith(prefix):
                continue
            item = value
            if isinstance(value, list):
                item = value.pop(0) if len(value) > 1 else value[0]
            if callable(item) and not isinstance(item, BaseException):
                item = item(prompt, max_tokens, operation)
            if isinstance(item, BaseException):
                raise item
            return item
        raise AssertionError(f"Unexpected completion operation: {operation}")


class FakeSearchClient:
    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.queries: list[str] = []

    def ensure_configured(self) -> None:
        return None

    async def search_with_retry(self, query: str, num: int = 30) -> SearchResult:
        self.queries.append(query)
        platform = get_platform_from_query(query)
        if query in self.failing:
            return SearchResult(query=query, platform=platform, organic=[], error="HTTP 500")
        organic = [
            {"title": f"Result {i} for {query}", "snippet": "Operators complain about manual work.", "link": f"https://example.com/{i}"}
            for i in range(3)
        ]
        return SearchResult(query=query, platform=platform, organic=organic)


def segments_json(count: int = 7) -> str:
    share = 100 // count
    segments = [
        {
            "id": f"SEG_{i:03d}",
            "name": f"Segment {i}",
            "size": {"percentage": share if i < count else 100 - share * (count - 1)},
            "painPoints": [{"pain": "Manual work", "severity": "high"}],
        }
        for i in range(1, count + 1)
    ]
    return json.dumps({"segments": segments})


def personas_for(prompt: str, max_tokens: int, operation: str) -> str:
    ids = re.findall(r"SEG_\d{3}", operation)
    return json.dumps(
        [{"segmentId": seg_id, "name": f"Persona {seg_id}", "role": "Head of Operations"} for seg_id in ids]
    )


def happy_responses(*, query_volume: int = 8, queries: list[str] | None = None, segment_count: int = 7) -> dict[str, Responder]:
    return {
        "Platform Strategy Selection": json.dumps(
            {
                "platforms": [
                    {"name": "reddit", "weight": 40, "subreddits": ["r/sysadmin"]},
                    {"name": "linkedin", "weight": 30},
                    {"name": "g2", "weight": 30},
                ],
                "queryVolume": query_volume,
                "reasoning": "Operations buyers discuss tooling in communities and review sites.",
            }
        ),
        "Query Generation": json.dumps(queries or QUERIES),
        "Raw Search Data Analysis": "```json\n" + json.dumps({"marketInsights": {"themes": ["manual work"]}}) + "\n```",
        "Market Analysis - Core": json.dumps(
            {"tam": {"currentValue": 8_000_000_000}, "cagr": 14.2, "marketMaturity": {"stage": "growth"}}
        ),
        "Market Analysis - Competitors": json.dumps([{"name": "Zapier", "tier": 1}, {"name": "Make", "tier": 2}]),
        "Segment Identification": segments_json(segment_count),
        "Personas for segments": personas_for,
        "Implementation Roadmap": json.dumps({"phases": [{"name": "Launch", "duration": "3 months"}]}),
    }


class RecordingStatusStore(StatusStore):
    def __init__(self) -> None:
        super().__init__()
        self.history: list[tuple[str, int, str]] = []

    def update(self, session_id, status) -> None:
        super().update(session_id, status)
        self.history.append((status.phase.value, status.progress, status.message))


def build_pipeline(
    completion: ScriptedCompletion,
    search_client: FakeSearchClient | None = None,
    *,
    status_store: StatusStore | None = None,
    cost_tracker: CostTracker | None = None,
) -> SegmentationPipeline:
    return SegmentationPipeline(
        completion=completion,
        search_client=search_client or FakeSearchClient(),
        status_store=status_store or RecordingStatusStore(),
        cost_tracker=cost_tracker or CostTracker(),
    )
