"""Running ledger of billed API usage.

The summary is never stored; it is folded from the ledger on every read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from loguru import logger

Provider = Literal["claude", "serper"]

# Claude Sonnet pricing per 1M tokens
CLAUDE_INPUT_PER_1M = 3.00
CLAUDE_OUTPUT_PER_1M = 15.00
SERPER_PER_SEARCH = 0.01


@dataclass(frozen=True, slots=True)
class ApiCost:
    provider: Provider
    operation: str
    cost: float
    input_tokens: int | None = None
    output_tokens: int | None = None
    search_count: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "provider": self.provider,
            "operation": self.operation,
            "cost": self.cost,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.input_tokens is not None:
            data["inputTokens"] = self.input_tokens
        if self.output_tokens is not None:
            data["outputTokens"] = self.output_tokens
        if self.search_count is not None:
            data["searchCount"] = self.search_count
        return data


@dataclass(slots=True)
class CostSummary:
    claude_cost: float = 0.0
    claude_input_tokens: int = 0
    claude_output_tokens: int = 0
    claude_operations: int = 0
    serper_cost: float = 0.0
    serper_search_count: int = 0
    serper_operations: int = 0

    @property
    def total_cost(self) -> float:
        return self.claude_cost + self.serper_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "claude": {
                "totalCost": self.claude_cost,
                "inputTokens": self.claude_input_tokens,
                "outputTokens": self.claude_output_tokens,
                "operations": self.claude_operations,
            },
            "serper": {
                "totalCost": self.serper_cost,
                "searchCount": self.serper_search_count,
                "operations": self.serper_operations,
            },
            "totalCost": self.total_cost,
        }


Listener = Callable[[CostSummary], None]


class CostTracker:
    def __init__(self) -> None:
        self._costs: list[ApiCost] = []
        self._listeners: list[Listener] = []

    def add_claude_cost(self, operation: str, input_tokens: int, output_tokens: int) -> ApiCost:
        input_cost = (input_tokens / 1_000_000) * CLAUDE_INPUT_PER_1M
        output_cost = (output_tokens / 1_000_000) * CLAUDE_OUTPUT_PER_1M
        entry = ApiCost(
            provider="claude",
            operation=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=input_cost + output_cost,
        )
        self._record(entry)
        logger.debug(
            f"[CostTracker] Claude - {operation}: ${entry.cost:.4f} "
            f"({input_tokens} in, {output_tokens} out)"
        )
        return entry

    def add_serper_cost(self, operation: str, search_count: int) -> ApiCost:
        entry = ApiCost(
            provider="serper",
            operation=operation,
            search_count=search_count,
            cost=search_count * SERPER_PER_SEARCH,
        )
        self._record(entry)
        logger.debug(f"[CostTracker] Serper - {operation}: ${entry.cost:.4f} ({search_count} searches)")
        return entry

    def _record(self, entry: ApiCost) -> None:
        self._costs.append(entry)
        self._notify()

    def get_summary(self) -> CostSummary:
        summary = CostSummary()
        for entry in self._costs:
            if entry.provider == "claude":
                summary.claude_cost += entry.cost
                summary.claude_input_tokens += entry.input_tokens or 0
                summary.claude_output_tokens += entry.output_tokens or 0
                summary.claude_operations += 1
            else:
                summary.serper_cost += entry.cost
                summary.serper_search_count += entry.search_count or 0
                summary.serper_operations += 1
        return summary

    def get_detailed_costs(self) -> list[ApiCost]:
        return list(self._costs)

    def reset(self) -> None:
        self._costs = []
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and immediately send it the current summary."""
        self._listeners.append(listener)
        listener(self.get_summary())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        summary = self.get_summary()
        for listener in list(self._listeners):
            listener(summary)

    @staticmethod
    def estimate_analysis_cost(search_queries: int) -> float:
        # platform selection, query gen, analysis, segments, personas, roadmap
        operations = 6
        input_tokens_per_op = 2000
        output_tokens_per_op = 1500
        claude_cost = operations * (
            (input_tokens_per_op / 1_000_000) * CLAUDE_INPUT_PER_1M
            + (output_tokens_per_op / 1_000_000) * CLAUDE_OUTPUT_PER_1M
        )
        return claude_cost + search_queries * SERPER_PER_SEARCH


cost_tracker = CostTracker()
