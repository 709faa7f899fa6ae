from __future__ import annotations

from marketseg.agents.pipeline import SegmentationPipeline
from marketseg.services.cost_tracker import CostTracker, cost_tracker
from marketseg.services.status_store import JobStore, StatusStore, job_store, status_store


def get_pipeline() -> SegmentationPipeline:
    """A fresh pipeline per request, wired to the shared stores."""
    return SegmentationPipeline(status_store=status_store, cost_tracker=cost_tracker)


def get_status_store() -> StatusStore:
    return status_store


def get_job_store() -> JobStore:
    return job_store


def get_cost_tracker() -> CostTracker:
    return cost_tracker
