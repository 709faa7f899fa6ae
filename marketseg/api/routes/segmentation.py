from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from marketseg.agents.pipeline import SegmentationPipeline, classify_error
from marketseg.api.deps import get_cost_tracker, get_job_store, get_pipeline, get_status_store
from marketseg.config import settings
from marketseg.models.schemas import ErrorResponse, JobPollResponse, ProductInput, StartJobResponse
from marketseg.services import logger as log_service
from marketseg.services import streaming
from marketseg.services.cost_tracker import CostTracker
from marketseg.services.status_store import JobStore, StatusStore

router = APIRouter(prefix="/api/segmentation", tags=["segmentation"])


@router.post("")
async def run_segmentation(
    product_input: ProductInput,
    x_session_id: str = Header(default="default"),
    pipeline: SegmentationPipeline = Depends(get_pipeline),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    """Run the full pipeline and return the SegmentationResult."""
    log_service.log_event(
        event_type="segmentation_started",
        message="Segmentation run started",
        session_id=x_session_id,
        business_type=product_input.business_type,
    )
    try:
        result = await pipeline.run(product_input, session_id=x_session_id)
    except Exception as e:
        costs = cost_tracker.get_summary().to_dict()
        body = ErrorResponse(
            error=classify_error(e),
            details=str(e) if settings.is_development else None,
            costs=costs,
        )
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))
    return result.to_payload()


async def _run_job(
    pipeline: SegmentationPipeline,
    jobs: JobStore,
    product_input: ProductInput,
    job_id: str,
) -> None:
    logger.info(f"[Jobs] Starting job {job_id}")
    try:
        result = await pipeline.run(product_input, session_id=job_id)
    except Exception as e:
        jobs.fail(job_id, classify_error(e))
        logger.error(f"[Jobs] Job {job_id} failed: {e}")
        return
    jobs.complete(job_id, result.to_payload())
    logger.info(f"[Jobs] Job {job_id} completed")


@router.post("/start", response_model=StartJobResponse, response_model_by_alias=True)
async def start_segmentation(
    product_input: ProductInput,
    background_tasks: BackgroundTasks,
    pipeline: SegmentationPipeline = Depends(get_pipeline),
    jobs: JobStore = Depends(get_job_store),
):
    """Start a background run. Poll with the returned jobId, or stream its status."""
    job = jobs.create()
    background_tasks.add_task(_run_job, pipeline, jobs, product_input, job.id)
    return StartJobResponse(job_id=job.id)


@router.get("/poll", response_model=JobPollResponse)
async def poll_segmentation(
    job_id: str | None = Query(default=None, alias="jobId"),
    jobs: JobStore = Depends(get_job_store),
    statuses: StatusStore = Depends(get_status_store),
):
    if not job_id:
        raise HTTPException(status_code=400, detail="Job ID is required")

    job = jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    response = JobPollResponse(
        status=job.status.value,
        result=job.result,
        error=job.error,
        costs=statuses.snapshot(job_id)["costs"],
    )
    jobs.purge_expired(statuses)
    return response


@router.get("/status")
async def stream_status(
    request: Request,
    session_id: str = Query(default="default", alias="sessionId"),
    statuses: StatusStore = Depends(get_status_store),
):
    """SSE endpoint pushing {phase, message, progress, costs} until the client disconnects."""
    logger.info(f"[SSE] Client connected to {session_id}")
    return EventSourceResponse(
        streaming.status_events(session_id, statuses, is_disconnected=request.is_disconnected)
    )
