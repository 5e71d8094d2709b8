"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends, Request
from datetime import datetime, timezone
import logging

from folio.dependencies.services import get_gate, get_job_runner
from folio.models.schemas import HealthCheckResponse
from folio.services.job_runner import GenerationGate, JobRunner

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    request: Request,
    runner: JobRunner = Depends(get_job_runner),
    gate: GenerationGate = Depends(get_gate),
):
    """
    Health check endpoint to verify system status.

    Configuration is checked, not reachability: probing the completion
    service would spend tokens on every poll.

    Returns:
        HealthCheckResponse with completion/retrieval configuration and load
    """
    completion_status = "ok" if request.app.state.completion_client.is_configured else "not_configured"
    retrieval = request.app.state.retrieval_client
    retrieval_status = "ok" if retrieval is not None and retrieval.is_configured else "disabled"

    overall_status = "healthy" if completion_status == "ok" else "degraded"
    if overall_status != "healthy":
        logger.warning("Health check: completion service not configured")

    return HealthCheckResponse(
        status=overall_status,
        completion_service=completion_status,
        retrieval=retrieval_status,
        active_jobs=runner.active,
        generation_slots_free=max(0, gate.limit - gate.in_use),
        timestamp=datetime.now(timezone.utc),
    )
