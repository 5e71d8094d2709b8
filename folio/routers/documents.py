"""
Document generation endpoints.

Route summary
-------------
GET  /plans                  list section plans per document type
POST /generate               generate and return the document in one request
POST /jobs                   start a background generation, returns 202 + job id
GET  /jobs/{job_id}          poll a background job
GET  /jobs/{job_id}/result   download a finished job (pdf, docx or json)

Only ``MAX_CONCURRENT_GENERATIONS`` generations run at once; extra requests
are refused with 429 rather than queued.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response

from folio.dependencies.services import (
    get_gate,
    get_job_runner,
    get_job_store,
    get_max_pages,
    get_orchestrator,
)
from folio.models.document import DocumentModel, SectionResult
from folio.models.schemas import (
    GenerateRequest,
    JobCreatedResponse,
    JobStatusResponse,
    OutputFormat,
    PlanResponse,
    PlanSectionResponse,
    PlansResponse,
)
from folio.services.docx_renderer import render_docx_bytes
from folio.services.errors import GenerationBusyError, JobNotFoundError
from folio.services.job_runner import GenerationGate, JobRunner, utcnow_iso
from folio.services.job_store import JobStatus, JobStore
from folio.services.orchestrator import DocumentOrchestrator
from folio.services.pdf_renderer import render_pdf_bytes
from folio.services.sections import DOC_TYPES, get_plan
from folio.utils.helpers import first_non_empty, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter()

_MEDIA_TYPES = {
    OutputFormat.PDF: "application/pdf",
    OutputFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _export(document: DocumentModel, fmt: OutputFormat, max_pages: int) -> Response:
    """
    Render *document* in *fmt*; PDF/DOCX rendering runs off the event loop.

    A ``RenderError`` propagates to the error handler and the caller gets a
    500 JSON body.  The partial PDF the engine writes on failure is not sent:
    a half-laid-out file behind a success status would read as a finished
    document.  Callers that want it use ``PaginationEngine.render`` directly.
    """
    if fmt == OutputFormat.JSON:
        return JSONResponse(content=document.to_dict())

    if fmt == OutputFormat.PDF:
        body = await asyncio.to_thread(render_pdf_bytes, document, max_pages)
    else:
        body = await asyncio.to_thread(render_docx_bytes, document)

    stem = sanitize_filename(
        first_non_empty(str(document.metadata.get("organization") or ""), document.title)
    )
    return Response(
        content=body,
        media_type=_MEDIA_TYPES[fmt],
        headers={
            "Content-Disposition": f'attachment; filename="{stem}.{fmt.value}"',
            "X-Degraded-Sections": ",".join(document.degraded_keys),
        },
    )


async def _load_job(store: JobStore, job_id: str) -> Dict[str, Any]:
    record = await store.get(job_id)
    if record is None:
        raise JobNotFoundError(f"Job {job_id} not found or expired")
    return record


# ---------------------------------------------------------------------------
# GET /plans
# ---------------------------------------------------------------------------

@router.get("/plans", response_model=PlansResponse)
async def list_document_plans(language: str = Query("fr", pattern="^(fr|en)$")) -> PlansResponse:
    """Section plans (full and lite) for every document type."""
    plans = []
    for doc_type in DOC_TYPES:
        for lite in (False, True):
            plan = get_plan(doc_type, lite=lite)
            plans.append(
                PlanResponse(
                    doc_type=doc_type,
                    title=plan.title(language),
                    lite=lite,
                    sections=[
                        PlanSectionResponse(key=s.key, title=s.title(language), kind=s.kind.value)
                        for s in plan.sections
                    ],
                )
            )
    return PlansResponse(plans=plans)


# ---------------------------------------------------------------------------
# POST /generate
# ---------------------------------------------------------------------------

@router.post(
    "/generate",
    summary="Generate a document and return it directly",
    responses={429: {"description": "All generation slots are busy"}},
)
async def generate_document(
    body: GenerateRequest,
    gate: GenerationGate = Depends(get_gate),
    orchestrator: DocumentOrchestrator = Depends(get_orchestrator),
    max_pages: int = Depends(get_max_pages),
) -> Response:
    """
    **Synchronous generation**: every section is generated before the
    response starts, so this can take minutes for a full plan.  Prefer
    ``POST /jobs`` from browsers.

    ``output`` selects the format: ``pdf`` (default), ``docx`` or ``json``
    (the normalized document model).
    """
    plan = get_plan(body.doc_type.value, lite=body.lite)
    async with gate.slot():
        document = await orchestrator.generate(
            plan,
            body.language.value,
            body.context.to_context(),
            use_sources=body.use_sources,
        )
    logger.info(
        "generate_document: ✓ %s (%d sections, %d degraded)",
        plan.doc_type, len(document.sections), len(document.degraded_keys),
    )
    return await _export(document, body.output, max_pages)


# ---------------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------------

@router.post(
    "/jobs",
    response_model=JobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a background generation job",
)
async def create_job(
    body: GenerateRequest,
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
    orchestrator: DocumentOrchestrator = Depends(get_orchestrator),
) -> JobCreatedResponse:
    """
    Accept a generation request and return immediately with a job id.

    Poll ``GET /jobs/{job_id}`` for progress; the job record expires
    ``JOB_TTL_SECONDS`` after its last update.
    """
    plan = get_plan(body.doc_type.value, lite=body.lite)
    job_id = uuid.uuid4().hex
    await store.put(
        job_id,
        {
            "job_id": job_id,
            "status": JobStatus.QUEUED.value,
            "doc_type": plan.doc_type,
            "language": body.language.value,
            "output": body.output.value,
            "sections_done": 0,
            "sections_total": len(plan.sections),
            "progress": 0.0,
            "created_at": utcnow_iso(),
        },
    )

    async def on_section(result: SectionResult, index: int, total: int) -> None:
        await store.patch(
            job_id,
            {
                "sections_done": index,
                "progress": round(index / total, 3) if total else 1.0,
                "current_section": result.key,
            },
        )

    async def build() -> Dict[str, Any]:
        document = await orchestrator.generate(
            plan,
            body.language.value,
            body.context.to_context(),
            on_section=on_section,
            use_sources=body.use_sources,
        )
        return {
            "document": document,
            "degraded_sections": document.degraded_keys,
            "progress": 1.0,
            "result_formats": [f.value for f in OutputFormat],
        }

    try:
        runner.start(job_id, build())
    except GenerationBusyError:
        await store.delete(job_id)
        raise

    return JobCreatedResponse(
        job_id=job_id,
        status=JobStatus.QUEUED.value,
        status_url=f"/api/documents/jobs/{job_id}",
    )


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)) -> JobStatusResponse:
    """Current status and progress of a background job."""
    record = await _load_job(store, job_id)
    return JobStatusResponse(**{k: v for k, v in record.items() if k != "document"})


@router.get("/jobs/{job_id}/result")
async def get_job_result(
    job_id: str,
    format: Optional[OutputFormat] = Query(None),
    store: JobStore = Depends(get_job_store),
    max_pages: int = Depends(get_max_pages),
) -> Response:
    """
    Download a finished job.  409 while it is still queued or running, or
    when it failed; the failure reason is in the detail.
    """
    record = await _load_job(store, job_id)
    job_status = record.get("status")
    if job_status != JobStatus.DONE.value:
        detail = f"Job {job_id} is {job_status}"
        if job_status == JobStatus.ERROR.value and record.get("error"):
            detail += f": {record['error']}"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    fmt = format or OutputFormat(record.get("output") or OutputFormat.PDF.value)
    return await _export(record["document"], fmt, max_pages)
