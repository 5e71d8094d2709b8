"""
Service dependencies for FastAPI routes.

Everything a request needs lives on ``app.state`` (set up by
``create_app``), so tests can build an app around fakes without touching
module globals.
"""
from __future__ import annotations

from fastapi import Request

from folio.config import GenerationConfig
from folio.services.job_runner import GenerationGate, JobRunner
from folio.services.job_store import JobStore
from folio.services.orchestrator import DocumentOrchestrator


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_gate(request: Request) -> GenerationGate:
    return request.app.state.gate


def get_job_runner(request: Request) -> JobRunner:
    return request.app.state.job_runner


def get_max_pages(request: Request) -> int:
    return request.app.state.max_pages


def get_orchestrator(request: Request) -> DocumentOrchestrator:
    """A fresh orchestrator per request around the shared clients."""
    state = request.app.state
    config: GenerationConfig = state.generation_config
    return DocumentOrchestrator(
        state.completion_client,
        config,
        retrieval=state.retrieval_client,
        sleep=state.sleep,
    )

