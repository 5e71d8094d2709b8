"""
HTTP tests for the document endpoints.

Every test runs against its own app (see conftest) with a scripted
completion client, so generation is instant and deterministic.
"""
import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from folio.main import create_app
from folio.services.errors import CompletionError, RenderError
from folio.services.retrieval import RetrievalClient
from tests.conftest import ScriptedClient, no_sleep

CONTEXT = {
    "company_name": "Laiterie du Fleuve",
    "country": "Senegal",
    "sector": "Dairy",
    "product": "Pasteurised milk",
    "customers": "",
}

NGO_LITE_KEYS = [
    "executive_summary", "stakeholder_analysis_json", "logframe_json", "risk_matrix_json", "budget_json",
    "workplan_json",
]


def _body(**overrides):
    body = {"doc_type": "ngo_project", "language": "en", "lite": True, "output": "json", "context": CONTEXT}
    body.update(overrides)
    return body


async def _wait_for_job(client: AsyncClient, job_id: str, attempts: int = 200) -> dict:
    for _ in range(attempts):
        resp = await client.get(f"/api/documents/jobs/{job_id}")
        assert resp.status_code == 200
        data = resp.json()
        if data["status"] in ("done", "error"):
            return data
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_plans(client):
    resp = await client.get("/api/documents/plans", params={"language": "en"})
    assert resp.status_code == 200

    plans = resp.json()["plans"]
    assert {(p["doc_type"], p["lite"]) for p in plans} == {
        (doc_type, lite)
        for doc_type in ("business_plan", "ngo_project", "scientific_article", "academic_thesis")
        for lite in (False, True)
    }
    ngo_lite = next(p for p in plans if p["doc_type"] == "ngo_project" and p["lite"])
    assert [s["key"] for s in ngo_lite["sections"]] == NGO_LITE_KEYS
    assert ngo_lite["sections"][1]["kind"] == "structured"


@pytest.mark.asyncio
async def test_list_plans_rejects_unknown_language(client):
    resp = await client.get("/api/documents/plans", params={"language": "de"})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Synchronous generation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_json(client):
    resp = await client.post("/api/documents/generate", json=_body())
    assert resp.status_code == 200

    data = resp.json()
    assert [s["key"] for s in data["sections"]] == NGO_LITE_KEYS
    assert data["metadata"]["organization"] == "Laiterie du Fleuve"
    assert data["sections"][0]["kind"] == "text"
    assert data["sections"][1]["table"] == "stakeholder_matrix"
    assert data["sections"][2]["table"] == "logframe"
    assert data["sections"][4]["content"]["totals"]["grand_total"] > 0
    assert all(s["degraded"] for s in data["sections"][1:])


@pytest.mark.asyncio
async def test_generate_pdf(client):
    resp = await client.post("/api/documents/generate", json=_body(output="pdf", doc_type="business_plan"))
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")
    assert 'filename="Laiterie_du_Fleuve.pdf"' in resp.headers["content-disposition"]
    assert "financials_json" in resp.headers["x-degraded-sections"].split(",")


@pytest.mark.asyncio
async def test_generate_docx(client):
    resp = await client.post("/api/documents/generate", json=_body(output="docx", language="fr"))
    assert resp.status_code == 200
    assert resp.content.startswith(b"PK")
    assert resp.headers["content-disposition"].endswith('.docx"')


@pytest.mark.asyncio
async def test_generate_scientific_article(client):
    body = _body(doc_type="scientific_article", lite=False, context={"topic": "Soil salinity", "institution": "UCAD"})
    resp = await client.post("/api/documents/generate", json=body)
    assert resp.status_code == 200

    data = resp.json()
    assert data["title"] == "Scientific Article"
    assert data["sections"][0]["key"] == "abstract"
    assert data["sections"][-1]["key"] == "references"
    assert all(s["kind"] == "text" and not s["degraded"] for s in data["sections"])


@pytest.mark.asyncio
async def test_pdf_render_failure_is_500(client, monkeypatch):
    def broken(document, max_pages):
        raise RenderError("PDF rendering failed: font missing")

    monkeypatch.setattr("folio.routers.documents.render_pdf_bytes", broken)
    resp = await client.post("/api/documents/generate", json=_body(output="pdf"))

    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["error"] == "RenderError"
    assert "font missing" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_generate_validates_doc_type(client):
    resp = await client.post("/api/documents/generate", json=_body(doc_type="novel"))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_generate_refused_when_all_slots_busy(app, client):
    app.state.gate.acquire()
    try:
        resp = await client.post("/api/documents/generate", json=_body())
    finally:
        app.state.gate.release()

    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "30"
    assert resp.json()["error"] == "GenerationBusyError"


@pytest.mark.asyncio
async def test_unreachable_completion_service_is_502(test_settings, gen_config):
    app = create_app(
        test_settings,
        completion_client=ScriptedClient(default=CompletionError("connection refused")),
        retrieval_client=RetrievalClient(proxy_url=""),
        generation_config=gen_config,
        sleep=no_sleep,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post("/api/documents/generate", json=_body())

    assert resp.status_code == 502
    body = resp.json()
    assert body["error"] == "CompletionError"
    assert body["path"] == "/api/documents/generate"
    assert app.state.gate.in_use == 0


# ---------------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_job_lifecycle(client):
    resp = await client.post("/api/documents/jobs", json=_body(output="pdf"))
    assert resp.status_code == 202
    created = resp.json()
    assert created["status"] == "queued"
    assert created["status_url"] == f"/api/documents/jobs/{created['job_id']}"

    job = await _wait_for_job(client, created["job_id"])
    assert job["status"] == "done"
    assert job["progress"] == 1.0
    assert job["sections_done"] == job["sections_total"] == 6
    assert set(job["degraded_sections"]) == set(NGO_LITE_KEYS[1:])
    assert "document" not in job

    pdf = await client.get(f"/api/documents/jobs/{created['job_id']}/result")
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")

    as_json = await client.get(f"/api/documents/jobs/{created['job_id']}/result", params={"format": "json"})
    assert as_json.status_code == 200
    assert len(as_json.json()["sections"]) == 6


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    resp = await client.get("/api/documents/jobs/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"] == "JobNotFoundError"

    resp = await client.get("/api/documents/jobs/does-not-exist/result")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_result_before_completion_is_409(app, client):
    await app.state.job_store.put("pending", {"job_id": "pending", "status": "running"})
    resp = await client.get("/api/documents/jobs/pending/result")
    assert resp.status_code == 409
    assert "running" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_failed_job_reports_error(test_settings, gen_config):
    app = create_app(
        test_settings,
        completion_client=ScriptedClient(default=CompletionError("upstream down", 503)),
        retrieval_client=RetrievalClient(proxy_url=""),
        generation_config=gen_config,
        sleep=no_sleep,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        created = (await ac.post("/api/documents/jobs", json=_body())).json()
        job = await _wait_for_job(ac, created["job_id"])
        result = await ac.get(f"/api/documents/jobs/{created['job_id']}/result")

    assert job["status"] == "error"
    assert job["error_type"] == "CompletionError"
    assert result.status_code == 409
    assert "upstream down" in result.json()["detail"]
    assert app.state.gate.in_use == 0


@pytest.mark.asyncio
async def test_second_job_refused_while_first_runs(app, client):
    app.state.gate.acquire()
    try:
        resp = await client.post("/api/documents/jobs", json=_body())
    finally:
        app.state.gate.release()

    assert resp.status_code == 429
    assert len(app.state.job_store) == 0
