"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class DocTypeSchema(str, Enum):
    """Document families that have a section plan."""

    BUSINESS_PLAN = "business_plan"
    NGO_PROJECT = "ngo_project"
    SCIENTIFIC_ARTICLE = "scientific_article"
    ACADEMIC_THESIS = "academic_thesis"


class LanguageSchema(str, Enum):
    FR = "fr"
    EN = "en"


class OutputFormat(str, Enum):
    """What the synchronous endpoint streams back."""

    PDF = "pdf"
    DOCX = "docx"
    JSON = "json"


# Generation context
class GenerationContext(BaseModel):
    """
    Free-form business/project inputs threaded into every section prompt.

    Unknown keys are kept so callers can add details without a schema change.
    """

    company_name: Optional[str] = Field(None, max_length=200)
    project_title: Optional[str] = Field(None, max_length=200)
    organization: Optional[str] = Field(None, max_length=200)
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    sector: Optional[str] = Field(None, max_length=200)
    currency: Optional[str] = Field(None, max_length=10)
    product: Optional[str] = None
    customers: Optional[str] = None
    business_model: Optional[str] = None
    traction: Optional[str] = None
    competition: Optional[str] = None
    risks: Optional[str] = None
    funding_ask: Optional[str] = None
    problem: Optional[str] = None
    target_groups: Optional[str] = None
    overall_goal: Optional[str] = None
    duration_months: Optional[int] = Field(None, ge=1, le=120)
    budget_total: Optional[float] = Field(None, ge=0)
    partners: Optional[str] = None
    topic: Optional[str] = None
    research_question: Optional[str] = None
    institution: Optional[str] = Field(None, max_length=200)

    model_config = ConfigDict(extra="allow")

    def to_context(self) -> Dict[str, Any]:
        """Drop empty fields; the orchestrator only needs what was given."""
        return {k: v for k, v in self.model_dump().items() if v not in (None, "")}


# Generation requests
class GenerateRequest(BaseModel):
    """Schema for synchronous and background generation requests."""

    doc_type: DocTypeSchema = DocTypeSchema.BUSINESS_PLAN
    language: LanguageSchema = LanguageSchema.FR
    lite: bool = False
    use_sources: bool = False
    output: OutputFormat = OutputFormat.PDF
    context: GenerationContext = Field(default_factory=GenerationContext)


class JobCreatedResponse(BaseModel):
    """Returned with 202 when a background job is accepted."""

    job_id: str
    status: str
    status_url: str


class JobStatusResponse(BaseModel):
    """Schema for polling a background job."""

    job_id: str
    status: str
    doc_type: Optional[str] = None
    language: Optional[str] = None
    progress: float = 0.0
    sections_done: int = 0
    sections_total: int = 0
    current_section: Optional[str] = None
    degraded_sections: List[str] = []
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    result_formats: List[str] = []

    model_config = ConfigDict(extra="ignore")


# Catalogue
class PlanSectionResponse(BaseModel):
    key: str
    title: str
    kind: str


class PlanResponse(BaseModel):
    doc_type: str
    title: str
    lite: bool
    sections: List[PlanSectionResponse]


class PlansResponse(BaseModel):
    plans: List[PlanResponse]


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    completion_service: str
    retrieval: str
    active_jobs: int
    generation_slots_free: int
    timestamp: datetime
