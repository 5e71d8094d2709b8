"""
Section plans for each supported document type.

A plan is the ordered list of sections a run generates.  Each section is
either free text (generated with the continuation controller) or bound to a
table schema (generated with the schema retry controller and normalized).
"""
from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional, Tuple

from folio.models.document import SectionKind, TableKind


@dataclasses.dataclass(frozen=True)
class SectionSpec:
    key: str
    title_fr: str
    title_en: str
    schema: Optional[TableKind] = None
    use_sources: bool = True

    @property
    def kind(self) -> SectionKind:
        return SectionKind.STRUCTURED if self.schema is not None else SectionKind.TEXT

    def title(self, lang: str) -> str:
        return self.title_en if lang == "en" else self.title_fr


@dataclasses.dataclass(frozen=True)
class DocumentPlan:
    doc_type: str
    title_fr: str
    title_en: str
    sections: Tuple[SectionSpec, ...]

    def title(self, lang: str) -> str:
        return self.title_en if lang == "en" else self.title_fr

    @property
    def keys(self) -> List[str]:
        return [s.key for s in self.sections]


# ---------------------------------------------------------------------------
# Business plan
# ---------------------------------------------------------------------------

_BUSINESS_PLAN_SECTIONS: Dict[str, SectionSpec] = {s.key: s for s in (
    SectionSpec("executive_summary", "Résumé exécutif", "Executive Summary"),
    SectionSpec("market_analysis", "Analyse du marché", "Market Analysis"),
    SectionSpec("competition_analysis", "Analyse concurrentielle", "Competitive Analysis"),
    SectionSpec("business_model", "Modèle économique", "Business Model"),
    SectionSpec("canvas_json", "Business Model Canvas", "Business Model Canvas", TableKind.BUSINESS_CANVAS),
    SectionSpec("swot_json", "Analyse SWOT", "SWOT Analysis", TableKind.SWOT_MATRIX),
    SectionSpec("go_to_market", "Stratégie Go-To-Market", "Go-To-Market Strategy"),
    SectionSpec("strategic_partnerships", "Partenariats stratégiques", "Strategic Partnerships"),
    SectionSpec(
        "kpi_calendar_json",
        "Calendrier et indicateurs clés de performance (KPIs)",
        "Execution Calendar & Key Performance Indicators (KPIs)",
        TableKind.KPI_CALENDAR,
    ),
    SectionSpec("operations", "Plan d'opérations", "Operations Plan"),
    SectionSpec("risks", "Risques & mitigations", "Risks & Mitigation"),
    SectionSpec("financials_json", "Plan financier (tableaux)", "Financial Plan (Tables)", TableKind.FINANCIAL_STATEMENT),
    SectionSpec("funding_ask", "Besoin de financement & utilisation des fonds", "Funding Ask & Use of Funds"),
)}

BUSINESS_PLAN_ORDER: Tuple[str, ...] = (
    "executive_summary",
    "market_analysis",
    "competition_analysis",
    "business_model",
    "canvas_json",
    "swot_json",
    "go_to_market",
    "strategic_partnerships",
    "kpi_calendar_json",
    "operations",
    "risks",
    "financials_json",
    "funding_ask",
)

BUSINESS_PLAN_LITE_ORDER: Tuple[str, ...] = (
    "canvas_json",
    "swot_json",
    "kpi_calendar_json",
    "financials_json",
    "funding_ask",
)


# ---------------------------------------------------------------------------
# NGO project proposal
# ---------------------------------------------------------------------------

_NGO_SECTIONS: Dict[str, SectionSpec] = {s.key: s for s in (
    SectionSpec("executive_summary", "Résumé exécutif", "Executive Summary"),
    SectionSpec("context_justification", "Contexte et justification", "Context & Rationale"),
    SectionSpec("problem_analysis", "Analyse du problème", "Problem Analysis"),
    SectionSpec(
        "stakeholder_analysis_json",
        "Analyse des parties prenantes",
        "Stakeholder Analysis",
        TableKind.STAKEHOLDER_MATRIX,
    ),
    SectionSpec("theory_of_change", "Théorie du changement", "Theory of Change"),
    SectionSpec("objectives_results", "Objectifs et résultats attendus", "Objectives & Expected Results"),
    SectionSpec("logframe_json", "Cadre logique (LogFrame)", "Logical Framework (LogFrame)", TableKind.LOGFRAME),
    SectionSpec("implementation_plan", "Plan de mise en œuvre", "Implementation Plan"),
    SectionSpec("me_plan_json", "Plan de suivi-évaluation (S&E)", "Monitoring & Evaluation (M&E) Plan", TableKind.ME_PLAN),
    SectionSpec("sdg_alignment_json", "Alignement ODD", "SDG Alignment", TableKind.SDG_ALIGNMENT),
    SectionSpec("risk_matrix_json", "Matrice des risques", "Risk Matrix", TableKind.RISK_MATRIX),
    SectionSpec("budget_json", "Budget détaillé", "Detailed Budget", TableKind.BUDGET),
    SectionSpec("workplan_json", "Chronogramme (plan de travail)", "Workplan", TableKind.WORKPLAN),
    SectionSpec("sustainability_exit", "Durabilité et stratégie de sortie", "Sustainability & Exit Strategy"),
    SectionSpec("governance_capacity", "Gouvernance et capacités", "Governance & Capacity", use_sources=False),
)}

NGO_ORDER: Tuple[str, ...] = (
    "executive_summary",
    "context_justification",
    "problem_analysis",
    "stakeholder_analysis_json",
    "theory_of_change",
    "objectives_results",
    "logframe_json",
    "implementation_plan",
    "me_plan_json",
    "sdg_alignment_json",
    "risk_matrix_json",
    "budget_json",
    "workplan_json",
    "sustainability_exit",
    "governance_capacity",
)

# Donor deliverables only
NGO_LITE_ORDER: Tuple[str, ...] = (
    "executive_summary",
    "stakeholder_analysis_json",
    "logframe_json",
    "risk_matrix_json",
    "budget_json",
    "workplan_json",
)


# ---------------------------------------------------------------------------
# Scientific article
# ---------------------------------------------------------------------------

_ARTICLE_SECTIONS: Dict[str, SectionSpec] = {s.key: s for s in (
    SectionSpec("abstract", "Résumé", "Abstract"),
    SectionSpec("introduction", "Introduction", "Introduction"),
    SectionSpec("literature_review", "Revue de la littérature", "Literature Review"),
    SectionSpec("methodology", "Méthodologie", "Methodology"),
    SectionSpec("results", "Résultats", "Results"),
    SectionSpec("discussion", "Discussion", "Discussion"),
    SectionSpec("conclusion", "Conclusion", "Conclusion", use_sources=False),
    SectionSpec("references", "Références bibliographiques", "References"),
)}

ARTICLE_ORDER: Tuple[str, ...] = tuple(_ARTICLE_SECTIONS)

ARTICLE_LITE_ORDER: Tuple[str, ...] = ("abstract", "introduction", "discussion", "conclusion")


# ---------------------------------------------------------------------------
# Academic dissertation
# ---------------------------------------------------------------------------

_THESIS_SECTIONS: Dict[str, SectionSpec] = {s.key: s for s in (
    SectionSpec("general_introduction", "Introduction générale", "General Introduction"),
    SectionSpec("theoretical_framework", "Cadre théorique et conceptuel", "Theoretical and Conceptual Framework"),
    SectionSpec("methodology", "Méthodologie de la recherche", "Research Methodology"),
    SectionSpec("part_one", "Première partie : état des lieux", "Part One: Current Situation"),
    SectionSpec("part_two", "Deuxième partie : analyse et propositions", "Part Two: Analysis and Proposals"),
    SectionSpec("general_conclusion", "Conclusion générale", "General Conclusion", use_sources=False),
    SectionSpec("bibliography", "Bibliographie", "Bibliography"),
)}

THESIS_ORDER: Tuple[str, ...] = tuple(_THESIS_SECTIONS)

THESIS_LITE_ORDER: Tuple[str, ...] = ("general_introduction", "part_one", "general_conclusion")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DOC_TYPES: Tuple[str, ...] = ("business_plan", "ngo_project", "scientific_article", "academic_thesis")

_REGISTRY = {
    "business_plan": (
        "Plan d'affaires",
        "Business Plan",
        _BUSINESS_PLAN_SECTIONS,
        BUSINESS_PLAN_ORDER,
        BUSINESS_PLAN_LITE_ORDER,
    ),
    "ngo_project": (
        "Proposition de projet",
        "Project Proposal",
        _NGO_SECTIONS,
        NGO_ORDER,
        NGO_LITE_ORDER,
    ),
    "scientific_article": (
        "Article scientifique",
        "Scientific Article",
        _ARTICLE_SECTIONS,
        ARTICLE_ORDER,
        ARTICLE_LITE_ORDER,
    ),
    "academic_thesis": (
        "Mémoire de fin d'études",
        "Academic Dissertation",
        _THESIS_SECTIONS,
        THESIS_ORDER,
        THESIS_LITE_ORDER,
    ),
}


def get_plan(doc_type: str, lite: bool = False) -> DocumentPlan:
    """Return the plan for *doc_type*; raises ``KeyError`` for unknown types."""
    title_fr, title_en, specs, order, lite_order = _REGISTRY[doc_type]
    keys = lite_order if lite else order
    return DocumentPlan(doc_type, title_fr, title_en, tuple(specs[k] for k in keys))


def list_plans() -> Dict[str, Dict[str, List[str]]]:
    return {
        doc_type: {
            "full": list(_REGISTRY[doc_type][3]),
            "lite": list(_REGISTRY[doc_type][4]),
        }
        for doc_type in DOC_TYPES
    }
