"""
Prompt templates for section generation.

All templates are module-level constants so they can be tuned without touching
controller logic.  Each template exists in French and English; ``lang`` is
always the normalized value (``"en"`` or ``"fr"``).
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from folio.models.document import TableKind

Message = Dict[str, str]


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = {
    "fr": (
        "Tu es un consultant senior qui rédige des documents professionnels "
        "({doc_label}). Tu écris en français, de façon structurée, concrète et "
        "chiffrée quand c'est pertinent. Pas de markdown décoratif."
    ),
    "en": (
        "You are a senior consultant writing professional documents "
        "({doc_label}). Write in English, structured, concrete and quantified "
        "where relevant. No decorative markdown."
    ),
}

_DOC_LABELS = {
    "business_plan": {"fr": "plan d'affaires", "en": "business plan"},
    "ngo_project": {"fr": "projet ONG / proposition de financement", "en": "NGO project proposal"},
    "scientific_article": {"fr": "article scientifique", "en": "scientific article"},
    "academic_thesis": {"fr": "mémoire universitaire", "en": "academic dissertation"},
}


# ---------------------------------------------------------------------------
# Text sections
# ---------------------------------------------------------------------------

_TEXT_PROMPT = {
    "fr": """\
Rédige la section « {title} » du document.

CONTEXTE DU PROJET:
{context}
{outline}{sources}
Consignes: 600 à 1200 mots, paragraphes clairs, sous-titres numérotés si utile.""",
    "en": """\
Write the "{title}" section of the document.

PROJECT CONTEXT:
{context}
{outline}{sources}
Guidelines: 600 to 1200 words, clear paragraphs, numbered sub-headings where useful.""",
}

_OUTLINE_BLOCK = {
    "fr": "\nSECTIONS DÉJÀ RÉDIGÉES (ne pas les répéter): {titles}\n",
    "en": "\nSECTIONS ALREADY WRITTEN (do not repeat them): {titles}\n",
}

_SOURCES_BLOCK = {
    "fr": "\nSOURCES À CITER SI PERTINENT:\n{passages}\n",
    "en": "\nSOURCES TO CITE WHERE RELEVANT:\n{passages}\n",
}

_SENTINEL_RULES = {
    "fr": """\
RÈGLES IMPORTANTES (OBLIGATOIRES):
- La section doit être COMPLÈTE (pas de phrase coupée, pas de liste inachevée).
- Termine cette section par le marqueur EXACT: {sentinel}
- N'écris absolument RIEN après le marqueur.
- Assure-toi que la section se termine par une ponctuation finale AVANT le marqueur.""",
    "en": """\
IMPORTANT RULES:
- The section must be COMPLETE (no cut sentences, no unfinished lists).
- End the section with the EXACT marker: {sentinel}
- Write NOTHING after the marker.
- Ensure it ends with final punctuation BEFORE the marker.""",
}

_CONTINUE_PROMPT = {
    "fr": '''\
Tu as commencé une section mais elle est incomplète.
CONTINUE exactement là où ça s'est arrêté. Ne répète pas.

Derniers mots:
"""{tail}"""

RÈGLES:
- Ne répète pas.
- Termine complètement la section.
- Termine par: {sentinel}
- N'écris rien après le marqueur.''',
    "en": '''\
You started a section but it is incomplete.
CONTINUE exactly from where it stopped. Do NOT repeat.

Last words:
"""{tail}"""

RULES:
- Do not repeat.
- Finish the section completely.
- End with: {sentinel}
- Write nothing after the marker.''',
}


# ---------------------------------------------------------------------------
# Structured sections
# ---------------------------------------------------------------------------

_STRUCTURED_PROMPT = {
    "fr": """\
Produis la section « {title} » sous forme d'objet JSON.

CONTEXTE DU PROJET:
{context}

Forme attendue (toutes les clés, valeurs réalistes pour ce projet):
{shape}

Réponds uniquement avec l'objet JSON.""",
    "en": """\
Produce the "{title}" section as a JSON object.

PROJECT CONTEXT:
{context}

Expected shape (every key, realistic values for this project):
{shape}

Reply with the JSON object only.""",
}

_STRICT_JSON_SUFFIX = {
    "fr": "Renvoie UNIQUEMENT du JSON STRICT. Pas de texte, pas de markdown, pas de ```, pas de commentaires. Commence par { et termine par }.",
    "en": "Return STRICT JSON ONLY. No prose, no markdown, no backticks, no comments. Must start with { and end with }.",
}

_SCHEMA_SHAPES: Dict[TableKind, str] = {
    TableKind.FINANCIAL_STATEMENT: """\
{"currency": "USD",
 "assumptions": [{"label": "...", "value": "..."}],
 "revenue_drivers": [{"label": "...", "Y1": 0, "Y2": 0, "Y3": 0, "Y4": 0, "Y5": 0}],
 "pnl": [{"label": "Revenue", "Y1": 0, "Y2": 0, "Y3": 0, "Y4": 0, "Y5": 0},
         {"label": "COGS", "Y1": 0, "...": 0}, {"label": "OPEX", "Y1": 0, "...": 0}],
 "cashflow": [{"label": "Operating cash flow", "Y1": 0, "...": 0}],
 "balance_sheet": [{"label": "Cash", "Y1": 0, "...": 0}],
 "break_even": {"metric": "...", "estimate": "...", "explanation": "..."},
 "use_of_funds": [{"label": "...", "amount": 0, "notes": "..."}],
 "scenarios": [{"name": "...", "note": "..."}]}""",
    TableKind.BUSINESS_CANVAS: """\
{"key_partners": ["..."], "key_activities": ["..."], "key_resources": ["..."],
 "value_propositions": ["..."], "customer_relationships": ["..."], "channels": ["..."],
 "customer_segments": ["..."], "cost_structure": ["..."], "revenue_streams": ["..."]}""",
    TableKind.SWOT_MATRIX: """\
{"strengths": ["..."], "weaknesses": ["..."], "opportunities": ["..."],
 "threats": ["..."], "interpretation": "..."}""",
    TableKind.KPI_CALENDAR: """\
{"calendar": [{"period": "M1-M3", "milestones": "...", "deliverables": "...", "owner": "..."}],
 "kpis": [{"kpi": "...", "definition": "...", "target_12m": "...", "frequency": "...", "owner": "..."}]}""",
    TableKind.STAKEHOLDER_MATRIX: """\
{"stakeholders": [{"name": "...", "type": "...", "interest": "low|medium|high",
   "influence": "low|medium|high", "role": "...", "engagement_strategy": "..."}]}""",
    TableKind.RISK_MATRIX: """\
{"risks": [{"risk": "...", "category": "...", "probability": "low|medium|high",
   "impact": "low|medium|high", "mitigation": "...", "owner": "..."}]}""",
    TableKind.LOGFRAME: """\
{"impact": {"statement": "...",
            "indicators": [{"name": "...", "baseline": "...", "target": "...", "means_of_verification": "..."}],
            "assumptions": ["..."]},
 "outcomes": [{"statement": "...", "indicators": [{"name": "...", "baseline": "...", "target": "...",
                                                   "means_of_verification": "..."}],
               "assumptions": ["..."],
               "outputs": [{"statement": "...", "indicators": [{"name": "...", "target": "..."}]}]}]}""",
    TableKind.ME_PLAN: """\
{"me_framework": [{"indicator": "...", "baseline": "...", "target": "...",
                   "frequency": "monthly|quarterly|semiannual|annual|endline", "data_source": "...",
                   "collection_method": "...", "responsible": "...", "disaggregation": "..."}],
 "evaluations": [{"type": "baseline|midterm|endline", "timing": "...", "purpose": "..."}],
 "reporting": [{"deliverable": "...", "frequency": "...", "audience": "..."}]}""",
    TableKind.SDG_ALIGNMENT: """\
{"sdgs": [{"sdg": "SDG 1|SDG 2|...|SDG 17",
           "targets": [{"target": "...", "contribution": "...", "project_indicators": ["..."]}]}]}""",
    TableKind.BUDGET: """\
{"currency": "USD",
 "by_category": [{"category": "Personnel|Travel|Equipment|Supplies|Services|Training|Grants|Other",
                  "items": [{"line_item": "...", "unit": "...", "qty": 0, "unit_cost": 0, "total_cost": 0,
                             "notes": "..."}]}],
 "by_activity": [{"activity": "...", "amount": 0}],
 "indirect_costs": {"rate": 7, "notes": "..."}}""",
    TableKind.WORKPLAN: """\
{"duration_months": 12,
 "activities": [{"activity": "...", "component": "...", "start_month": 1, "end_month": 3,
                 "milestones": ["..."], "deliverables": ["..."]}]}""",
}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _lang(lang: str) -> str:
    return "en" if lang == "en" else "fr"


def system_prompt(doc_type: str, lang: str) -> str:
    lang = _lang(lang)
    labels = _DOC_LABELS.get(doc_type, _DOC_LABELS["business_plan"])
    return _SYSTEM_PROMPT[lang].format(doc_label=labels[lang])


def format_context(context: Mapping[str, Any]) -> str:
    """Render the caller's context as "key: value" lines, skipping blanks."""
    lines: List[str] = []
    for key, value in context.items():
        if value is None or value == "" or isinstance(value, (dict, list)):
            continue
        lines.append(f"- {key}: {value}")
    return "\n".join(lines) or "-"


def text_section_messages(
    doc_type: str,
    lang: str,
    title: str,
    context: Mapping[str, Any],
    sentinel: str,
    outline: Sequence[str] = (),
    sources_block: str = "",
) -> List[Message]:
    lang = _lang(lang)
    outline_text = _OUTLINE_BLOCK[lang].format(titles="; ".join(outline)) if outline else ""
    sources_text = _SOURCES_BLOCK[lang].format(passages=sources_block) if sources_block else ""
    body = _TEXT_PROMPT[lang].format(
        title=title,
        context=format_context(context),
        outline=outline_text,
        sources=sources_text,
    )
    rules = _SENTINEL_RULES[lang].format(sentinel=sentinel)
    return [
        {"role": "system", "content": system_prompt(doc_type, lang)},
        {"role": "user", "content": f"{body}\n\n{rules}"},
    ]


def continuation_messages(doc_type: str, lang: str, tail: str, sentinel: str) -> List[Message]:
    lang = _lang(lang)
    return [
        {"role": "system", "content": system_prompt(doc_type, lang)},
        {"role": "user", "content": _CONTINUE_PROMPT[lang].format(tail=tail, sentinel=sentinel)},
    ]


def structured_section_messages(
    doc_type: str,
    lang: str,
    title: str,
    context: Mapping[str, Any],
    schema: TableKind,
) -> List[Message]:
    lang = _lang(lang)
    body = _STRUCTURED_PROMPT[lang].format(
        title=title,
        context=format_context(context),
        shape=_SCHEMA_SHAPES[schema],
    )
    return [
        {"role": "system", "content": system_prompt(doc_type, lang)},
        {"role": "user", "content": body},
    ]


def strict_json_suffix(lang: Optional[str]) -> str:
    return _STRICT_JSON_SUFFIX[_lang(lang or "fr")]
