"""
Drive a whole document: one pass over the plan, one dispatch per section.

For every section in plan order the orchestrator builds a
``GenerationRequest``, hands it to exactly one controller (continuation for
text, schema retry for structured sections), normalizes structured output
and appends the immutable ``SectionResult``.  Sections run sequentially
because later prompts carry the outline of the ones already written.

Public API
----------
DocumentOrchestrator.generate(plan, language, context, on_section, use_sources) -> DocumentModel
fallback_text_section(key, lang, context, title)                               -> str
"""
from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from folio.config import GenerationConfig
from folio.models.document import (
    DocumentModel,
    GenerationRequest,
    SectionKind,
    SectionResult,
)
from folio.services import prompts
from folio.services.continuation import ContinuationController, ContinuationState, sentinel_for
from folio.services.normalizer import normalize_table
from folio.services.retrieval import (
    RetrievalClient,
    dedupe_passages,
    format_passages_for_prompt,
)
from folio.services.schema_retry import SchemaRetryController
from folio.services.sections import DocumentPlan, SectionSpec
from folio.utils.helpers import first_non_empty, normalize_lang, normalize_text

logger = logging.getLogger(__name__)

SectionCallback = Callable[[SectionResult, int, int], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Deterministic text fallback
# ---------------------------------------------------------------------------

_CONTEXT_LABELS = (
    ("product", "Produit/Service", "Product/Service"),
    ("customers", "Clients", "Customers"),
    ("business_model", "Modèle économique", "Business model"),
    ("traction", "Traction", "Traction"),
    ("competition", "Concurrence", "Competition"),
    ("problem", "Problème", "Problem"),
    ("target_groups", "Groupes cibles", "Target groups"),
    ("overall_goal", "Objectif global", "Overall goal"),
    ("risks", "Risques", "Risks"),
    ("funding_ask", "Besoin de financement", "Funding ask"),
    ("topic", "Sujet", "Topic"),
    ("research_question", "Question de recherche", "Research question"),
)


def fallback_text_section(key: str, lang: str, context: Mapping[str, Any], title: str = "") -> str:
    """
    Plain content assembled from the caller's own inputs, used when generation
    came back empty or too short.  Never returns an empty string: with no
    usable input a generic paragraph naming the section is produced.
    """
    en = lang == "en"

    if key == "competition_analysis":
        lines = [
            "Competitive landscape" if en else "Paysage concurrentiel",
            ("- Direct competitors: " if en else "- Concurrents directs : ") + (str(context.get("competition") or "") or "—"),
            "- Differentiation: quality, compliance, distribution network and service reliability." if en
            else "- Différenciation : qualité, conformité, réseau de distribution et fiabilité d'exécution.",
            "- Competitive risks: price pressure, informal players and supply constraints." if en
            else "- Risques concurrentiels : pression sur les prix, secteur informel, contraintes d'approvisionnement.",
            "- Response: brand, partnerships, quality controls and execution discipline." if en
            else "- Réponse : marque, partenariats, contrôle qualité, discipline d'exécution.",
        ]
        return "\n".join(lines)

    if key == "strategic_partnerships":
        lines = [
            "Strategic partnerships" if en else "Partenariats stratégiques",
            "- Suppliers: secure input contracts to reduce volatility." if en
            else "- Fournisseurs : contrats d'intrants sécurisés pour limiter la volatilité.",
            "- Distribution: retail, B2B accounts, digital channels and institutional buyers." if en
            else "- Distribution : supermarchés, comptes B2B, canaux digitaux, acheteurs institutionnels.",
            "- Finance: banking partners for equipment and working capital." if en
            else "- Finance : banque ou IMF pour équipements et fonds de roulement.",
        ]
        return "\n".join(lines)

    blocks = []
    for field, label_fr, label_en in _CONTEXT_LABELS:
        value = str(context.get(field) or "").strip()
        if value:
            blocks.append(f"{label_en if en else label_fr}: {value}")
    if blocks:
        return "\n\n".join(blocks)

    name = title or key.replace("_", " ")
    if en:
        return (
            f"{name}\n\nThis section could not be drafted automatically. It should set out the "
            "objectives, the approach, the resources involved and the expected results, and be "
            "completed with the organisation's own figures before the document is shared."
        )
    return (
        f"{name}\n\nCette section n'a pas pu être rédigée automatiquement. Elle doit présenter "
        "les objectifs, l'approche, les ressources mobilisées et les résultats attendus, puis être "
        "complétée avec les données propres à l'organisation avant toute diffusion."
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class DocumentOrchestrator:
    """Generate every section of a plan and assemble the ``DocumentModel``."""

    SOURCE_LIMIT: int = 6
    STRICT_SCORE_THRESHOLD: float = 0.35
    MIN_STRICT_PASSAGES: int = 3

    def __init__(
        self,
        client,
        config: Optional[GenerationConfig] = None,
        retrieval: Optional[RetrievalClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or GenerationConfig.from_settings()
        self.continuation = ContinuationController(client, self.config, sleep=sleep)
        self.schema_retry = SchemaRetryController(client, self.config, sleep=sleep)
        self.retrieval = retrieval

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def generate(
        self,
        plan: DocumentPlan,
        language: str,
        context: Mapping[str, Any],
        on_section: Optional[SectionCallback] = None,
        use_sources: bool = False,
    ) -> DocumentModel:
        """
        Run *plan* top to bottom and return the finished document.

        *on_section(result, index, total)* is the only way intermediate
        results leave this method; it may be a coroutine function.
        ``CompletionError`` from a section whose every call failed at
        transport level propagates and aborts the run.
        """
        lang = normalize_lang(language)
        t0 = time.monotonic()
        results: List[SectionResult] = []
        sources_used: List[Dict[str, Any]] = []
        total = len(plan.sections)

        logger.info("generate: %s (%s), %d section(s)", plan.doc_type, lang, total)

        for index, spec in enumerate(plan.sections):
            request = GenerationRequest(
                section_key=spec.key,
                kind=spec.kind,
                language=lang,
                title=spec.title(lang),
                context=context,
                schema=spec.schema,
                outline=tuple(r.title for r in results),
            )
            if request.kind == SectionKind.TEXT and use_sources and spec.use_sources:
                block, sources = await self._sources_for(request)
                if block:
                    request = dataclasses.replace(request, sources_block=block)
                    sources_used.extend(sources)

            result = await self._generate_section(plan.doc_type, spec, request)
            results.append(result)
            logger.info(
                "generate: ✓ %d/%d %s%s",
                index + 1, total, spec.key, " (degraded)" if result.degraded else "",
            )

            if on_section is not None:
                maybe = on_section(result, index + 1, total)
                if inspect.isawaitable(maybe):
                    await maybe

        metadata = {
            "doc_type": plan.doc_type,
            "language": lang,
            "organization": first_non_empty(
                context.get("company_name"), context.get("organization"), context.get("project_title"),
                context.get("institution"),
            ),
            "country": str(context.get("country") or ""),
            "sector": str(context.get("sector") or ""),
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "degraded_sections": [r.key for r in results if r.degraded],
            "sources": _unique_sources(sources_used),
            "elapsed_seconds": round(time.monotonic() - t0, 2),
        }
        return DocumentModel(title=plan.title(lang), metadata=metadata, sections=tuple(results))

    # ------------------------------------------------------------------
    # Per-section dispatch
    # ------------------------------------------------------------------

    async def _generate_section(
        self,
        doc_type: str,
        spec: SectionSpec,
        request: GenerationRequest,
    ) -> SectionResult:
        if request.kind == SectionKind.STRUCTURED:
            messages = prompts.structured_section_messages(
                doc_type, request.language, request.title, request.context, request.schema
            )
            raw = await self.schema_retry.run(request.section_key, messages, request.language)
            table, degraded = normalize_table(request.schema, raw, request.language, request.context)
            return SectionResult(spec.key, request.title, request.kind, table, degraded)

        def continuation_builder(tail: str, sentinel: str):
            return prompts.continuation_messages(doc_type, request.language, tail, sentinel)

        messages = prompts.text_section_messages(
            doc_type,
            request.language,
            request.title,
            request.context,
            sentinel=sentinel_for(request.section_key),
            outline=request.outline,
            sources_block=request.sources_block,
        )
        outcome = await self.continuation.run(request.section_key, messages, continuation_builder)

        text = outcome.text
        degraded = outcome.state == ContinuationState.EXHAUSTED
        if len(normalize_text(text)) < self.config.fallback_min_chars:
            fallback = fallback_text_section(spec.key, request.language, request.context, request.title)
            logger.warning(
                "generate: %s too short (%d chars), using fallback text",
                spec.key, len(normalize_text(text)),
            )
            text = fallback
            degraded = True
        return SectionResult(spec.key, request.title, request.kind, text, degraded)

    async def _sources_for(self, request: GenerationRequest):
        """Strict (filtered, thresholded) pass first, widened when it finds too little."""
        if self.retrieval is None or not self.retrieval.is_configured:
            return "", []
        ctx = request.context
        query = " ".join(
            str(v) for v in (request.title, ctx.get("sector"), ctx.get("country"), ctx.get("product"), ctx.get("problem"))
            if v
        )
        country = str(ctx.get("country") or "").strip()
        strict = await self.retrieval.search(
            query,
            limit=self.SOURCE_LIMIT,
            filter={"country": country} if country else None,
            score_threshold=self.STRICT_SCORE_THRESHOLD,
        )
        passages = list(strict.passages)
        sources = list(strict.sources)
        if len(passages) < self.MIN_STRICT_PASSAGES:
            wide = await self.retrieval.search(query, limit=self.SOURCE_LIMIT)
            passages.extend(wide.passages)
            sources.extend(wide.sources)
        passages = dedupe_passages(passages)
        return format_passages_for_prompt(passages), sources


def _unique_sources(sources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out = []
    for source in sources:
        key = str(source.get("id") or source.get("ref") or source.get("title") or source)
        if key in seen:
            continue
        seen.add(key)
        out.append(source)
    return out
