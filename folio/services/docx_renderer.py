"""
Word (.docx) export of a ``DocumentModel``.

Same content as the PDF, without the fixed pagination: Word repaginates on
open, so there is no table-of-contents backfill or page cap here.
"""
from __future__ import annotations

import io
import logging
from typing import List, Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

from folio.models.document import (
    CANVAS_FIELDS,
    Budget,
    BusinessCanvas,
    DocumentModel,
    FinancialRow,
    FinancialStatement,
    KpiCalendar,
    LogFrame,
    MePlan,
    RiskMatrix,
    SdgAlignment,
    SectionResult,
    StakeholderMatrix,
    SwotMatrix,
    Workplan,
)
from folio.services.errors import RenderError
from folio.services.normalizer import QUADRANTS
from folio.services.pdf_renderer import format_value
from folio.utils.helpers import clean_markdown, is_heading_line

logger = logging.getLogger(__name__)

_MUTED = RGBColor(0x6B, 0x72, 0x80)


def _t(lang: str, fr: str, en: str) -> str:
    return en if lang == "en" else fr


def _add_bullet(doc, text: str, bold_prefix: str = "") -> None:
    p = doc.add_paragraph(style="List Bullet")
    if bold_prefix:
        run = p.add_run(bold_prefix)
        run.bold = True
        p.add_run(f" {text}")
    else:
        p.add_run(text)


def _add_table(doc, headers: Sequence[str], rows: Sequence[Sequence[str]], bold_last: bool = False) -> None:
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = "Table Grid"
    for cell, header in zip(table.rows[0].cells, headers):
        cell.text = ""
        run = cell.paragraphs[0].add_run(str(header))
        run.bold = True
        run.font.size = Pt(9)
    for index, row in enumerate(rows):
        cells = table.add_row().cells
        for cell, value in zip(cells, row):
            cell.text = ""
            run = cell.paragraphs[0].add_run(str(value))
            run.font.size = Pt(9)
            if bold_last and index == len(rows) - 1:
                run.bold = True
    doc.add_paragraph()


def _add_rich_text(doc, text: str) -> None:
    for line in clean_markdown(text).split("\n"):
        line = line.strip()
        if not line:
            continue
        if is_heading_line(line):
            doc.add_heading(line.rstrip(":"), level=2)
        elif line.startswith("- "):
            _add_bullet(doc, line[2:])
        else:
            doc.add_paragraph(line)


def _year_rows(rows: Sequence[FinancialRow], periods: Sequence[str], lang: str) -> List[List[str]]:
    return [[r.label] + [format_value(r.value(i), r.fmt, lang) for i in range(len(periods))] for r in rows]


# ---------------------------------------------------------------------------
# Typed sections
# ---------------------------------------------------------------------------

def _add_financials(doc, fin: FinancialStatement, lang: str) -> None:
    p = doc.add_paragraph(f"{_t(lang, 'Devise', 'Currency')}: {fin.currency}")
    p.runs[0].font.color.rgb = _MUTED

    if fin.assumptions:
        doc.add_heading(_t(lang, "Hypothèses clés", "Key assumptions"), level=2)
        _add_table(doc, [_t(lang, "Hypothèse", "Assumption"), _t(lang, "Valeur", "Value")],
                   [[a.label, a.value] for a in fin.assumptions])

    for title, rows in (
        (_t(lang, "Moteurs de revenus", "Revenue drivers"), fin.revenue_drivers),
        (_t(lang, "Compte de résultat", "Profit & loss"), fin.pnl),
        (_t(lang, "Flux de trésorerie", "Cash flow"), fin.cashflow),
        (_t(lang, "Bilan simplifié", "Balance sheet"), fin.balance_sheet),
    ):
        if rows:
            doc.add_heading(title, level=2)
            _add_table(doc, [_t(lang, "Poste", "Line item")] + list(fin.periods), _year_rows(rows, fin.periods, lang))

    be = fin.break_even
    if be.estimate or be.explanation:
        doc.add_heading(_t(lang, "Point mort", "Break-even"), level=2)
        _add_bullet(doc, be.explanation, bold_prefix=f"{be.estimate} {be.metric}".strip())

    if fin.use_of_funds:
        doc.add_heading(_t(lang, "Utilisation des fonds", "Use of funds"), level=2)
        rows = [[u.label, format_value(u.amount, "money", lang), u.notes] for u in fin.use_of_funds]
        rows.append(["Total", format_value(fin.total_use_of_funds, "money", lang), ""])
        _add_table(doc, [_t(lang, "Poste", "Item"), f"{_t(lang, 'Montant', 'Amount')} ({fin.currency})", "Notes"],
                   rows, bold_last=True)

    if fin.scenarios:
        doc.add_heading(_t(lang, "Scénarios", "Scenarios"), level=2)
        for s in fin.scenarios:
            _add_bullet(doc, s.note, bold_prefix=f"{s.name}:" if s.note else s.name)


def _add_lists(doc, items: Sequence[tuple]) -> None:
    for title, values in items:
        doc.add_heading(title, level=3)
        if not values:
            doc.add_paragraph("—")
        for value in values:
            _add_bullet(doc, value)


def _indicator_lines(indicators) -> str:
    return "\n".join(
        f"{i.name}: {i.baseline or '?'} → {i.target or '?'}"
        + (f" ({i.means_of_verification})" if i.means_of_verification else "")
        for i in indicators
    )


def _add_logframe(doc, frame: LogFrame, lang: str) -> None:
    rows = [["Impact", frame.impact, _indicator_lines(frame.impact_indicators), "\n".join(frame.impact_assumptions)]]
    for i, outcome in enumerate(frame.outcomes, start=1):
        rows.append([f"{_t(lang, 'Effet', 'Outcome')} {i}", outcome.statement,
                     _indicator_lines(outcome.indicators), "\n".join(outcome.assumptions)])
        for j, output in enumerate(outcome.outputs, start=1):
            rows.append([f"{_t(lang, 'Produit', 'Output')} {i}.{j}", output.statement,
                         _indicator_lines(output.indicators), ""])
    _add_table(doc, [_t(lang, "Niveau", "Level"), _t(lang, "Énoncé", "Statement"),
                     _t(lang, "Indicateurs et sources", "Indicators & sources"), _t(lang, "Hypothèses", "Assumptions")],
               rows)


def _add_me_plan(doc, plan: MePlan, lang: str) -> None:
    if plan.me_framework:
        doc.add_heading(_t(lang, "Cadre de suivi", "Monitoring framework"), level=2)
        _add_table(doc, [_t(lang, "Indicateur", "Indicator"), _t(lang, "Référence", "Baseline"),
                         _t(lang, "Cible", "Target"), _t(lang, "Fréquence", "Frequency"), "Source",
                         _t(lang, "Méthode", "Method"), _t(lang, "Responsable", "Responsible"),
                         _t(lang, "Désagrégation", "Disaggregation")],
                   [[m.indicator, m.baseline, m.target, m.frequency, m.data_source, m.collection_method,
                     m.responsible, m.disaggregation] for m in plan.me_framework])
    if plan.evaluations:
        doc.add_heading(_t(lang, "Évaluations", "Evaluations"), level=2)
        _add_table(doc, ["Type", _t(lang, "Calendrier", "Timing"), _t(lang, "Objet", "Purpose")],
                   [[e.type, e.timing, e.purpose] for e in plan.evaluations])
    if plan.reporting:
        doc.add_heading(_t(lang, "Rapportage", "Reporting"), level=2)
        _add_table(doc, [_t(lang, "Livrable", "Deliverable"), _t(lang, "Fréquence", "Frequency"),
                         _t(lang, "Destinataires", "Audience")],
                   [[r.deliverable, r.frequency, r.audience] for r in plan.reporting])


def _add_budget(doc, budget: Budget, lang: str) -> None:
    money = lambda v: format_value(v, "money", lang)  # noqa: E731
    for category in budget.categories:
        doc.add_heading(category.category, level=3)
        rows = [[line.line_item, line.unit, format_value(line.qty, "number", lang), money(line.unit_cost),
                 money(line.total_cost), line.notes] for line in category.items]
        rows.append([_t(lang, "Sous-total", "Subtotal"), "", "", "", money(category.total), ""])
        _add_table(doc, [_t(lang, "Poste", "Line item"), _t(lang, "Unité", "Unit"), _t(lang, "Qté", "Qty"),
                         _t(lang, "Coût unitaire", "Unit cost"), "Total", "Notes"], rows, bold_last=True)

    doc.add_heading(_t(lang, "Récapitulatif", "Summary"), level=2)
    indirect = _t(lang, "Coûts indirects", "Indirect costs")
    if budget.indirect_rate:
        indirect += f" ({format_value(budget.indirect_rate, 'percent', lang)})"
    _add_table(doc, ["", f"{_t(lang, 'Montant', 'Amount')} ({budget.currency})"], [
        [_t(lang, "Coûts directs", "Direct costs"), money(budget.direct_total)],
        [indirect, money(budget.indirect_total)],
        [_t(lang, "Total général", "Grand total"), money(budget.grand_total)],
    ], bold_last=True)

    if budget.by_activity:
        doc.add_heading(_t(lang, "Répartition par activité", "Breakdown by activity"), level=2)
        _add_table(doc, [_t(lang, "Activité", "Activity"), f"{_t(lang, 'Montant', 'Amount')} ({budget.currency})"],
                   [[a.activity, money(a.amount)] for a in budget.by_activity])


def _add_workplan(doc, plan: Workplan, lang: str) -> None:
    _add_table(doc, [_t(lang, "Activité", "Activity"), _t(lang, "Composante", "Component"),
                     _t(lang, "Début", "Start"), _t(lang, "Fin", "End"),
                     _t(lang, "Jalons", "Milestones"), _t(lang, "Livrables", "Deliverables")],
               [[a.activity, a.component, f"M{a.start_month}", f"M{a.end_month}",
                 "; ".join(a.milestones), "; ".join(a.deliverables)] for a in plan.activities])


def _add_content(doc, section: SectionResult, lang: str) -> None:
    content = section.content
    if isinstance(content, str):
        _add_rich_text(doc, content)
    elif isinstance(content, FinancialStatement):
        _add_financials(doc, content, lang)
    elif isinstance(content, BusinessCanvas):
        _add_lists(doc, [(name.replace("_", " ").capitalize(), getattr(content, name)) for name in CANVAS_FIELDS])
    elif isinstance(content, SwotMatrix):
        _add_lists(doc, [
            (_t(lang, "Forces", "Strengths"), content.strengths),
            (_t(lang, "Faiblesses", "Weaknesses"), content.weaknesses),
            (_t(lang, "Opportunités", "Opportunities"), content.opportunities),
            (_t(lang, "Menaces", "Threats"), content.threats),
        ])
        if content.interpretation:
            _add_rich_text(doc, content.interpretation)
    elif isinstance(content, KpiCalendar):
        if content.calendar:
            _add_table(doc, [_t(lang, "Période", "Period"), _t(lang, "Jalons", "Milestones"),
                             _t(lang, "Livrables", "Deliverables"), _t(lang, "Responsable", "Owner")],
                       [[m.period, m.milestones, m.deliverables, m.owner] for m in content.calendar])
        if content.kpis:
            _add_table(doc, ["KPI", _t(lang, "Définition", "Definition"), _t(lang, "Cible 12 mois", "12-month target"),
                             _t(lang, "Fréquence", "Frequency"), _t(lang, "Responsable", "Owner")],
                       [[k.kpi, k.definition, k.target_12m, k.frequency, k.owner] for k in content.kpis])
    elif isinstance(content, StakeholderMatrix):
        _add_table(doc, [_t(lang, "Partie prenante", "Stakeholder"), "Type", _t(lang, "Intérêt", "Interest"),
                         "Influence", _t(lang, "Rôle", "Role"), _t(lang, "Stratégie", "Strategy")],
                   [[s.name, s.type, s.interest, s.influence, s.role, s.engagement_strategy]
                    for s in content.stakeholders])
        for quadrant in QUADRANTS:
            names = [s.name for s in content.in_quadrant(quadrant)]
            if names:
                _add_bullet(doc, ", ".join(names), bold_prefix=f"{quadrant.replace('_', ' ')}:")
    elif isinstance(content, RiskMatrix):
        _add_table(doc, [_t(lang, "Risque", "Risk"), _t(lang, "Catégorie", "Category"), "P", "I", "Score",
                         _t(lang, "Atténuation", "Mitigation"), _t(lang, "Responsable", "Owner")],
                   [[r.risk, r.category, r.probability, r.impact, f"{r.score} ({r.level})", r.mitigation, r.owner]
                    for r in content.risks])
    elif isinstance(content, LogFrame):
        _add_logframe(doc, content, lang)
    elif isinstance(content, MePlan):
        _add_me_plan(doc, content, lang)
    elif isinstance(content, SdgAlignment):
        _add_table(doc, [_t(lang, "ODD", "SDG"), _t(lang, "Cible", "Target"), "Contribution",
                         _t(lang, "Indicateurs", "Indicators")],
                   [[g.sdg, t.target, t.contribution, t.project_indicators] for g in content.sdgs for t in g.targets])
    elif isinstance(content, Budget):
        _add_budget(doc, content, lang)
    elif isinstance(content, Workplan):
        _add_workplan(doc, content, lang)
    else:
        raise RenderError(f"unsupported section content: {type(content).__name__}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def render_docx_bytes(document: DocumentModel) -> bytes:
    """Build the .docx in memory and return its bytes."""
    lang = str(document.metadata.get("language") or "fr")
    try:
        doc = Document()
        style = doc.styles["Normal"]
        style.font.name = "Calibri"
        style.font.size = Pt(11)

        title = doc.add_heading(document.title, level=0)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER
        org = str(document.metadata.get("organization") or "")
        if org:
            p = doc.add_paragraph()
            p.alignment = WD_ALIGN_PARAGRAPH.CENTER
            run = p.add_run(org)
            run.italic = True
            run.font.size = Pt(12)
        doc.add_page_break()

        for number, section in enumerate(document.sections, start=1):
            doc.add_heading(f"{number}. {section.title}", level=1)
            _add_content(doc, section, lang)

        buffer = io.BytesIO()
        doc.save(buffer)
    except RenderError:
        raise
    except Exception as exc:
        logger.error("render_docx: failed for %r: %s", document.title, exc, exc_info=True)
        raise RenderError(f"DOCX rendering failed: {exc}") from exc
    logger.info("render_docx: %d section(s)", len(document.sections))
    return buffer.getvalue()
