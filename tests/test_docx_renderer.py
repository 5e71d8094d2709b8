"""Tests for the Word export."""
import io

import pytest
from docx import Document

from folio.models.document import DocumentModel, SectionKind, SectionResult, TableKind
from folio.services.docx_renderer import render_docx_bytes
from folio.services.errors import RenderError
from folio.services.normalizer import normalize_table


def _document(sections, lang="fr") -> DocumentModel:
    return DocumentModel(
        title="Plan d'affaires",
        metadata={"language": lang, "organization": "Laiterie du Fleuve"},
        sections=tuple(sections),
    )


def test_docx_has_numbered_headings_and_tables():
    sections = [
        SectionResult("executive_summary", "Résumé exécutif", SectionKind.TEXT,
                      "Objectifs:\n- Produire du lait\n- Vendre localement\n\nUn paragraphe de conclusion."),
    ]
    for index, schema in enumerate(TableKind):
        table, _ = normalize_table(schema, None, "fr", {"product": "Yaourt"})
        sections.append(SectionResult(f"t{index}", f"Tableau {index}", SectionKind.STRUCTURED, table, True))

    data = render_docx_bytes(_document(sections))
    assert data.startswith(b"PK")

    doc = Document(io.BytesIO(data))
    headings = [p.text for p in doc.paragraphs if p.style.name == "Heading 1"]
    assert headings[0] == "1. Résumé exécutif"
    assert headings[1] == "2. Tableau 0"
    assert len(headings) == len(sections)
    assert any(p.text == "Produire du lait" for p in doc.paragraphs)
    assert len(doc.tables) >= 4


def test_docx_use_of_funds_total_row():
    table, _ = normalize_table(
        TableKind.FINANCIAL_STATEMENT,
        {
            "pnl": [{"label": "Revenue", "y1": 1000}],
            "use_of_funds": [{"label": "Equipment", "amount": 3000}, {"label": "Stock", "amount": 2000}],
        },
        "en",
    )
    data = render_docx_bytes(_document([SectionResult("fin", "Financials", SectionKind.STRUCTURED, table)], "en"))
    doc = Document(io.BytesIO(data))

    funds = next(t for t in doc.tables if t.rows[0].cells[0].text == "Item")
    last = funds.rows[-1].cells
    assert last[0].text == "Total"
    assert last[1].text == "5,000"


def test_docx_budget_summary_and_logframe_levels():
    budget, _ = normalize_table(TableKind.BUDGET, {
        "by_category": [{"category": "Works", "items": [{"line_item": "Borehole", "qty": 2, "unit_cost": 5000}]}],
        "indirect_costs": {"rate": 10},
    }, "en")
    frame, _ = normalize_table(TableKind.LOGFRAME, {
        "impact": "Safe water for rural households",
        "outcomes": [{"statement": "Households use improved sources", "outputs": ["Boreholes drilled"]}],
    }, "en")
    data = render_docx_bytes(_document([
        SectionResult("budget", "Budget", SectionKind.STRUCTURED, budget),
        SectionResult("logframe", "Logframe", SectionKind.STRUCTURED, frame),
    ], "en"))
    doc = Document(io.BytesIO(data))

    summary = next(t for t in doc.tables if t.rows[0].cells[1].text == "Amount (USD)")
    assert [[c.text for c in row.cells] for row in summary.rows[1:]] == [
        ["Direct costs", "10,000"], ["Indirect costs (10.0%)", "1,000"], ["Grand total", "11,000"],
    ]
    levels = next(t for t in doc.tables if t.rows[0].cells[0].text == "Level")
    assert [row.cells[0].text for row in levels.rows[1:]] == ["Impact", "Outcome 1", "Output 1.1"]


def test_docx_rejects_unknown_content():
    with pytest.raises(RenderError):
        render_docx_bytes(_document([SectionResult("bad", "Bad", SectionKind.STRUCTURED, object())]))
