"""Tests for the page buffer and the pagination engine."""
import io
import logging

import pytest

from folio.models.document import (
    BusinessCanvas,
    DocumentModel,
    Risk,
    RiskMatrix,
    SectionKind,
    SectionResult,
    Stakeholder,
    StakeholderMatrix,
    TableKind,
    Workplan,
    WorkplanActivity,
)
from folio.services.errors import RenderError
from folio.services.normalizer import normalize_table
from folio.services.page_canvas import PageCanvas
from folio.services.pdf_renderer import (
    PageState,
    PaginationEngine,
    format_value,
    render_pdf_bytes,
)
from tests.conftest import long_paragraph


def _text_section(index: int, paragraphs: int = 1) -> SectionResult:
    body = "\n\n".join(long_paragraph(12, f"topic {index}") for _ in range(paragraphs))
    return SectionResult(f"s{index}", f"Section title {index}", SectionKind.TEXT, body)


def _document(sections, lang="en") -> DocumentModel:
    return DocumentModel(
        title="Business Plan",
        metadata={"language": lang, "organization": "Acme Foods", "country": "Ghana", "sector": "Agro"},
        sections=tuple(sections),
    )


def _first_body_page(canvas: PageCanvas, heading: str, start: int) -> int:
    for index in range(start, canvas.page_count):
        if heading in canvas.page_texts(index, include_chrome=False):
            return index + 1
    raise AssertionError(f"{heading!r} not found")


# ---------------------------------------------------------------------------
# Page buffer
# ---------------------------------------------------------------------------

def test_chrome_and_decorative_writes_do_not_count_as_content():
    touched = []
    canvas = PageCanvas(on_content=touched.append)
    canvas.add_page()
    with canvas.chrome():
        canvas.text("Header", y=20)
    with canvas.decorative():
        canvas.text("Ornament")
    assert touched == []

    canvas.text("Body")
    assert touched == [0]
    canvas.clear_chrome(0)
    assert canvas.page_texts(0) == ["Ornament", "Body"]


def test_flow_text_breaks_pages():
    canvas = PageCanvas()
    canvas.add_page()
    canvas.text(long_paragraph(300))
    assert canvas.page_count > 1
    assert canvas.y <= canvas.bottom


def test_fit_line_adds_ellipsis():
    canvas = PageCanvas()
    fitted = canvas.fit_line("A very long organisation name " * 10, 100, size=8)
    assert fitted.endswith("…")
    assert canvas.string_width(fitted, size=8) <= 100


def test_format_value():
    assert format_value(1234567, "money", "en") == "1,234,567"
    assert format_value(1234567, "money", "fr") == "1 234 567"
    assert format_value(12.345, "percent", "en") == "12.3%"
    assert format_value(12.345, "percent", "fr") == "12,3 %"
    assert format_value(1.5, "number", "en") == "1.5"


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def test_toc_matches_first_page_of_each_section():
    sections = [_text_section(1), _text_section(2, paragraphs=8), _text_section(3),
                _text_section(4, paragraphs=5), _text_section(5)]
    canvas, state = PaginationEngine(max_pages=36).layout(_document(sections))

    assert len(state.toc) == 5
    pages = [entry.page for entry in state.toc]
    assert pages == sorted(set(pages))
    for number, (section, entry) in enumerate(zip(sections, state.toc), start=1):
        assert entry.title == section.title
        assert entry.page == _first_body_page(canvas, f"{number}. {section.title}", start=state.toc_page_index + 1)

    toc_texts = canvas.page_texts(state.toc_page_index, include_chrome=False)
    for entry in state.toc:
        assert entry.title in toc_texts
        assert str(entry.page) in toc_texts


def test_page_cap_trims_from_the_end_and_renumbers_footer():
    sections = [_text_section(i) for i in range(1, 13)]
    document = _document(sections)

    uncapped, _ = PaginationEngine(max_pages=0).layout(document)
    assert uncapped.page_count == 14

    canvas, state = PaginationEngine(max_pages=10).layout(document)
    assert canvas.page_count == 10
    assert state.removed_over_cap == 4
    last_chrome = canvas.page_texts(9)
    assert "10/10" in last_chrome
    assert "14/14" not in last_chrome

    toc_texts = canvas.page_texts(state.toc_page_index, include_chrome=False)
    assert "Section title 8" in toc_texts
    assert "Section title 12" not in toc_texts


def test_every_page_gets_header_and_footer():
    canvas, _ = PaginationEngine().layout(_document([_text_section(1), _text_section(2)]))
    total = canvas.page_count
    for index in range(total):
        texts = canvas.page_texts(index)
        assert f"{index + 1}/{total}" in texts
        assert "CONFIDENTIAL" in texts
        assert "Acme Foods" in texts


def test_trailing_blank_pages_are_removed():
    state = PageState()
    canvas = PageCanvas(on_content=state.mark)
    canvas.add_page()
    canvas.text("Content")
    canvas.add_page()
    canvas.text("More content")
    canvas.add_page()
    canvas.add_page()
    with canvas.chrome():
        canvas.text("1/4", y=800)

    removed = PaginationEngine._remove_trailing_blank_pages(canvas, state)
    assert removed == 2
    assert canvas.page_count == 2


def test_render_writes_pdf_and_reports():
    buffer = io.BytesIO()
    report = PaginationEngine(max_pages=36).render(_document([_text_section(1), _text_section(2)]), buffer)

    data = buffer.getvalue()
    assert data.startswith(b"%PDF")
    assert report.page_count == 4
    assert len(report.toc) == 2


def test_every_table_type_renders():
    sections = []
    for index, schema in enumerate(TableKind):
        table, _ = normalize_table(schema, None, "fr", {"product": "Yaourt"})
        sections.append(SectionResult(f"t{index}", schema.value, SectionKind.STRUCTURED, table, True))
    sections.append(SectionResult("txt", "Notes", SectionKind.TEXT, "## Points clés:\n- **Un**\n- Deux\n\nTexte final."))

    data = render_pdf_bytes(_document(sections, lang="fr"), max_pages=36)
    assert data.startswith(b"%PDF")


def test_layout_failure_still_writes_a_pdf():
    bad = SectionResult("bad", "Broken", SectionKind.STRUCTURED, object())
    buffer = io.BytesIO()
    with pytest.raises(RenderError):
        PaginationEngine().render(_document([_text_section(1), bad]), buffer)
    assert buffer.getvalue().startswith(b"%PDF")


def _body_ops(canvas: PageCanvas, start: int):
    for index in range(start, canvas.page_count):
        for op in canvas.pages[index].ops:
            if not op.chrome:
                yield index, op


def _assert_inside_margins(canvas: PageCanvas, start: int) -> None:
    for index, op in _body_ops(canvas, start):
        if op.kind == "text":
            assert op.args["y"] + op.args["size"] <= canvas.bottom + 1e-6, (index, op.args["text"])
        elif op.kind == "rect":
            assert op.args["y"] + op.args["h"] <= canvas.bottom + 1e-6, (index, op.args)


# ---------------------------------------------------------------------------
# Tables and grids across page breaks
# ---------------------------------------------------------------------------

def test_oversized_grid_cells_continue_on_the_next_page():
    partners = tuple(f"Partner {i:03d}" for i in range(120))
    bmc = BusinessCanvas(key_partners=partners, key_activities=("Sourcing",), channels=("Retail",))
    people = tuple(
        Stakeholder(f"Cooperative {i:02d}", "community", "high", "high", quadrant="manage_closely")
        for i in range(90)
    )
    sections = [
        SectionResult("canvas", "Business Model Canvas", SectionKind.STRUCTURED, bmc),
        SectionResult("stakeholders", "Stakeholders", SectionKind.STRUCTURED, StakeholderMatrix(people)),
    ]
    canvas, state = PaginationEngine(max_pages=0).layout(_document(sections))

    _assert_inside_margins(canvas, state.toc_page_index + 1)
    texts = [op.args["text"] for _, op in _body_ops(canvas, state.toc_page_index + 1) if op.kind == "text"]
    for name in partners:
        assert f"• {name}" in texts
    for person in people:
        assert f"• {person.name}" in texts
    # the key partners cell alone needs more than one page
    canvas_pages = {i for i, op in _body_ops(canvas, 0) if op.kind == "text" and op.args["text"].startswith("• Partner")}
    assert len(canvas_pages) > 1


def test_long_risk_table_repeats_its_header_on_every_page():
    risks = tuple(
        Risk(f"Risk {i:02d}", "operational", "medium", "high", long_paragraph(3, f"mitigation {i}"), "PM", 6, "high")
        for i in range(80)
    )
    section = SectionResult("risks", "Risk Matrix", SectionKind.STRUCTURED, RiskMatrix(risks))
    canvas, state = PaginationEngine(max_pages=0).layout(_document([section]))

    first = state.toc_page_index + 1
    assert canvas.page_count - first > 1
    _assert_inside_margins(canvas, first)
    header_pages = [i for i in range(first, canvas.page_count) if "Mitigation" in canvas.page_texts(i, include_chrome=False)]
    assert header_pages == list(range(first, canvas.page_count))
    texts = [op.args["text"] for _, op in _body_ops(canvas, first) if op.kind == "text"]
    assert all(f"Risk {i:02d}" in texts for i in range(80))


def test_toc_overflow_is_logged(caplog):
    sections = [_text_section(i) for i in range(1, 61)]
    with caplog.at_level(logging.WARNING, logger="folio.services.pdf_renderer"):
        canvas, state = PaginationEngine(max_pages=0).layout(_document(sections))

    toc_texts = canvas.page_texts(state.toc_page_index, include_chrome=False)
    assert "Section title 1" in toc_texts
    assert "Section title 60" not in toc_texts
    assert any("omitted" in r.getMessage() for r in caplog.records)


def test_toc_entries_past_the_cap_are_logged(caplog):
    sections = [_text_section(i) for i in range(1, 13)]
    with caplog.at_level(logging.WARNING, logger="folio.services.pdf_renderer"):
        PaginationEngine(max_pages=10).layout(_document(sections))

    message = next(r.getMessage() for r in caplog.records if "table-of-contents" in r.getMessage())
    assert "4 past the 10-page cap" in message


# ---------------------------------------------------------------------------
# Donor tables
# ---------------------------------------------------------------------------

def test_budget_shows_subtotals_and_grand_total():
    budget, _ = normalize_table(TableKind.BUDGET, None, "en", {"duration_months": 12})
    section = SectionResult("budget", "Detailed Budget", SectionKind.STRUCTURED, budget)
    canvas, state = PaginationEngine(max_pages=0).layout(_document([section]))

    texts = [op.args["text"] for _, op in _body_ops(canvas, state.toc_page_index + 1) if op.kind == "text"]
    assert "Subtotal Personnel" in texts
    assert "Grand total" in texts
    assert format_value(budget.grand_total, "money", "en") in texts
    assert "Indirect costs (7.0%)" in texts


@pytest.mark.parametrize(
    "months, first, last",
    [(12, "M1", "M12"), (30, "Q1", "Q10"), (60, "Y1", "Y5")],
)
def test_workplan_timeline_columns(months, first, last):
    plan = Workplan(months, (WorkplanActivity("Construction", "Works", 1, months),))
    section = SectionResult("workplan", "Workplan", SectionKind.STRUCTURED, plan)
    canvas, state = PaginationEngine(max_pages=0).layout(_document([section]))

    texts = [op.args["text"] for _, op in _body_ops(canvas, state.toc_page_index + 1) if op.kind == "text"]
    assert first in texts
    assert last in texts
    assert f"M1–M{months}" in texts
