"""
Paginated PDF rendering of a ``DocumentModel``.

Pass order
----------
1. cover page
2. reserved table-of-contents page (placeholder heading only)
3. every section on a new page; the first physical page of each is recorded
4. table of contents backfilled: title left, page number right, dotted leader
5. header/footer on every page (never counts as content)
6. trailing pages without content removed
7. hard page cap enforced by trimming from the end
8. header/footer refreshed so "n/N" reflects the final page set

Layout goes through ``PageCanvas``; the set of content pages is fed by its
content listener.  If layout or replay fails, a well-formed partial PDF is
still written to the output stream before ``RenderError`` is raised.

Public API
----------
PaginationEngine.layout(document)          -> (PageCanvas, PageState)
PaginationEngine.render(document, stream)  -> RenderReport
render_pdf_bytes(document, max_pages)      -> bytes
"""
from __future__ import annotations

import dataclasses
import io
import logging
from datetime import datetime
from typing import BinaryIO, Callable, List, Optional, Sequence, Set, Tuple

from folio.models.document import (
    Budget,
    BusinessCanvas,
    DocumentModel,
    FinancialRow,
    FinancialStatement,
    Indicator,
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
from folio.services.normalizer import QUADRANTS, classify_row
from folio.services.page_canvas import PageCanvas
from folio.utils.helpers import clean_markdown, is_heading_line

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Style constants
# ---------------------------------------------------------------------------

ACCENT = "#1f3b5b"
MUTED = "#6b7280"
TEXT = "#1a1a1a"
RULE = "#c7ccd3"
HEADER_FILL = "#1f3b5b"

TITLE_SIZE = 16
BODY_SIZE = 10.5
SUBHEAD_SIZE = 11.5
TABLE_SIZE = 8.5
CHROME_SIZE = 8

HEADER_Y = 22
HEADER_RULE_Y = 40
FOOTER_OFFSET = 28
FOOTER_RULE_OFFSET = 42

CELL_PAD = 4
MIN_ROW_HEIGHT = 16
TABLE_HEADER_HEIGHT = 18


def _t(lang: str, fr: str, en: str) -> str:
    return en if lang == "en" else fr


# ---------------------------------------------------------------------------
# Number formatting
# ---------------------------------------------------------------------------

def format_value(value: float, fmt: str, lang: str = "fr") -> str:
    """money: grouped integer; number: up to 2 decimals; percent: 1 decimal and %."""
    if fmt == "percent":
        text = f"{value:,.1f}"
        suffix = " %" if lang == "fr" else "%"
    elif fmt == "number":
        text = f"{value:,.2f}".rstrip("0").rstrip(".")
        suffix = ""
    else:
        text = f"{round(value):,}"
        suffix = ""
    if lang == "fr":
        text = text.replace(",", " ").replace(".", ",")
    return text + suffix


# ---------------------------------------------------------------------------
# Render state
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class TocEntry:
    title: str
    page: int  # 1-based physical page number


@dataclasses.dataclass
class PageState:
    """Per-render bookkeeping; a fresh one is created by every ``layout`` call."""

    pages_with_body: Set[int] = dataclasses.field(default_factory=set)
    toc: List[TocEntry] = dataclasses.field(default_factory=list)
    toc_page_index: int = -1
    removed_blank: int = 0
    removed_over_cap: int = 0

    def mark(self, page_index: int) -> None:
        self.pages_with_body.add(page_index)


@dataclasses.dataclass(frozen=True)
class RenderReport:
    page_count: int
    toc: Tuple[TocEntry, ...]
    removed_blank: int
    removed_over_cap: int


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PaginationEngine:
    """Lay a ``DocumentModel`` out on A4 pages and write it as PDF."""

    def __init__(
        self,
        max_pages: int = 36,
        confidential_label: Optional[str] = None,
        canvas_factory: Callable[..., PageCanvas] = PageCanvas,
    ) -> None:
        self.max_pages = max_pages
        self.confidential_label = confidential_label
        self.canvas_factory = canvas_factory

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def render(self, document: DocumentModel, stream: BinaryIO) -> RenderReport:
        """
        Write *document* as PDF to *stream*.

        On failure the stream still receives a valid PDF (whatever was laid
        out, or a one-page error notice) and ``RenderError`` is raised.
        """
        state = PageState()
        canvas = self.canvas_factory(on_content=state.mark)
        try:
            self._layout_into(canvas, state, document)
            buffer = io.BytesIO()
            canvas.to_pdf(buffer, title=document.title, author=self._organization(document))
            stream.write(buffer.getvalue())
        except Exception as exc:
            logger.error("render: layout failed for %r: %s", document.title, exc, exc_info=True)
            self._write_partial(canvas, document, stream, exc)
            raise RenderError(f"PDF rendering failed: {exc}") from exc

        logger.info(
            "render: %d page(s), %d blank removed, %d over cap removed",
            canvas.page_count, state.removed_blank, state.removed_over_cap,
        )
        return RenderReport(canvas.page_count, tuple(state.toc), state.removed_blank, state.removed_over_cap)

    def layout(self, document: DocumentModel) -> Tuple[PageCanvas, PageState]:
        state = PageState()
        canvas = self.canvas_factory(on_content=state.mark)
        self._layout_into(canvas, state, document)
        return canvas, state

    def _layout_into(self, canvas: PageCanvas, state: PageState, document: DocumentModel) -> None:
        lang = str(document.metadata.get("language") or "fr")

        self._render_cover(canvas, document, lang)

        state.toc_page_index = canvas.add_page()
        self._section_heading(canvas, _t(lang, "Table des matières", "Table of Contents"))

        for number, section in enumerate(document.sections, start=1):
            canvas.add_page()
            state.toc.append(TocEntry(section.title, canvas.page_index + 1))
            self._render_section(canvas, section, number, lang)

        self._fill_toc(canvas, state, lang)
        self._render_all_chrome(canvas, document, lang)
        state.removed_blank = self._remove_trailing_blank_pages(canvas, state)
        state.removed_over_cap = self._enforce_max_pages(canvas)
        self._render_all_chrome(canvas, document, lang)

    # ------------------------------------------------------------------
    # Cover and TOC
    # ------------------------------------------------------------------

    @staticmethod
    def _organization(document: DocumentModel) -> str:
        return str(document.metadata.get("organization") or "")

    def _render_cover(self, canvas: PageCanvas, document: DocumentModel, lang: str) -> None:
        canvas.add_page()
        with canvas.decorative():
            canvas.rect(28, 28, canvas.width - 56, canvas.height - 56, stroke=ACCENT, line_width=1.5)
            canvas.rect(34, 34, canvas.width - 68, canvas.height - 68, stroke=RULE, line_width=0.5)

        org = self._organization(document)
        canvas.move_down(180)
        if org:
            canvas.text(org.upper(), size=14, color=MUTED, align="center", font=canvas.bold_font)
            canvas.move_down(12)
        canvas.text(document.title, size=26, font=canvas.bold_font, color=ACCENT, align="center")
        canvas.move_down(16)

        meta = " · ".join(
            str(v) for v in (document.metadata.get("country"), document.metadata.get("sector")) if v
        )
        if meta:
            canvas.text(meta, size=11, color=MUTED, align="center")
        canvas.move_down(8)
        canvas.text(datetime.now().strftime("%d/%m/%Y" if lang == "fr" else "%B %d, %Y"), size=10, color=MUTED, align="center")

        canvas.y = canvas.bottom - 60
        canvas.text(
            _t(
                lang,
                "Document généré avec assistance. À relire et valider avant toute diffusion.",
                "Document generated with assistance. Review and validate before distribution.",
            ),
            size=8,
            color=MUTED,
            align="center",
        )

    def _fill_toc(self, canvas: PageCanvas, state: PageState, lang: str) -> None:
        """Backfill the reserved page.  Entries past the page cap, or past the page end, are left out."""
        over_cap = overflow = 0
        with canvas.preserve_cursor():
            canvas.switch_to(state.toc_page_index)
            y = canvas.top + 44
            number_width = 36
            line_h = 20
            for entry in state.toc:
                if 0 < self.max_pages < entry.page:
                    over_cap += 1
                    continue
                if y + line_h > canvas.bottom:
                    overflow += 1
                    continue
                title = canvas.fit_line(entry.title, canvas.content_width * 0.78, size=11)
                canvas.text(title, x=canvas.left, y=y, width=canvas.content_width * 0.78, size=11)
                title_end = canvas.left + canvas.string_width(title, size=11) + 6
                leader_end = canvas.right - number_width - 4
                if leader_end > title_end:
                    with canvas.decorative():
                        canvas.line(title_end, y + 9, leader_end, y + 9, width=0.8, color=MUTED, dash=(1, 2))
                canvas.text(
                    str(entry.page), x=canvas.right - number_width, y=y, width=number_width, size=11, align="right"
                )
                y += line_h
        if over_cap or overflow:
            logger.warning(
                "render: omitted %d table-of-contents entries (%d past the %d-page cap, %d past the page end)",
                over_cap + overflow, over_cap, self.max_pages, overflow,
            )

    # ------------------------------------------------------------------
    # Header / footer and cleanup
    # ------------------------------------------------------------------

    def _render_all_chrome(self, canvas: PageCanvas, document: DocumentModel, lang: str) -> None:
        total = canvas.page_count
        label = self.confidential_label or _t(lang, "CONFIDENTIEL", "CONFIDENTIAL")
        org = self._organization(document) or document.title
        with canvas.preserve_cursor():
            for index in range(total):
                canvas.clear_chrome(index)
                canvas.switch_to(index)
                with canvas.chrome():
                    self._render_chrome(canvas, org, label, document.title, index + 1, total)

    @staticmethod
    def _render_chrome(
        canvas: PageCanvas, org: str, label: str, footer: str, page_number: int, total: int
    ) -> None:
        left_w = canvas.content_width * 0.65
        right_w = canvas.content_width * 0.35
        footer_y = canvas.height - FOOTER_OFFSET
        canvas.text(org, x=canvas.left, y=HEADER_Y, width=left_w, size=CHROME_SIZE, color=MUTED, ellipsis=True)
        canvas.text(
            label, x=canvas.left + left_w, y=HEADER_Y, width=right_w, size=CHROME_SIZE,
            color=MUTED, align="right", ellipsis=True,
        )
        canvas.line(canvas.left, HEADER_RULE_Y, canvas.right, HEADER_RULE_Y, color=RULE)
        canvas.line(
            canvas.left, canvas.height - FOOTER_RULE_OFFSET, canvas.right, canvas.height - FOOTER_RULE_OFFSET,
            color=RULE,
        )
        canvas.text(footer, x=canvas.left, y=footer_y, width=left_w, size=CHROME_SIZE, color=MUTED, ellipsis=True)
        canvas.text(
            f"{page_number}/{total}", x=canvas.left + left_w, y=footer_y, width=right_w,
            size=CHROME_SIZE, color=MUTED, align="right", ellipsis=True,
        )

    @staticmethod
    def _remove_trailing_blank_pages(canvas: PageCanvas, state: PageState) -> int:
        if not state.pages_with_body:
            return 0
        last_body = max(state.pages_with_body)
        removed = 0
        for index in range(canvas.page_count - 1, last_body, -1):
            canvas.remove_page(index)
            removed += 1
        return removed

    def _enforce_max_pages(self, canvas: PageCanvas) -> int:
        if self.max_pages <= 0:
            return 0
        removed = 0
        while canvas.page_count > self.max_pages:
            canvas.remove_page(canvas.page_count - 1)
            removed += 1
        if removed:
            logger.warning("render: trimmed %d page(s) over the %d-page cap", removed, self.max_pages)
        return removed

    def _write_partial(
        self, canvas: Optional[PageCanvas], document: DocumentModel, stream: BinaryIO, exc: Exception
    ) -> None:
        """Best effort: what was laid out, else a single notice page."""
        buffer = io.BytesIO()
        try:
            if canvas is None or canvas.page_count == 0:
                raise RenderError("nothing laid out")
            canvas.to_pdf(buffer, title=document.title)
        except Exception:
            buffer = io.BytesIO()
            notice = self.canvas_factory()
            notice.add_page()
            notice.text(document.title or "Document", size=14, font=notice.bold_font)
            notice.move_down(8)
            notice.text(f"Rendering failed: {exc}"[:500], size=10, color=MUTED)
            notice.to_pdf(buffer, title=document.title)
        stream.write(buffer.getvalue())

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _section_heading(self, canvas: PageCanvas, title: str) -> None:
        canvas.text(title, size=TITLE_SIZE, font=canvas.bold_font, color=ACCENT)
        canvas.move_down(4)
        with canvas.decorative():
            canvas.line(canvas.left, canvas.y, canvas.right, canvas.y, width=1, color=ACCENT)
        canvas.move_down(12)

    def _render_section(self, canvas: PageCanvas, section: SectionResult, number: int, lang: str) -> None:
        self._section_heading(canvas, f"{number}. {section.title}")
        content = section.content
        if isinstance(content, str):
            self._render_rich_text(canvas, content)
        elif isinstance(content, FinancialStatement):
            self._render_financials(canvas, content, lang)
        elif isinstance(content, BusinessCanvas):
            self._render_canvas(canvas, content, lang)
        elif isinstance(content, SwotMatrix):
            self._render_swot(canvas, content, lang)
        elif isinstance(content, KpiCalendar):
            self._render_kpi_calendar(canvas, content, lang)
        elif isinstance(content, StakeholderMatrix):
            self._render_stakeholders(canvas, content, lang)
        elif isinstance(content, RiskMatrix):
            self._render_risks(canvas, content, lang)
        elif isinstance(content, LogFrame):
            self._render_logframe(canvas, content, lang)
        elif isinstance(content, MePlan):
            self._render_me_plan(canvas, content, lang)
        elif isinstance(content, SdgAlignment):
            self._render_sdgs(canvas, content, lang)
        elif isinstance(content, Budget):
            self._render_budget(canvas, content, lang)
        elif isinstance(content, Workplan):
            self._render_workplan(canvas, content, lang)
        else:
            raise RenderError(f"unsupported section content: {type(content).__name__}")

    def _subheading(self, canvas: PageCanvas, text: str) -> None:
        canvas.ensure_space(SUBHEAD_SIZE * 1.2 + 40)
        canvas.move_down(4)
        canvas.text(text, size=SUBHEAD_SIZE, font=canvas.bold_font, color=ACCENT)
        canvas.move_down(4)

    def _render_rich_text(self, canvas: PageCanvas, text: str) -> None:
        cleaned = clean_markdown(text)
        for block in cleaned.split("\n\n"):
            for line in block.split("\n"):
                line = line.strip()
                if not line:
                    continue
                if is_heading_line(line):
                    self._subheading(canvas, line.rstrip(":"))
                elif line.startswith("- "):
                    self._bullet(canvas, line[2:])
                else:
                    canvas.text(line, size=BODY_SIZE, color=TEXT)
            canvas.move_down(6)

    def _bullet(self, canvas: PageCanvas, text: str, size: float = BODY_SIZE) -> None:
        indent = 14
        height = canvas.measure(text, canvas.content_width - indent, size=size)
        canvas.ensure_space(min(height, canvas.line_height(size) * 2))
        canvas.text("•", x=canvas.left + 2, y=canvas.y, width=10, size=size)
        canvas.text(text, x=canvas.left + indent, size=size, color=TEXT)
        canvas.move_down(2)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def draw_table(
        self,
        canvas: PageCanvas,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        col_fracs: Sequence[float],
        aligns: Optional[Sequence[str]] = None,
        bold_rows: Sequence[int] = (),
    ) -> None:
        """
        Row-by-row table.  Each row is as tall as its tallest wrapped cell and
        a page-break check runs before every row; the header repeats on new pages.
        """
        widths = [canvas.content_width * f for f in col_fracs]
        aligns = list(aligns or ["left"] * len(headers))
        max_row_h = canvas.bottom - canvas.top - TABLE_HEADER_HEIGHT - 6
        lh = canvas.line_height(TABLE_SIZE, 1)

        def draw_header() -> None:
            canvas.ensure_space(TABLE_HEADER_HEIGHT + MIN_ROW_HEIGHT + 6)
            with canvas.decorative():
                canvas.rect(canvas.left, canvas.y, sum(widths), TABLE_HEADER_HEIGHT,
                            stroke=RULE, fill=HEADER_FILL, fill_opacity=0.06)
            x = canvas.left
            for header, w, align in zip(headers, widths, aligns):
                canvas.text(header, x=x + CELL_PAD, y=canvas.y + 4, width=w - 2 * CELL_PAD,
                            size=TABLE_SIZE, font=canvas.bold_font, align=align, ellipsis=True)
                x += w
            canvas.move_down(TABLE_HEADER_HEIGHT)

        draw_header()
        for row_index, row in enumerate(rows):
            cells: List[List[str]] = []
            for value, w in zip(row, widths):
                cells.append(canvas.wrap(str(value), w - 2 * CELL_PAD, size=TABLE_SIZE))
            tallest = max((len(c) for c in cells), default=1)
            row_h = max(tallest * lh + 2 * CELL_PAD, MIN_ROW_HEIGHT)
            if row_h > max_row_h:
                keep = max(1, int((max_row_h - 2 * CELL_PAD) // lh))
                cells = [c[:keep - 1] + [c[keep - 1] + "…"] if len(c) > keep else c for c in cells]
                row_h = keep * lh + 2 * CELL_PAD

            if canvas.ensure_space(row_h + 6):
                draw_header()

            font = canvas.bold_font if row_index in bold_rows else canvas.font
            x = canvas.left
            for lines, w, align in zip(cells, widths, aligns):
                with canvas.decorative():
                    canvas.rect(x, canvas.y, w, row_h, stroke=RULE)
                canvas.text("\n".join(lines), x=x + CELL_PAD, y=canvas.y + CELL_PAD,
                            width=w - 2 * CELL_PAD, size=TABLE_SIZE, font=font, align=align, line_gap=1)
                x += w
            canvas.move_down(row_h)
        canvas.move_down(10)

    def _year_table(
        self, canvas: PageCanvas, rows: Sequence[FinancialRow], periods: Sequence[str], label: str, lang: str
    ) -> None:
        if not rows:
            return
        frac = 0.60 / len(periods)
        body = [[r.label] + [format_value(r.value(i), r.fmt, lang) for i in range(len(periods))] for r in rows]
        bold = [i for i, r in enumerate(rows) if classify_row(r) in ("revenue", "gross_profit", "ebitda")]
        self.draw_table(
            canvas, [label] + list(periods), body, [0.40] + [frac] * len(periods),
            ["left"] + ["right"] * len(periods), bold_rows=bold,
        )

    def _render_financials(self, canvas: PageCanvas, fin: FinancialStatement, lang: str) -> None:
        canvas.text(f"{_t(lang, 'Devise', 'Currency')}: {fin.currency}", size=9, color=MUTED)
        canvas.move_down(6)

        if fin.assumptions:
            self._subheading(canvas, _t(lang, "Hypothèses clés", "Key assumptions"))
            self.draw_table(
                canvas,
                [_t(lang, "Hypothèse", "Assumption"), _t(lang, "Valeur", "Value")],
                [[a.label, a.value] for a in fin.assumptions],
                [0.45, 0.55],
            )

        blocks = (
            (_t(lang, "Moteurs de revenus", "Revenue drivers"), fin.revenue_drivers),
            (_t(lang, "Compte de résultat", "Profit & loss"), fin.pnl),
            (_t(lang, "Flux de trésorerie", "Cash flow"), fin.cashflow),
            (_t(lang, "Bilan simplifié", "Balance sheet"), fin.balance_sheet),
        )
        for title, rows in blocks:
            if rows:
                self._subheading(canvas, title)
                self._year_table(canvas, rows, fin.periods, _t(lang, "Poste", "Line item"), lang)

        self._render_charts(canvas, fin, lang)

        be = fin.break_even
        if be.estimate or be.explanation:
            self._subheading(canvas, _t(lang, "Point mort", "Break-even"))
            canvas.text(f"{be.estimate} {be.metric}".strip(), size=BODY_SIZE, font=canvas.bold_font)
            if be.explanation:
                canvas.text(be.explanation, size=BODY_SIZE)
            canvas.move_down(6)

        if fin.use_of_funds:
            self._subheading(canvas, _t(lang, "Utilisation des fonds", "Use of funds"))
            rows = [[u.label, format_value(u.amount, "money", lang), u.notes] for u in fin.use_of_funds]
            rows.append([_t(lang, "Total", "Total"), format_value(fin.total_use_of_funds, "money", lang), ""])
            self.draw_table(
                canvas,
                [_t(lang, "Poste", "Item"), f"{_t(lang, 'Montant', 'Amount')} ({fin.currency})", "Notes"],
                rows,
                [0.40, 0.20, 0.40],
                ["left", "right", "left"],
                bold_rows=[len(rows) - 1],
            )

        if fin.scenarios:
            self._subheading(canvas, _t(lang, "Scénarios", "Scenarios"))
            for s in fin.scenarios:
                self._bullet(canvas, f"{s.name}: {s.note}" if s.note else s.name)

    def _render_charts(self, canvas: PageCanvas, fin: FinancialStatement, lang: str) -> None:
        def pick(rows: Sequence[FinancialRow], role: Optional[str], needle: str = "") -> Optional[FinancialRow]:
            for r in rows:
                if role and classify_row(r) == role:
                    return r
                if needle and needle in r.label.lower():
                    return r
            return None

        series = [
            (_t(lang, "Chiffre d'affaires", "Revenue"), pick(fin.pnl, "revenue")),
            ("EBITDA", pick(fin.pnl, "ebitda")),
            (_t(lang, "Flux d'exploitation", "Operating cash flow"),
             pick(fin.cashflow, None, "exploitation") or pick(fin.cashflow, None, "operating")),
        ]
        series = [(title, row) for title, row in series if row is not None and any(row.values)]
        if not series:
            return
        self._subheading(canvas, _t(lang, "Graphiques", "Charts"))
        for title, row in series:
            self.draw_bar_chart(canvas, title, fin.periods, row.values, lang)

    def draw_bar_chart(
        self, canvas: PageCanvas, title: str, labels: Sequence[str], values: Sequence[float], lang: str
    ) -> None:
        chart_h = 90
        canvas.ensure_space(chart_h + 50)
        canvas.text(title, size=9, font=canvas.bold_font, color=MUTED)
        top = canvas.y + 14
        peak = max((abs(v) for v in values), default=0) or 1.0
        has_negative = any(v < 0 for v in values)
        zero_y = top + (chart_h / 2 if has_negative else chart_h)
        scale = (chart_h / 2 if has_negative else chart_h) / peak
        slot = canvas.content_width / max(1, len(values))
        bar_w = slot * 0.5

        with canvas.decorative():
            canvas.line(canvas.left, zero_y, canvas.right, zero_y, color=RULE)
        for i, (label, value) in enumerate(zip(labels, values)):
            x = canvas.left + i * slot + (slot - bar_w) / 2
            h = abs(value) * scale
            y = zero_y - h if value >= 0 else zero_y
            with canvas.decorative():
                canvas.rect(x, y, bar_w, max(h, 0.5), stroke=None, fill=ACCENT, fill_opacity=0.85)
            canvas.text(format_value(value, "money", lang), x=x - 10, y=max(top - 12, y - 11),
                        width=bar_w + 20, size=7, align="center", color=MUTED)
            canvas.text(label, x=x - 10, y=top + chart_h + 4, width=bar_w + 20, size=7, align="center")
        canvas.y = top + chart_h + 22

    # ------------------------------------------------------------------
    # Grids and matrices
    # ------------------------------------------------------------------

    def _draw_grid(self, canvas: PageCanvas, cells: Sequence[Tuple[str, Sequence[str]]], columns: int) -> None:
        """
        Titled cells, *columns* per row; each grid row as tall as its fullest
        cell.  A row too tall for the space left is split: the cells carry
        their remaining lines onto the next page under a repeated title.
        """
        col_w = canvas.content_width / columns
        body_w = col_w - 2 * CELL_PAD
        lh = canvas.line_height(TABLE_SIZE, 1)
        for start in range(0, len(cells), columns):
            row = cells[start:start + columns]
            titles = [canvas.wrap(title, body_w, canvas.bold_font, 9) for title, _ in row]
            bodies = [
                canvas.wrap("\n".join(f"• {item}" for item in items) or "—", body_w, size=TABLE_SIZE)
                for _, items in row
            ]
            title_h = max(len(t) for t in titles) * canvas.line_height(9)

            while True:
                canvas.ensure_space(title_h + lh + 3 * CELL_PAD + 6)
                room = max(1, int((canvas.remaining - 6 - title_h - 3 * CELL_PAD) // lh))
                chunks = [body[:room] for body in bodies]
                bodies = [body[room:] for body in bodies]
                row_h = title_h + max(len(c) for c in chunks) * lh + 3 * CELL_PAD
                for i, (title_lines, chunk) in enumerate(zip(titles, chunks)):
                    x = canvas.left + i * col_w
                    with canvas.decorative():
                        canvas.rect(x, canvas.y, col_w, row_h, stroke=RULE, fill=HEADER_FILL, fill_opacity=0.03)
                    canvas.text("\n".join(title_lines), x=x + CELL_PAD, y=canvas.y + CELL_PAD, width=body_w,
                                size=9, font=canvas.bold_font, color=ACCENT)
                    canvas.text("\n".join(chunk), x=x + CELL_PAD, y=canvas.y + CELL_PAD * 2 + title_h,
                                width=body_w, size=TABLE_SIZE, line_gap=1)
                canvas.move_down(row_h)
                if not any(bodies):
                    break
        canvas.move_down(10)

    def _render_canvas(self, canvas: PageCanvas, bmc: BusinessCanvas, lang: str) -> None:
        cells = [
            (_t(lang, "Partenaires clés", "Key partners"), bmc.key_partners),
            (_t(lang, "Activités clés", "Key activities"), bmc.key_activities),
            (_t(lang, "Ressources clés", "Key resources"), bmc.key_resources),
            (_t(lang, "Propositions de valeur", "Value propositions"), bmc.value_propositions),
            (_t(lang, "Relations clients", "Customer relationships"), bmc.customer_relationships),
            (_t(lang, "Canaux", "Channels"), bmc.channels),
            (_t(lang, "Segments clients", "Customer segments"), bmc.customer_segments),
            (_t(lang, "Structure de coûts", "Cost structure"), bmc.cost_structure),
            (_t(lang, "Sources de revenus", "Revenue streams"), bmc.revenue_streams),
        ]
        self._draw_grid(canvas, cells, columns=3)

    def _render_swot(self, canvas: PageCanvas, swot: SwotMatrix, lang: str) -> None:
        cells = [
            (_t(lang, "Forces", "Strengths"), swot.strengths),
            (_t(lang, "Faiblesses", "Weaknesses"), swot.weaknesses),
            (_t(lang, "Opportunités", "Opportunities"), swot.opportunities),
            (_t(lang, "Menaces", "Threats"), swot.threats),
        ]
        self._draw_grid(canvas, cells, columns=2)
        if swot.interpretation:
            self._subheading(canvas, _t(lang, "Interprétation", "Interpretation"))
            self._render_rich_text(canvas, swot.interpretation)

    def _render_kpi_calendar(self, canvas: PageCanvas, cal: KpiCalendar, lang: str) -> None:
        if cal.calendar:
            self._subheading(canvas, _t(lang, "Calendrier de mise en œuvre", "Execution calendar"))
            self.draw_table(
                canvas,
                [_t(lang, "Période", "Period"), _t(lang, "Jalons", "Milestones"),
                 _t(lang, "Livrables", "Deliverables"), _t(lang, "Responsable", "Owner")],
                [[m.period, m.milestones, m.deliverables, m.owner] for m in cal.calendar],
                [0.14, 0.34, 0.34, 0.18],
            )
        if cal.kpis:
            self._subheading(canvas, "KPIs")
            self.draw_table(
                canvas,
                ["KPI", _t(lang, "Définition", "Definition"), _t(lang, "Cible 12 mois", "12-month target"),
                 _t(lang, "Fréquence", "Frequency"), _t(lang, "Responsable", "Owner")],
                [[k.kpi, k.definition, k.target_12m, k.frequency, k.owner] for k in cal.kpis],
                [0.22, 0.30, 0.18, 0.14, 0.16],
            )

    def _render_stakeholders(self, canvas: PageCanvas, matrix: StakeholderMatrix, lang: str) -> None:
        level = {"low": _t(lang, "faible", "low"), "medium": _t(lang, "moyen", "medium"), "high": _t(lang, "élevé", "high")}
        self.draw_table(
            canvas,
            [_t(lang, "Partie prenante", "Stakeholder"), "Type", _t(lang, "Intérêt", "Interest"),
             "Influence", _t(lang, "Rôle", "Role"), _t(lang, "Stratégie d'engagement", "Engagement strategy")],
            [[s.name, s.type, level[s.interest], level[s.influence], s.role, s.engagement_strategy]
             for s in matrix.stakeholders],
            [0.18, 0.12, 0.10, 0.10, 0.20, 0.30],
        )
        titles = {
            "manage_closely": _t(lang, "Gérer étroitement", "Manage closely"),
            "keep_satisfied": _t(lang, "Satisfaire", "Keep satisfied"),
            "keep_informed": _t(lang, "Informer", "Keep informed"),
            "monitor": _t(lang, "Surveiller", "Monitor"),
        }
        self._subheading(canvas, _t(lang, "Grille pouvoir / intérêt", "Power / interest grid"))
        self._draw_grid(
            canvas,
            [(titles[q], [s.name for s in matrix.in_quadrant(q)]) for q in QUADRANTS],
            columns=2,
        )

    def _render_risks(self, canvas: PageCanvas, matrix: RiskMatrix, lang: str) -> None:
        level = {"low": _t(lang, "faible", "low"), "medium": _t(lang, "moyen", "medium"), "high": _t(lang, "élevé", "high")}
        self.draw_table(
            canvas,
            [_t(lang, "Risque", "Risk"), _t(lang, "Catégorie", "Category"), "P", "I",
             "Score", _t(lang, "Atténuation", "Mitigation"), _t(lang, "Responsable", "Owner")],
            [[r.risk, r.category, level[r.probability], level[r.impact], f"{r.score} ({level[r.level]})",
              r.mitigation, r.owner] for r in matrix.risks],
            [0.20, 0.11, 0.08, 0.08, 0.11, 0.28, 0.14],
        )

    # ------------------------------------------------------------------
    # Donor proposal tables
    # ------------------------------------------------------------------

    @staticmethod
    def _indicator_text(indicators: Sequence[Indicator]) -> str:
        lines = []
        for ind in indicators:
            line = ind.name
            if ind.baseline or ind.target:
                line += f": {ind.baseline or '?'} → {ind.target or '?'}"
            if ind.means_of_verification:
                line += f" ({ind.means_of_verification})"
            lines.append(f"• {line}")
        return "\n".join(lines) or "—"

    def _render_logframe(self, canvas: PageCanvas, frame: LogFrame, lang: str) -> None:
        bullets = lambda items: "\n".join(f"• {a}" for a in items) or "—"  # noqa: E731
        rows = [[
            "Impact", frame.impact or "—", self._indicator_text(frame.impact_indicators),
            bullets(frame.impact_assumptions),
        ]]
        bold = [0]
        for i, outcome in enumerate(frame.outcomes, start=1):
            bold.append(len(rows))
            rows.append([
                f"{_t(lang, 'Effet', 'Outcome')} {i}", outcome.statement,
                self._indicator_text(outcome.indicators), bullets(outcome.assumptions),
            ])
            for j, output in enumerate(outcome.outputs, start=1):
                rows.append([
                    f"{_t(lang, 'Produit', 'Output')} {i}.{j}", output.statement,
                    self._indicator_text(output.indicators), "",
                ])
        self.draw_table(
            canvas,
            [_t(lang, "Niveau", "Level"), _t(lang, "Énoncé", "Statement"),
             _t(lang, "Indicateurs et sources", "Indicators & sources"), _t(lang, "Hypothèses", "Assumptions")],
            rows,
            [0.12, 0.34, 0.34, 0.20],
            bold_rows=bold,
        )

    def _render_me_plan(self, canvas: PageCanvas, plan: MePlan, lang: str) -> None:
        if plan.me_framework:
            self._subheading(canvas, _t(lang, "Cadre de suivi", "Monitoring framework"))
            self.draw_table(
                canvas,
                [_t(lang, "Indicateur", "Indicator"), _t(lang, "Référence", "Baseline"), _t(lang, "Cible", "Target"),
                 _t(lang, "Fréquence", "Frequency"), _t(lang, "Source / méthode", "Source / method"),
                 _t(lang, "Responsable", "Responsible"), _t(lang, "Désagrégation", "Disaggregation")],
                [[m.indicator, m.baseline, m.target, m.frequency,
                  " / ".join(v for v in (m.data_source, m.collection_method) if v), m.responsible, m.disaggregation]
                 for m in plan.me_framework],
                [0.20, 0.11, 0.11, 0.11, 0.19, 0.13, 0.15],
            )
        if plan.evaluations:
            self._subheading(canvas, _t(lang, "Évaluations", "Evaluations"))
            self.draw_table(
                canvas,
                ["Type", _t(lang, "Calendrier", "Timing"), _t(lang, "Objet", "Purpose")],
                [[e.type, e.timing, e.purpose] for e in plan.evaluations],
                [0.25, 0.20, 0.55],
            )
        if plan.reporting:
            self._subheading(canvas, _t(lang, "Rapportage", "Reporting"))
            self.draw_table(
                canvas,
                [_t(lang, "Livrable", "Deliverable"), _t(lang, "Fréquence", "Frequency"),
                 _t(lang, "Destinataires", "Audience")],
                [[r.deliverable, r.frequency, r.audience] for r in plan.reporting],
                [0.40, 0.20, 0.40],
            )

    def _render_sdgs(self, canvas: PageCanvas, alignment: SdgAlignment, lang: str) -> None:
        rows = []
        for goal in alignment.sdgs:
            if not goal.targets:
                rows.append([goal.sdg, "—", "", ""])
            for n, target in enumerate(goal.targets):
                rows.append([goal.sdg if n == 0 else "", target.target, target.contribution, target.project_indicators])
        self.draw_table(
            canvas,
            [_t(lang, "ODD", "SDG"), _t(lang, "Cible", "Target"), _t(lang, "Contribution du projet", "Project contribution"),
             _t(lang, "Indicateurs", "Indicators")],
            rows,
            [0.18, 0.24, 0.34, 0.24],
        )

    def _render_budget(self, canvas: PageCanvas, budget: Budget, lang: str) -> None:
        money = lambda v: format_value(v, "money", lang)  # noqa: E731
        canvas.text(f"{_t(lang, 'Devise', 'Currency')}: {budget.currency}", size=9, color=MUTED)
        canvas.move_down(6)

        rows: List[List[str]] = []
        bold: List[int] = []
        for category in budget.categories:
            for line in category.items:
                rows.append([
                    line.line_item, line.unit, format_value(line.qty, "number", lang),
                    money(line.unit_cost), money(line.total_cost), line.notes,
                ])
            bold.append(len(rows))
            rows.append([f"{_t(lang, 'Sous-total', 'Subtotal')} {category.category}", "", "", "",
                         money(category.total), ""])
        if rows:
            self._subheading(canvas, _t(lang, "Budget détaillé", "Detailed budget"))
            self.draw_table(
                canvas,
                [_t(lang, "Poste", "Line item"), _t(lang, "Unité", "Unit"), _t(lang, "Qté", "Qty"),
                 _t(lang, "Coût unitaire", "Unit cost"), "Total", "Notes"],
                rows,
                [0.28, 0.10, 0.08, 0.15, 0.15, 0.24],
                ["left", "left", "right", "right", "right", "left"],
                bold_rows=bold,
            )

        self._subheading(canvas, _t(lang, "Récapitulatif", "Summary"))
        indirect = _t(lang, "Coûts indirects", "Indirect costs")
        if budget.indirect_rate:
            indirect += f" ({format_value(budget.indirect_rate, 'percent', lang)})"
        self.draw_table(
            canvas,
            ["", f"{_t(lang, 'Montant', 'Amount')} ({budget.currency})", "Notes"],
            [
                [_t(lang, "Coûts directs", "Direct costs"), money(budget.direct_total), ""],
                [indirect, money(budget.indirect_total), budget.indirect_notes],
                [_t(lang, "Total général", "Grand total"), money(budget.grand_total), ""],
            ],
            [0.40, 0.22, 0.38],
            ["left", "right", "left"],
            bold_rows=[2],
        )

        if budget.by_activity:
            self._subheading(canvas, _t(lang, "Répartition par activité", "Breakdown by activity"))
            self.draw_table(
                canvas,
                [_t(lang, "Activité", "Activity"), f"{_t(lang, 'Montant', 'Amount')} ({budget.currency})"],
                [[a.activity, money(a.amount)] for a in budget.by_activity],
                [0.70, 0.30],
                ["left", "right"],
            )

    def _render_workplan(self, canvas: PageCanvas, plan: Workplan, lang: str) -> None:
        self.draw_table(
            canvas,
            [_t(lang, "Activité", "Activity"), _t(lang, "Composante", "Component"), _t(lang, "Mois", "Months"),
             _t(lang, "Jalons", "Milestones"), _t(lang, "Livrables", "Deliverables")],
            [[a.activity, a.component, f"M{a.start_month}–M{a.end_month}",
              "; ".join(a.milestones), "; ".join(a.deliverables)] for a in plan.activities],
            [0.26, 0.16, 0.12, 0.23, 0.23],
        )
        if not plan.activities:
            return

        # monthly columns up to a year, quarters up to three years, then years
        if plan.duration_months <= 12:
            step, prefix = 1, "M"
        elif plan.duration_months <= 36:
            step, prefix = 3, _t(lang, "T", "Q")
        else:
            step, prefix = 12, _t(lang, "A", "Y")
        buckets = [(first, min(first + step - 1, plan.duration_months))
                   for first in range(1, plan.duration_months + 1, step)]
        frac = 0.70 / len(buckets)
        self._subheading(canvas, _t(lang, "Chronogramme", "Timeline"))
        self.draw_table(
            canvas,
            [_t(lang, "Activité", "Activity")] + [f"{prefix}{i}" for i in range(1, len(buckets) + 1)],
            [[a.activity] + ["•" if a.active_in(first, last) else "" for first, last in buckets]
             for a in plan.activities],
            [0.30] + [frac] * len(buckets),
            ["left"] + ["center"] * len(buckets),
        )


def render_pdf_bytes(document: DocumentModel, max_pages: int = 36) -> bytes:
    buffer = io.BytesIO()
    PaginationEngine(max_pages=max_pages).render(document, buffer)
    return buffer.getvalue()
