"""
Buffered page model on top of reportlab.

Layout happens against an in-memory list of pages so earlier pages can be
revisited (table-of-contents backfill, header/footer passes) and trailing
pages removed before anything is written.  ``to_pdf`` replays the recorded
drawing operations onto a reportlab ``Canvas``.

Coordinates are top-left based: ``y`` grows downwards from the top edge of
the page, the way text flows.  The conversion to PDF space happens only at
replay time.

Every text write that puts visible characters on a page fires the content
listener with the page index, unless it happens inside ``decorative()``.
Header/footer drawing goes through ``chrome()``, which is decorative and
tags its operations so a later pass can replace them.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas as rl_canvas

logger = logging.getLogger(__name__)

ContentListener = Callable[[int], None]

ELLIPSIS = "…"


@dataclasses.dataclass
class DrawOp:
    kind: str  # text | line | rect
    args: Dict[str, Any]
    chrome: bool = False


@dataclasses.dataclass
class Page:
    ops: List[DrawOp] = dataclasses.field(default_factory=list)


class PageCanvas:
    """A4 page buffer with a flowing text cursor."""

    def __init__(
        self,
        page_size: Tuple[float, float] = A4,
        margin: float = 56,
        font: str = "Helvetica",
        bold_font: str = "Helvetica-Bold",
        on_content: Optional[ContentListener] = None,
    ) -> None:
        self.width, self.height = page_size
        self.margin = margin
        self.font = font
        self.bold_font = bold_font
        self.on_content = on_content

        self.pages: List[Page] = []
        self.page_index = -1
        self.x = margin
        self.y = margin
        self._decorative_depth = 0
        self._chrome_depth = 0

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def left(self) -> float:
        return self.margin

    @property
    def right(self) -> float:
        return self.width - self.margin

    @property
    def top(self) -> float:
        return self.margin

    @property
    def bottom(self) -> float:
        return self.height - self.margin

    @property
    def content_width(self) -> float:
        return self.right - self.left

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def remaining(self) -> float:
        return self.bottom - self.y

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def add_page(self) -> int:
        self.pages.append(Page())
        self.page_index = len(self.pages) - 1
        self.x, self.y = self.left, self.top
        return self.page_index

    def switch_to(self, index: int) -> None:
        if not 0 <= index < len(self.pages):
            raise IndexError(f"page {index} out of range (0..{len(self.pages) - 1})")
        self.page_index = index
        self.x, self.y = self.left, self.top

    def remove_page(self, index: int) -> None:
        del self.pages[index]
        if self.page_index >= len(self.pages):
            self.page_index = len(self.pages) - 1

    def ensure_space(self, needed: float) -> bool:
        """Start a new page if *needed* points do not fit below the cursor.  Returns True on a break."""
        if self.y + needed > self.bottom:
            self.add_page()
            return True
        return False

    def move_down(self, amount: float) -> None:
        self.y += amount

    @contextlib.contextmanager
    def preserve_cursor(self) -> Iterator[None]:
        saved = (self.page_index, self.x, self.y)
        try:
            yield
        finally:
            self.page_index, self.x, self.y = saved

    # ------------------------------------------------------------------
    # Content tracking
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def decorative(self) -> Iterator[None]:
        """Writes inside this block never count as page content."""
        self._decorative_depth += 1
        try:
            yield
        finally:
            self._decorative_depth -= 1

    @contextlib.contextmanager
    def chrome(self) -> Iterator[None]:
        """Decorative, and tagged so ``clear_chrome`` can remove it later."""
        self._chrome_depth += 1
        try:
            with self.decorative():
                yield
        finally:
            self._chrome_depth -= 1

    def clear_chrome(self, index: int) -> None:
        page = self.pages[index]
        page.ops = [op for op in page.ops if not op.chrome]

    def _record(self, kind: str, **args: Any) -> None:
        self.pages[self.page_index].ops.append(DrawOp(kind, args, chrome=self._chrome_depth > 0))

    def _touch(self, text: str) -> None:
        if self._decorative_depth == 0 and text.strip() and self.on_content is not None:
            self.on_content(self.page_index)

    # ------------------------------------------------------------------
    # Measurement
    # ------------------------------------------------------------------

    @staticmethod
    def line_height(size: float, line_gap: float = 2) -> float:
        return size * 1.2 + line_gap

    def string_width(self, text: str, font: Optional[str] = None, size: float = 10) -> float:
        return stringWidth(text, font or self.font, size)

    def wrap(self, text: str, width: float, font: Optional[str] = None, size: float = 10) -> List[str]:
        lines: List[str] = []
        for paragraph in (text or "").split("\n"):
            if not paragraph.strip():
                lines.append("")
                continue
            lines.extend(simpleSplit(paragraph, font or self.font, size, width) or [""])
        return lines

    def measure(
        self, text: str, width: float, font: Optional[str] = None, size: float = 10, line_gap: float = 2
    ) -> float:
        """Height the wrapped *text* would take at *width*."""
        return len(self.wrap(text, width, font, size)) * self.line_height(size, line_gap)

    def fit_line(self, text: str, width: float, font: Optional[str] = None, size: float = 10) -> str:
        """Single line, cut with an ellipsis if wider than *width*."""
        text = " ".join((text or "").split())
        font = font or self.font
        if stringWidth(text, font, size) <= width:
            return text
        while text and stringWidth(text + ELLIPSIS, font, size) > width:
            text = text[:-1]
        return text.rstrip() + ELLIPSIS if text else ""

    # ------------------------------------------------------------------
    # Drawing primitives
    # ------------------------------------------------------------------

    def text(
        self,
        text: str,
        x: Optional[float] = None,
        y: Optional[float] = None,
        width: Optional[float] = None,
        font: Optional[str] = None,
        size: float = 10,
        color: str = "#1a1a1a",
        align: str = "left",
        line_gap: float = 2,
        ellipsis: bool = False,
    ) -> float:
        """
        Write *text* and return the height used.

        Flow mode (``y`` omitted): lines are written at the cursor, the
        cursor advances, and a new page starts whenever the next line would
        cross the bottom margin.  Positioned mode (``y`` given): lines are
        drawn exactly there and neither the cursor nor the page changes.
        ``ellipsis`` forces a single line cut to *width*.
        """
        font = font or self.font
        x = self.left if x is None else x
        width = (self.right - x) if width is None else width
        lh = self.line_height(size, line_gap)
        lines = [self.fit_line(text, width, font, size)] if ellipsis else self.wrap(text, width, font, size)

        if y is not None:
            for i, line in enumerate(lines):
                self._draw_line(line, x, y + i * lh, width, font, size, color, align)
            return len(lines) * lh

        used = 0.0
        for line in lines:
            if self.y + lh > self.bottom:
                self.add_page()
            self._draw_line(line, x, self.y, width, font, size, color, align)
            self.y += lh
            used += lh
        return used

    def _draw_line(
        self, line: str, x: float, y: float, width: float, font: str, size: float, color: str, align: str
    ) -> None:
        if not line:
            return
        self._record("text", text=line, x=x, y=y, width=width, font=font, size=size, color=color, align=align)
        self._touch(line)

    def line(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        width: float = 0.5,
        color: str = "#999999",
        dash: Optional[Tuple[float, float]] = None,
    ) -> None:
        self._record("line", x1=x1, y1=y1, x2=x2, y2=y2, width=width, color=color, dash=dash)

    def rect(
        self,
        x: float,
        y: float,
        w: float,
        h: float,
        stroke: Optional[str] = "#cccccc",
        fill: Optional[str] = None,
        fill_opacity: float = 1.0,
        line_width: float = 0.5,
    ) -> None:
        self._record(
            "rect", x=x, y=y, w=w, h=h, stroke=stroke, fill=fill,
            fill_opacity=fill_opacity, line_width=line_width,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def page_texts(self, index: int, include_chrome: bool = True) -> List[str]:
        """Text strings recorded on a page, in drawing order."""
        return [
            op.args["text"]
            for op in self.pages[index].ops
            if op.kind == "text" and (include_chrome or not op.chrome)
        ]

    def to_pdf(self, stream: BinaryIO, title: str = "", author: str = "") -> None:
        """Replay every buffered page onto a reportlab canvas writing to *stream*."""
        c = rl_canvas.Canvas(stream, pagesize=(self.width, self.height))
        if title:
            c.setTitle(title)
        if author:
            c.setAuthor(author)
        for page in self.pages:
            for op in page.ops:
                self._replay(c, op)
            c.showPage()
        c.save()

    def _replay(self, c: rl_canvas.Canvas, op: DrawOp) -> None:
        a = op.args
        if op.kind == "text":
            c.setFont(a["font"], a["size"])
            c.setFillColor(colors.HexColor(a["color"]))
            baseline = self.height - (a["y"] + a["size"] * 0.85)
            if a["align"] == "right":
                c.drawRightString(a["x"] + a["width"], baseline, a["text"])
            elif a["align"] == "center":
                c.drawCentredString(a["x"] + a["width"] / 2, baseline, a["text"])
            else:
                c.drawString(a["x"], baseline, a["text"])
        elif op.kind == "line":
            c.saveState()
            c.setLineWidth(a["width"])
            c.setStrokeColor(colors.HexColor(a["color"]))
            if a["dash"]:
                c.setDash(*a["dash"])
            c.line(a["x1"], self.height - a["y1"], a["x2"], self.height - a["y2"])
            c.restoreState()
        elif op.kind == "rect":
            c.saveState()
            c.setLineWidth(a["line_width"])
            if a["fill"]:
                c.setFillColor(colors.HexColor(a["fill"]))
                c.setFillAlpha(a["fill_opacity"])
            if a["stroke"]:
                c.setStrokeColor(colors.HexColor(a["stroke"]))
            c.rect(
                a["x"], self.height - a["y"] - a["h"], a["w"], a["h"],
                stroke=1 if a["stroke"] else 0,
                fill=1 if a["fill"] else 0,
            )
            c.restoreState()
