"""
Yearly PDF Report

Renders one year's conversations, oldest first, as a paginated US Letter
document:

    My Money Conversations 2025

    Rent split
    Jan 5, 2025 at 10:00 AM

    Goal: Agree on a fair split
    Outcome: 60/40 split
    Emotional Rating: 8/10
    ----------------------------------------

Layout happens in two steps. layout() wraps and positions every line into
pages; render() draws those pages with a reportlab canvas. Keeping them
apart lets the pagination be checked without decoding a PDF.

Text is drawn with an embedded TrueType font, so the PDF has a real text
layer and non-Latin titles keep their glyphs. The font is the configured
font_path if set, else the first Unicode font found on the system, else the
Vera font bundled with reportlab.

Pagination: a new entry starts on a fresh page once the cursor is within
300pt of the bottom edge, or when the entry would not fit in what is left
but does fit on an empty page. An entry taller than a whole page flows
line by line across pages.
"""

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import NamedTuple, Optional, Union

import structlog
from pydantic import BaseModel, Field
from reportlab.lib.colors import Color
from reportlab.lib.units import inch
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas as pdf_canvas

from money_conversations.config import ReportSettings, get_settings
from money_conversations.errors import ExportError
from money_conversations.models.entities import Conversation, MAX_EMOTIONAL_RATING

logger = structlog.get_logger(__name__)

# Sizes in points
TITLE_SIZE = 24
ENTRY_TITLE_SIZE = 16
BODY_SIZE = 12

TITLE_GAP = 30
ENTRY_GAP = 40
SEPARATOR_OFFSET = 20
SEPARATOR_GAP = 10
SEPARATOR_BOTTOM_CLEARANCE = 50
NEW_PAGE_THRESHOLD = 300
LINE_SPACING = 1.2

INK = Color(0, 0, 0)
SECONDARY_INK = Color(0.43, 0.43, 0.43)
SEPARATOR_INK = Color(0.78, 0.78, 0.78)

STYLE_SIZES = {
    "title": TITLE_SIZE,
    "entry_title": ENTRY_TITLE_SIZE,
    "secondary": BODY_SIZE,
    "body": BODY_SIZE,
}

# Tried in order when no font_path is configured
UNICODE_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "C:/Windows/Fonts/arial.ttf",
)
BUNDLED_FONT = "Vera.ttf"

NO_ENTRIES_MESSAGE = "No conversations to export for selected year"


def register_report_font(font_path: Optional[Path] = None) -> str:
    """
    Register the report's TrueType font with reportlab and return its name.

    Raises:
        ExportError: If a configured font_path cannot be loaded
    """
    if font_path is not None:
        candidates = [str(font_path)]
    else:
        candidates = [p for p in UNICODE_FONT_CANDIDATES if Path(p).is_file()]
        candidates.append(BUNDLED_FONT)

    for candidate in candidates:
        name = f"Report-{Path(candidate).stem}"
        if name in pdfmetrics.getRegisteredFontNames():
            return name
        try:
            pdfmetrics.registerFont(TTFont(name, candidate))
        except (TTFError, OSError) as e:
            if font_path is not None:
                raise ExportError(f"Failed to load report font {font_path}: {e}") from e
            logger.warning("report_font_unusable", path=candidate, error=str(e))
            continue
        logger.debug("report_font_registered", name=name, path=candidate)
        return name

    raise ExportError("No usable report font found")


def format_entry_date(value: datetime) -> str:
    """Abbreviated date with short time, e.g. 'Jan 5, 2025 at 9:05 AM'."""
    local = value.astimezone()
    hour = local.hour % 12 or 12
    return (
        f"{local:%b} {local.day}, {local.year} at "
        f"{hour}:{local:%M} {local:%p}"
    )


def report_title(year: int) -> str:
    return f"My Money Conversations {year}"


def report_file_name(year: int, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"MoneyConversations_{year}_{int(now.timestamp())}.pdf"


# =============================================================================
# REPORT CONTENT
# =============================================================================

class ReportEntry(BaseModel):
    """The fields of one conversation that appear in the report."""

    title: str
    date: datetime
    goal: Optional[str] = None
    outcome: Optional[str] = None
    emotional_rating: int = Field(..., ge=1, le=MAX_EMOTIONAL_RATING)

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ReportEntry":
        return cls(
            title=conversation.title,
            date=conversation.date,
            goal=conversation.goal,
            outcome=conversation.outcome,
            emotional_rating=conversation.emotional_rating,
        )

    def paragraphs(self) -> list[tuple[str, str]]:
        """(style, text) pairs; an empty text is a blank line."""
        rows = [
            ("entry_title", self.title),
            ("secondary", format_entry_date(self.date)),
            ("body", ""),
        ]
        if self.goal:
            rows.append(("body", f"Goal: {self.goal}"))
        if self.outcome:
            rows.append(("body", f"Outcome: {self.outcome}"))
        rows.append((
            "body",
            f"Emotional Rating: {self.emotional_rating}/{MAX_EMOTIONAL_RATING}",
        ))
        return rows


def build_report(conversations: list[Conversation], year: int) -> list[ReportEntry]:
    """
    Select the conversations of `year` (local calendar), oldest first.

    Raises:
        ExportError: If no conversation falls in `year`
    """
    selected = sorted(
        (c for c in conversations if c.date.astimezone().year == year),
        key=lambda c: c.date,
    )
    if not selected:
        raise ExportError(NO_ENTRIES_MESSAGE)
    return [ReportEntry.from_conversation(c) for c in selected]


# =============================================================================
# LAYOUT
# =============================================================================

class PlacedLine(NamedTuple):
    style: str
    text: str
    x: float
    y: float


class ReportPage(BaseModel):
    """Everything drawn on one page, in points from the top-left corner."""

    lines: list[PlacedLine] = Field(default_factory=list)
    separators: list[float] = Field(default_factory=list)

    def texts(self) -> list[str]:
        return [line.text for line in self.lines if line.text]


class ReportRenderer:
    """Lays out and renders the yearly report."""

    def __init__(self, settings: Optional[ReportSettings] = None):
        self._settings = settings or get_settings().report
        self.font_name = register_report_font(self._settings.font_path)

        self.page_width = self._settings.page_width_in * inch
        self.page_height = self._settings.page_height_in * inch
        self.margin = float(self._settings.margin_pt)

    def text_width(self, text: str, style: str) -> float:
        return pdfmetrics.stringWidth(text, self.font_name, STYLE_SIZES[style])

    def line_height(self, style: str) -> float:
        return STYLE_SIZES[style] * LINE_SPACING

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    def wrap(self, text: str, style: str) -> list[str]:
        """Greedy word wrap to the content width; blank text is one blank line."""
        width = self.content_width
        lines: list[str] = []

        for paragraph in text.split("\n"):
            current = ""
            for word in paragraph.split():
                candidate = f"{current} {word}" if current else word
                if self.text_width(candidate, style) <= width:
                    current = candidate
                    continue
                if current:
                    lines.append(current)
                # A single word wider than the page is broken by characters
                while self.text_width(word, style) > width:
                    cut = len(word) - 1
                    while cut > 1 and self.text_width(word[:cut], style) > width:
                        cut -= 1
                    lines.append(word[:cut])
                    word = word[cut:]
                current = word
            lines.append(current)

        return lines

    def _entry_lines(self, entry: ReportEntry) -> list[tuple[str, str]]:
        lines = []
        for style, text in entry.paragraphs():
            for wrapped in self.wrap(text, style):
                lines.append((style, wrapped))
        lines.append(("body", ""))
        return lines

    def layout(self, entries: list[ReportEntry], year: int) -> list[ReportPage]:
        """Position the title and every entry line onto pages."""
        bottom = self.page_height - self.margin
        pages = [ReportPage()]
        y = self.margin

        pages[-1].lines.append(PlacedLine("title", report_title(year), self.margin, y))
        y += self.line_height("title") + TITLE_GAP

        for index, entry in enumerate(entries):
            lines = self._entry_lines(entry)
            height = sum(self.line_height(style) for style, _ in lines)

            near_bottom = y > self.page_height - NEW_PAGE_THRESHOLD
            fits_fresh_page = height <= bottom - self.margin
            if near_bottom or (y + height > bottom and fits_fresh_page and y > self.margin):
                pages.append(ReportPage())
                y = self.margin

            for style, text in lines:
                line_height = self.line_height(style)
                if y + line_height > bottom and y > self.margin:
                    pages.append(ReportPage())
                    y = self.margin
                pages[-1].lines.append(PlacedLine(style, text, self.margin, y))
                y += line_height

            y += ENTRY_GAP

            if index < len(entries) - 1:
                separator_y = y - SEPARATOR_OFFSET
                if separator_y < self.page_height - SEPARATOR_BOTTOM_CLEARANCE:
                    pages[-1].separators.append(separator_y)
                    y += SEPARATOR_GAP

        return pages

    # =========================================================================
    # RENDERING
    # =========================================================================

    def _draw_page(self, c: pdf_canvas.Canvas, page: ReportPage) -> None:
        for line in page.lines:
            if not line.text:
                continue
            size = STYLE_SIZES[line.style]
            # Layout measures from the top; the canvas origin is bottom-left
            baseline = self.page_height - line.y - size
            c.setFillColor(SECONDARY_INK if line.style == "secondary" else INK)
            c.setFont(self.font_name, size)
            c.drawString(line.x, baseline, line.text)

        c.setStrokeColor(SEPARATOR_INK)
        c.setLineWidth(0.5)
        for separator_y in page.separators:
            y = self.page_height - separator_y
            c.line(self.margin, y, self.page_width - self.margin, y)

    def render(self, pages: list[ReportPage], year: int) -> bytes:
        """Draw the pages onto one PDF document."""
        out = BytesIO()
        c = pdf_canvas.Canvas(
            out,
            pagesize=(self.page_width, self.page_height),
            pageCompression=1 if self._settings.compress_pages else 0,
        )
        c.setTitle(report_title(year))
        c.setAuthor(self._settings.author)
        c.setCreator(self._settings.creator)

        try:
            for page in pages:
                self._draw_page(c, page)
                c.showPage()
            c.save()
        except (OSError, ValueError) as e:
            raise ExportError(f"Failed to create PDF: {e}") from e

        data = out.getvalue()
        if not data:
            raise ExportError("PDF file is empty")
        return data


# =============================================================================
# ENTRY POINTS
# =============================================================================

def layout_report(
    entries: list[ReportEntry],
    year: int,
    settings: Optional[ReportSettings] = None,
) -> list[ReportPage]:
    return ReportRenderer(settings).layout(entries, year)


def render_report_pdf(
    conversations: list[Conversation],
    year: int,
    settings: Optional[ReportSettings] = None,
) -> bytes:
    """
    Build, lay out and render the report for `year`.

    Raises:
        ExportError: No conversations in `year`, or the PDF could not be made
    """
    entries = build_report(conversations, year)
    renderer = ReportRenderer(settings)
    pages = renderer.layout(entries, year)
    data = renderer.render(pages, year)

    logger.info(
        "report_rendered",
        year=year,
        entries=len(entries),
        pages=len(pages),
        size_bytes=len(data),
    )
    return data


def write_report(
    conversations: list[Conversation],
    year: int,
    path: Union[str, Path],
    settings: Optional[ReportSettings] = None,
) -> Path:
    """Render the report to `path`; a directory gets a timestamped name."""
    target = Path(path)
    if target.is_dir():
        target = target / report_file_name(year)

    data = render_report_pdf(conversations, year, settings)
    try:
        target.write_bytes(data)
    except OSError as e:
        raise ExportError(f"Failed to write PDF: {e}") from e
    return target
