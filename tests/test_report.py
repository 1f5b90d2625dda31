"""Tests for the yearly PDF report."""

from datetime import datetime
from io import BytesIO
from pathlib import Path

import pytest
from PyPDF2 import PdfReader

from conftest import when
from money_conversations.errors import ExportError
from money_conversations.export import (
    ReportRenderer,
    build_report,
    layout_report,
    render_report_pdf,
    write_report,
)
from money_conversations.config import ReportSettings
from money_conversations.export.report import (
    UNICODE_FONT_CANDIDATES,
    format_entry_date,
    register_report_font,
)
from money_conversations.models.entities import Conversation


def conversation(title, date, **fields):
    return Conversation(title=title, date=date, **fields)


class TestBuildReport:
    """Tests for selecting report entries."""

    def test_selects_year_oldest_first(self):
        """Test only the requested year appears, in date order."""
        conversations = [
            conversation("March", when(2025, 3, 1)),
            conversation("Other year", when(2024, 6, 1)),
            conversation("January", when(2025, 1, 15)),
        ]
        entries = build_report(conversations, 2025)
        assert [e.title for e in entries] == ["January", "March"]

    def test_empty_year_raises(self):
        """Test a year without conversations is an export error."""
        with pytest.raises(ExportError, match="No conversations to export for selected year"):
            build_report([conversation("Old", when(2023, 6, 1))], 2025)

    def test_entry_paragraphs(self):
        """Test goal and outcome lines appear only when set."""
        full = build_report([conversation(
            "Rent", when(2025, 1, 5), goal="Split", outcome="Agreed", emotional_rating=8,
        )], 2025)[0]
        texts = [text for _, text in full.paragraphs()]
        assert texts[0] == "Rent"
        assert "Goal: Split" in texts
        assert "Outcome: Agreed" in texts
        assert texts[-1] == "Emotional Rating: 8/10"

        bare = build_report([conversation("Loan", when(2025, 1, 5))], 2025)[0]
        bare_texts = [text for _, text in bare.paragraphs()]
        assert not any(t.startswith("Goal:") for t in bare_texts)
        assert not any(t.startswith("Outcome:") for t in bare_texts)

    def test_format_entry_date(self):
        """Test abbreviated date with short time."""
        value = datetime(2025, 1, 5, 9, 5).astimezone()
        assert format_entry_date(value) == "Jan 5, 2025 at 9:05 AM"
        evening = datetime(2025, 11, 20, 18, 30).astimezone()
        assert format_entry_date(evening) == "Nov 20, 2025 at 6:30 PM"


class TestLayout:
    """Tests for pagination."""

    def test_title_then_entries_in_order(self, report_settings):
        """Test every entry appears exactly once, in date order."""
        conversations = [
            conversation(f"Entry {day:02d}", when(2025, 1, day), goal="Talk it through")
            for day in range(1, 21)
        ]
        entries = build_report(conversations, 2025)

        pages = layout_report(entries, 2025, report_settings)

        assert pages[0].lines[0].text == "My Money Conversations 2025"
        titles = [
            line.text
            for page in pages
            for line in page.lines
            if line.style == "entry_title"
        ]
        assert titles == [f"Entry {day:02d}" for day in range(1, 21)]
        assert len(pages) > 1

    def test_lines_stay_inside_the_page(self, report_settings):
        """Test no line is placed below the bottom margin."""
        renderer = ReportRenderer(report_settings)
        entries = build_report([
            conversation(f"Entry {day}", when(2025, 2, day), goal="word " * 150)
            for day in range(1, 6)
        ], 2025)

        for page in renderer.layout(entries, 2025):
            for line in page.lines:
                assert line.y + renderer.line_height(line.style) <= (
                    renderer.page_height - renderer.margin
                )

    def test_long_text_wraps(self, report_settings):
        """Test long goals wrap to the content width."""
        renderer = ReportRenderer(report_settings)
        lines = renderer.wrap("word " * 200, "body")
        assert len(lines) > 1
        assert all(
            renderer.text_width(line, "body") <= renderer.content_width
            for line in lines
        )

    def test_unbreakable_word_is_split(self, report_settings):
        """Test a single word wider than the page is broken up."""
        renderer = ReportRenderer(report_settings)
        lines = renderer.wrap("x" * 500, "body")
        assert len(lines) > 1
        assert "".join(lines) == "x" * 500

    def test_page_size_is_letter(self, report_settings):
        """Test 8.5x11 inch pages measured in points."""
        renderer = ReportRenderer(report_settings)
        assert (renderer.page_width, renderer.page_height) == (612, 792)
        assert renderer.margin == 72


class TestRender:
    """Tests for PDF output."""

    def test_render_pdf(self, report_settings):
        """Test the output is a PDF document."""
        data = render_report_pdf(
            [conversation("Rent", when(2025, 1, 5), goal="Split")],
            2025,
            report_settings,
        )
        assert data.startswith(b"%PDF")

    def test_render_empty_year_raises(self, report_settings):
        """Test rendering an empty year fails before drawing."""
        with pytest.raises(ExportError):
            render_report_pdf([], 2025, report_settings)

    def test_write_report(self, report_settings, tmp_path):
        """Test writing to a directory picks a dated file name."""
        path = write_report(
            [conversation("Rent", when(2025, 1, 5))],
            2025,
            tmp_path,
            report_settings,
        )
        assert path.name.startswith("MoneyConversations_2025_")
        assert path.read_bytes().startswith(b"%PDF")

    def test_text_is_extractable(self, report_settings):
        """Test titles and fields land in the PDF text layer."""
        data = render_report_pdf(
            [conversation("Rent split UNIQUE", when(2025, 1, 5), goal="Fair share")],
            2025,
            report_settings,
        )
        text = pdf_text(data)
        assert "My Money Conversations 2025" in text
        assert "UNIQUE" in text
        assert "Fair share" in text
        assert "Emotional Rating: 5/10" in text

    def test_every_entry_once_in_order(self, report_settings):
        """Test extracted entries appear exactly once, oldest first."""
        conversations = [
            conversation(f"Topic{day:02d}", when(2025, 3, day)) for day in range(12, 0, -1)
        ]
        text = pdf_text(render_report_pdf(conversations, 2025, report_settings))
        positions = [text.index(f"Topic{day:02d}") for day in range(1, 13)]
        assert positions == sorted(positions)
        assert all(text.count(f"Topic{day:02d}") == 1 for day in range(1, 13))

    def test_non_latin_titles_keep_their_glyphs(self):
        """Test Cyrillic text survives when a Unicode font is available."""
        font = next((p for p in UNICODE_FONT_CANDIDATES if Path(p).is_file()), None)
        if font is None:
            pytest.skip("no Unicode TrueType font installed")
        settings = ReportSettings(font_path=font)

        text = pdf_text(render_report_pdf(
            [conversation("Аренда ПЖД", when(2025, 1, 5))], 2025, settings,
        ))

        assert "Аренда ПЖД" in text

    def test_missing_font_path_raises(self):
        """Test a configured font that cannot be loaded is an export error."""
        with pytest.raises(ExportError, match="report font"):
            register_report_font(Path("/nonexistent/font.ttf"))


def pdf_text(data):
    return "\n".join(page.extract_text() for page in PdfReader(BytesIO(data)).pages)
