"""Tests for document conversion"""

import zipfile

import pytest

from fastfile.core.exceptions import UnsupportedFormatError
from fastfile.core.types import StructuredContent
from fastfile.services.capabilities import CapabilitySet
from fastfile.services.converters.document import (
    FALLBACK_PARAGRAPH,
    DocumentConverter,
    parse_docx,
    parse_html,
    parse_markdown,
    parse_rtf,
    parse_text,
    render_markdown,
    render_odt,
    render_rtf,
)


@pytest.fixture
def document_converter(test_settings):
    return DocumentConverter(test_settings)


@pytest.fixture
def team_notes():
    """Plain text whose middle paragraph starts with a hash"""
    return "Team Notes\n\n#1 priority is shipping on time.\n\nEverything else waits.\n"


@pytest.mark.unit
class TestParsers:
    """Built-in parsers"""

    def test_parse_text(self, temp_dir, sample_text):
        path = temp_dir / "report.txt"
        path.write_text(sample_text, encoding="utf-8")

        content = parse_text(path, ".txt")

        assert content.title == "Quarterly Report"
        assert content.paragraphs == [
            "Revenue grew in every region this quarter.",
            "Costs stayed flat while headcount increased slightly.",
            "The outlook for next quarter is stable.",
        ]

    def test_parse_markdown_ignores_footer(self, temp_dir):
        path = temp_dir / "notes.md"
        path.write_text(
            "# Notes\n\nFirst point.\n\n## Details\n\nSecond point.\n\n---\n"
            "*Converted from TXT by FastFile*\n",
            encoding="utf-8",
        )

        content = parse_markdown(path, ".md")

        assert content.title == "Notes"
        assert content.paragraphs == ["First point.", "Second point."]

    def test_parse_markdown_hash_paragraphs(self, temp_dir):
        """Only '#' followed by whitespace starts a heading"""
        path = temp_dir / "notes.md"
        path.write_text(
            "#1 priority is shipping on time.\n\n# Team Notes\n\n\\#2 is testing.\n\n#hashtag stays\n",
            encoding="utf-8",
        )

        content = parse_markdown(path, ".md")

        assert content.title == "Team Notes"
        assert content.paragraphs == [
            "#1 priority is shipping on time.",
            "#2 is testing.",
            "#hashtag stays",
        ]

    def test_parse_html(self, temp_dir):
        path = temp_dir / "page.html"
        path.write_text(
            "<html><head><title>Page</title></head><body>"
            "<script>var x = 1;</script><h1>Page</h1><p>Hello &amp; welcome.</p><p>Bye.</p>"
            "</body></html>",
            encoding="utf-8",
        )

        content = parse_html(path, ".html")

        assert content.title == "Page"
        assert content.paragraphs == ["Hello & welcome.", "Bye."]

    def test_parse_docx_builtin(self, sample_docx):
        content = parse_docx(sample_docx, ".docx")

        assert content.title == "Quarterly Report"
        assert content.paragraphs == [
            "Revenue grew in every region this quarter.",
            "The outlook for next quarter is stable.",
        ]

    def test_rtf_round_trip(self, temp_dir):
        path = temp_dir / "letter.rtf"
        render_rtf(
            StructuredContent(title="Letter", paragraphs=["Dear reader,", "Thanks."]),
            path,
            ".txt",
        )

        content = parse_rtf(path, ".rtf")

        assert content.title == "Letter"
        assert content.paragraphs[:2] == ["Dear reader,", "Thanks."]


@pytest.mark.unit
class TestRenderers:

    def test_render_markdown_footer(self, temp_dir):
        path = temp_dir / "out.md"
        render_markdown(StructuredContent(title="T", paragraphs=["A", "B"]), path, ".docx")

        assert path.read_text(encoding="utf-8") == (
            "# T\n\nA\n\nB\n\n---\n*Converted from DOCX by FastFile*\n"
        )

    def test_render_markdown_escapes_leading_hash(self, temp_dir):
        path = temp_dir / "out.md"
        render_markdown(
            StructuredContent(title="T", paragraphs=["#1 priority", "A # B"]), path, ".txt"
        )

        assert path.read_text(encoding="utf-8").startswith("# T\n\n\\#1 priority\n\nA # B\n")

    def test_render_odt_is_a_package(self, temp_dir):
        path = temp_dir / "out.odt"
        render_odt(StructuredContent(title="T", paragraphs=["A"]), path, ".txt")

        with zipfile.ZipFile(path) as package:
            names = package.namelist()
            assert names[0] == "mimetype"
            assert package.read("mimetype") == b"application/vnd.oasis.opendocument.text"
            assert "content.xml" in names


@pytest.mark.unit
class TestDocumentConverter:
    """Chain level behaviour for documents"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text_fixture", ["sample_text", "team_notes"])
    async def test_text_markdown_round_trip(self, document_converter, temp_dir, request, text_fixture):
        """txt -> md -> txt keeps the title and the paragraph sequence"""
        source = temp_dir / "report.txt"
        source.write_text(request.getfixturevalue(text_fixture), encoding="utf-8")
        original = parse_text(source, ".txt")

        markdown = await document_converter.convert(source, temp_dir / "report.md", ".txt", ".md")
        text = await document_converter.convert(markdown, temp_dir / "back.txt", ".md", ".txt")

        round_tripped = parse_text(text, ".txt")
        assert round_tripped.title == original.title
        assert round_tripped.paragraphs == original.paragraphs

    @pytest.mark.asyncio
    async def test_docx_to_markdown_builtin(self, document_converter, temp_dir, sample_docx):
        output = await document_converter.convert(
            sample_docx, temp_dir / "report.md", ".docx", ".md"
        )

        markdown = output.read_text(encoding="utf-8")
        assert markdown.startswith("# Quarterly Report\n")
        assert "Revenue grew in every region this quarter." in markdown
        assert markdown.rstrip().endswith("*Converted from DOCX by FastFile*")

    @pytest.mark.asyncio
    async def test_docx_output_with_library(self, test_settings, temp_dir, sample_text):
        from docx import Document

        converter = DocumentConverter(
            test_settings,
            CapabilitySet(backends=frozenset({"builtin", "library", "python-docx"})),
        )
        source = temp_dir / "report.txt"
        source.write_text(sample_text, encoding="utf-8")

        output = await converter.convert(source, temp_dir / "report.docx", ".txt", ".docx")

        texts = [p.text for p in Document(str(output)).paragraphs]
        assert texts[0] == "Quarterly Report"
        assert "The outlook for next quarter is stable." in texts

    @pytest.mark.asyncio
    async def test_template_output_with_library(self, test_settings, temp_dir, sample_text):
        converter = DocumentConverter(
            test_settings,
            CapabilitySet(backends=frozenset({"builtin", "library", "python-docx"})),
        )
        source = temp_dir / "report.txt"
        source.write_text(sample_text, encoding="utf-8")

        assert ".dotx" in converter.supported_output_formats(converter.capabilities)
        output = await converter.convert(source, temp_dir / "report.dotx", ".txt", ".dotx")

        content = parse_docx(output, ".dotx")
        assert content.title == "Quarterly Report"
        assert "The outlook for next quarter is stable." in content.paragraphs

    @pytest.mark.asyncio
    async def test_unparseable_input_degrades_to_placeholder(self, document_converter, temp_dir):
        source = temp_dir / "broken.docx"
        source.write_bytes(b"not a zip file")

        output = await document_converter.convert(source, temp_dir / "broken.md", ".docx", ".md")

        markdown = output.read_text(encoding="utf-8")
        assert "# Converted DOCX Document" in markdown
        assert FALLBACK_PARAGRAPH in markdown

    @pytest.mark.asyncio
    async def test_pdf_output_needs_office_suite(self, document_converter, temp_dir):
        source = temp_dir / "report.txt"
        source.write_text("Title\n\nBody text.", encoding="utf-8")

        with pytest.raises(UnsupportedFormatError) as exc_info:
            await document_converter.convert(source, temp_dir / "report.pdf", ".txt", ".pdf")

        assert "Output format .pdf is not supported for document files" in str(exc_info.value)
