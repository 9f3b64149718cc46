"""Document conversion through a structured parse -> render pipeline

Every supported input is parsed into StructuredContent (a title plus
ordered paragraphs) and every supported output is rendered from it, so any
input can be combined with any output.
"""

import html
import re
import zipfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape as xml_escape

from ...core.config import Settings
from ...core.exceptions import BackendFailure
from ...core.logger import get_logger
from ...core.types import ConversionJob, FileCategory, StructuredContent
from ..capabilities import CapabilitySet, probe_module
from .base import ConverterBackend, ConverterChain, run_blocking
from .office import convert_with_libreoffice, probe_libreoffice

logger = get_logger(__name__)

PRODUCT_NAME = "FastFile"
FALLBACK_PARAGRAPH = "Basic content extraction"

Parser = Callable[[Path, str], StructuredContent]
Renderer = Callable[[StructuredContent, Path, str], None]

_FOOTER_LINE = re.compile(
    rf"^[-*_\s]*Converted (?:from \S+ )?by {PRODUCT_NAME}[-*_\s]*$", re.IGNORECASE
)
_DECORATION_LINE = re.compile(r"^(?:=+|-{3,}|\*{3,}|_{3,})$")
# ATX heading: up to six hashes, then whitespace or end of line
_ATX_HEADING = re.compile(r"^#{1,6}(?:\s+(.*?))?(?:\s+#+)?\s*$")
_TAG = re.compile(r"<[^>]+>")


def source_label(input_format: str) -> str:
    """'.docx' -> 'DOCX'"""
    return input_format.lstrip(".").upper() or "UNKNOWN"


def footer_text(input_format: str) -> str:
    return f"Converted from {source_label(input_format)} by {PRODUCT_NAME}"


def is_footer(text: str) -> bool:
    return bool(_FOOTER_LINE.match(text.strip()))


def placeholder(input_format: str) -> StructuredContent:
    """Content used when an input cannot be parsed"""
    return StructuredContent(
        title=f"Converted {source_label(input_format)} Document",
        paragraphs=[FALLBACK_PARAGRAPH],
    )


def read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8-sig", errors="replace")


def text_blocks(text: str, skip: Callable[[str], bool] = lambda line: False) -> List[List[str]]:
    """
    Group lines into blank-line separated blocks

    Footer lines, setext/rule decorations and lines rejected by `skip`
    act as separators.
    """
    blocks: List[List[str]] = []
    current: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or is_footer(line) or _DECORATION_LINE.match(line) or skip(line):
            if current:
                blocks.append(current)
                current = []
            continue
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _join(block: Sequence[str]) -> str:
    return " ".join(block)


def _without_leading_title(title: str, paragraphs: List[str]) -> List[str]:
    if paragraphs and paragraphs[0] == title:
        return paragraphs[1:]
    return paragraphs


# Built-in parsers

def parse_text(path: Path, input_format: str) -> StructuredContent:
    """Title is the first non-empty line, paragraphs are the blocks after it"""
    blocks = text_blocks(read_text(path))
    if not blocks:
        return StructuredContent(title="Text Document", paragraphs=[])
    first = blocks[0]
    paragraphs = [_join(first[1:])] if len(first) > 1 else []
    paragraphs.extend(_join(block) for block in blocks[1:])
    return StructuredContent(title=first[0], paragraphs=paragraphs)


def _is_heading(line: str) -> bool:
    return bool(_ATX_HEADING.match(line))


def _unescape_hash(paragraph: str) -> str:
    """'\\#1 priority' -> '#1 priority'"""
    return paragraph[1:] if paragraph.startswith("\\#") else paragraph


def parse_markdown(path: Path, input_format: str) -> StructuredContent:
    """Title is the first ATX heading; other headings only separate paragraphs"""
    title = None
    text = read_text(path)
    for line in text.splitlines():
        match = _ATX_HEADING.match(line.strip())
        if match and match.group(1):
            title = match.group(1).strip()
            break
    blocks = text_blocks(text, skip=_is_heading)
    return StructuredContent(
        title=title or "Markdown Document",
        paragraphs=[_unescape_hash(_join(block)) for block in blocks],
    )


def parse_html(path: Path, input_format: str) -> StructuredContent:
    text = read_text(path)
    match = re.search(r"<title[^>]*>(.*?)</title>", text, re.IGNORECASE | re.DOTALL)
    if not match:
        match = re.search(r"<h1[^>]*>(.*?)</h1>", text, re.IGNORECASE | re.DOTALL)
    title = html.unescape(_TAG.sub("", match.group(1))).strip() if match else ""

    body = re.sub(
        r"<(head|script|style|footer)\b[^>]*>.*?</\1>", "", text, flags=re.IGNORECASE | re.DOTALL
    )
    body = re.sub(r"<br\s*/?>", "\n", body, flags=re.IGNORECASE)
    body = re.sub(
        r"</(p|div|h[1-6]|li|tr|blockquote|pre|section|article)>",
        "\n\n",
        body,
        flags=re.IGNORECASE,
    )
    body = html.unescape(_TAG.sub("", body))
    paragraphs = [_join(block) for block in text_blocks(body)]

    title = title or "HTML Document"
    return StructuredContent(title=title, paragraphs=_without_leading_title(title, paragraphs))


_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
_TITLE_STYLES = ("title", "heading1", "heading 1")


def _structure_from_styled(
    items: Iterable[Tuple[str, str]],
    default_title: str
) -> StructuredContent:
    """Build content from (style, text) pairs of a word processing document"""
    entries = [(style.lower(), text.strip()) for style, text in items if text.strip()]
    entries = [(style, text) for style, text in entries if not is_footer(text)]
    if not entries:
        return StructuredContent(title=default_title, paragraphs=[])

    title_index = next(
        (i for i, (style, _) in enumerate(entries) if style in _TITLE_STYLES), 0
    )
    title = entries[title_index][1]
    paragraphs = [text for i, (_, text) in enumerate(entries) if i != title_index]
    return StructuredContent(title=title, paragraphs=paragraphs)


def parse_docx(path: Path, input_format: str) -> StructuredContent:
    """Read paragraphs straight from word/document.xml"""
    with zipfile.ZipFile(path) as archive:
        root = ET.fromstring(archive.read("word/document.xml"))

    items = []
    for paragraph in root.iter(f"{_WORD_NS}p"):
        text = "".join(node.text or "" for node in paragraph.iter(f"{_WORD_NS}t"))
        style_node = paragraph.find(f"{_WORD_NS}pPr/{_WORD_NS}pStyle")
        style = style_node.get(f"{_WORD_NS}val", "") if style_node is not None else ""
        items.append((style, text))
    return _structure_from_styled(items, f"Converted {source_label(input_format)} Document")


def parse_doc(path: Path, input_format: str) -> StructuredContent:
    """Scrape readable sentences out of a legacy binary Word file"""
    cleaned = re.sub(r"[^\x20-\x7e\n]", " ", path.read_bytes().decode("latin-1"))
    words = [
        word for word in cleaned.split()
        if len(word) > 2 and re.fullmatch(r"[A-Za-z0-9.,!?'\-]+", word)
    ]
    sentences = [part.strip() for part in " ".join(words).split(".")]
    paragraphs = [f"{sentence}." for sentence in sentences if len(sentence) > 20]
    return StructuredContent(
        title="Converted DOC Document",
        paragraphs=paragraphs or [FALLBACK_PARAGRAPH],
    )


def _xml_text(fragment: str) -> str:
    return html.unescape(_TAG.sub("", fragment)).strip()


def parse_odt(path: Path, input_format: str) -> StructuredContent:
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            content = archive.read("content.xml").decode("utf-8", errors="replace")
    else:
        content = read_text(path)

    heading = re.search(r"<text:h[^>]*>(.*?)</text:h>", content, re.DOTALL)
    title = _xml_text(heading.group(1)) if heading else ""
    paragraphs = [
        _xml_text(match)
        for match in re.findall(r"<text:p[^>]*>(.*?)</text:p>", content, re.DOTALL)
    ]
    paragraphs = [p for p in paragraphs if p and not is_footer(p)]
    return StructuredContent(
        title=title or "Converted ODT Document",
        paragraphs=paragraphs or ["Content could not be fully parsed from ODT format"],
    )


def parse_abw(path: Path, input_format: str) -> StructuredContent:
    content = read_text(path)
    paragraphs = [
        _xml_text(match) for match in re.findall(r"<p\b[^>]*>(.*?)</p>", content, re.DOTALL)
    ]
    paragraphs = [p for p in paragraphs if p and not is_footer(p)]
    if not paragraphs:
        return placeholder(input_format)
    return StructuredContent(title=paragraphs[0], paragraphs=paragraphs[1:])


def _strip_rtf_groups(text: str, destinations: Sequence[str]) -> str:
    """Drop brace groups such as {\\fonttbl ...} including nested braces"""
    pattern = re.compile(r"\{\\(?:\*\\)?(?:%s)\b" % "|".join(destinations))
    while True:
        match = pattern.search(text)
        if not match:
            return text
        depth = 0
        for end in range(match.start(), len(text)):
            if text[end] == "{" and text[end - 1] != "\\":
                depth += 1
            elif text[end] == "}" and text[end - 1] != "\\":
                depth -= 1
                if depth == 0:
                    break
        text = text[:match.start()] + text[end + 1:]


def _decode_rtf_unicode(text: str) -> str:
    text = re.sub(
        r"\\u(-?\d+)\??",
        lambda m: chr(int(m.group(1)) % 65536),
        text,
    )
    text = re.sub(
        r"\\'([0-9a-fA-F]{2})",
        lambda m: bytes.fromhex(m.group(1)).decode("cp1252", errors="replace"),
        text,
    )
    return text.encode("utf-16", "surrogatepass").decode("utf-16", errors="replace")


def parse_rtf(path: Path, input_format: str) -> StructuredContent:
    raw = read_text(path)
    title_match = re.search(r"\{\\b(?:\\fs\d+)?\s+(.*?)\}", raw, re.DOTALL)

    text = _strip_rtf_groups(raw, ("fonttbl", "colortbl", "stylesheet", "info", "generator"))
    text = re.sub(r"\\(?:par|line)\b ?", "\n", text)
    text = _decode_rtf_unicode(text)
    text = text.replace("\\\\", "\x00").replace("\\{", "\x01").replace("\\}", "\x02")
    text = re.sub(r"\\[a-zA-Z]+-?\d* ?", "", text)
    text = text.replace("{", "").replace("}", "")
    text = text.replace("\x00", "\\").replace("\x01", "{").replace("\x02", "}")

    paragraphs = [_join(block) for block in text_blocks(text)]
    if title_match:
        title = _decode_rtf_unicode(title_match.group(1))
        title = re.sub(r"\\([\\{}])", r"\1", title).strip()
    else:
        title = "RTF Document"
    return StructuredContent(title=title, paragraphs=_without_leading_title(title, paragraphs))


_TEX_ESCAPES = {
    "\\": r"\textbackslash{}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
    "#": r"\#", "$": r"\$", "%": r"\%", "&": r"\&", "_": r"\_", "{": r"\{", "}": r"\}",
}


def parse_tex(path: Path, input_format: str) -> StructuredContent:
    source = read_text(path)
    title_match = re.search(r"\\title\{([^}]*)\}", source)

    body_match = re.search(r"\\begin\{document\}(.*?)\\end\{document\}", source, re.DOTALL)
    body = body_match.group(1) if body_match else source

    # Escaped characters are parked on private-use code points while commands are stripped
    parked = {}
    for index, (char, escaped) in enumerate(_TEX_ESCAPES.items()):
        marker = chr(0xE000 + index)
        parked[marker] = char
        body = body.replace(escaped, marker)

    body = re.sub(r"(?<!\\)%.*", "", body)
    body = re.sub(r"\\(?:sub)*section\*?\{([^}]*)\}", r"\n\n\1\n\n", body)
    body = re.sub(r"\\(?:textbf|textit|emph|underline|texttt)\{([^}]*)\}", r"\1", body)
    body = re.sub(r"\\(?:begin|end)\{[^}]*\}", "\n", body)
    body = re.sub(r"\\[a-zA-Z]+\*?(?:\[[^\]]*\])?", "", body)
    body = body.replace("{", "").replace("}", "")
    for marker, char in parked.items():
        body = body.replace(marker, char)

    paragraphs = [_join(block) for block in text_blocks(body)]
    title = title_match.group(1).strip() if title_match else "LaTeX Document"
    return StructuredContent(title=title, paragraphs=paragraphs)


# Library parsers

def parse_docx_with_library(path: Path, input_format: str) -> StructuredContent:
    from docx import Document

    document = Document(str(path))
    items = [
        (paragraph.style.style_id if paragraph.style is not None else "", paragraph.text)
        for paragraph in document.paragraphs
    ]
    return _structure_from_styled(items, f"Converted {source_label(input_format)} Document")


def parse_pdf_with_library(path: Path, input_format: str) -> StructuredContent:
    """First line is the title, longer remaining lines are paragraphs"""
    import fitz

    with fitz.open(str(path)) as document:
        text = "\n".join(page.get_text() for page in document)

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    lines = [line for line in lines if not is_footer(line)]
    if not lines:
        return StructuredContent(title="Converted PDF Document", paragraphs=[FALLBACK_PARAGRAPH])
    return StructuredContent(
        title=lines[0],
        paragraphs=[line for line in lines[1:] if len(line) > 10],
    )


def parse_html_with_library(path: Path, input_format: str) -> StructuredContent:
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(read_text(path), "html.parser")
    title = ""
    if soup.title is not None:
        title = soup.title.get_text(strip=True)
    if not title and soup.h1 is not None:
        title = soup.h1.get_text(" ", strip=True)

    for node in soup(["head", "script", "style", "footer"]):
        node.decompose()

    elements = soup.find_all(["p", "li", "blockquote", "pre", "h2", "h3", "h4", "h5", "h6"])
    if elements:
        paragraphs = [element.get_text(" ", strip=True) for element in elements]
    else:
        paragraphs = [_join(block) for block in text_blocks(soup.get_text("\n"))]
    paragraphs = [p for p in paragraphs if p and not is_footer(p)]

    title = title or "HTML Document"
    return StructuredContent(title=title, paragraphs=_without_leading_title(title, paragraphs))


# Renderers

def render_text(content: StructuredContent, path: Path, input_format: str) -> None:
    body = "\n\n".join(content.paragraphs)
    path.write_text(
        f"{content.title}\n{'=' * len(content.title)}\n\n{body}\n\n"
        f"--- Converted by {PRODUCT_NAME} ---\n",
        encoding="utf-8",
    )


def render_markdown(content: StructuredContent, path: Path, input_format: str) -> None:
    # Leading '#' escaped as '\#'
    body = "\n\n".join(
        f"\\{paragraph}" if paragraph.startswith("#") else paragraph
        for paragraph in content.paragraphs
    )
    path.write_text(
        f"# {content.title}\n\n{body}\n\n---\n*{footer_text(input_format)}*\n",
        encoding="utf-8",
    )


def render_html(content: StructuredContent, path: Path, input_format: str) -> None:
    title = html.escape(content.title)
    paragraphs = "\n".join(f"    <p>{html.escape(p)}</p>" for p in content.paragraphs)
    path.write_text(
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '    <meta charset="UTF-8">\n'
        f"    <title>{title}</title>\n"
        "    <style>\n"
        "        body { font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;"
        " padding: 20px; line-height: 1.6; }\n"
        "        footer { margin-top: 40px; color: #666; font-size: 0.9em; }\n"
        "    </style>\n"
        "</head>\n"
        "<body>\n"
        f"    <h1>{title}</h1>\n"
        f"{paragraphs}\n"
        f'    <footer><p class="converted-by"><em>{html.escape(footer_text(input_format))}'
        "</em></p></footer>\n"
        "</body>\n"
        "</html>\n",
        encoding="utf-8",
    )


def _rtf_escape(text: str) -> str:
    parts = []
    for char in text:
        if char in "\\{}":
            parts.append(f"\\{char}")
        elif ord(char) > 127:
            encoded = char.encode("utf-16-le")
            for i in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[i:i + 2], "little", signed=True)
                parts.append(f"\\u{unit}?")
        else:
            parts.append(char)
    return "".join(parts)


def render_rtf(content: StructuredContent, path: Path, input_format: str) -> None:
    paragraphs = "".join(f"{_rtf_escape(p)}\\par\\par\n" for p in content.paragraphs)
    path.write_text(
        "{\\rtf1\\ansi\\deff0 {\\fonttbl {\\f0 Times New Roman;}}\n"
        "\\f0\\fs24\n"
        f"{{\\b\\fs32 {_rtf_escape(content.title)}}}\\par\\par\n"
        f"{paragraphs}"
        f"{{\\i {_rtf_escape(footer_text(input_format))}}}\\par\n"
        "}\n",
        encoding="ascii",
    )


def _tex_escape(text: str) -> str:
    return "".join(_TEX_ESCAPES.get(char, char) for char in text)


def render_tex(content: StructuredContent, path: Path, input_format: str) -> None:
    paragraphs = "\n\n".join(_tex_escape(p) for p in content.paragraphs)
    path.write_text(
        "\\documentclass{article}\n"
        "\\usepackage[utf8]{inputenc}\n"
        f"\\title{{{_tex_escape(content.title)}}}\n"
        "\\date{}\n"
        "\\begin{document}\n"
        "\\maketitle\n\n"
        f"{paragraphs}\n\n"
        "\\vfill\n"
        f"\\noindent\\textit{{{_tex_escape(footer_text(input_format))}}}\n"
        "\\end{document}\n",
        encoding="utf-8",
    )


_ODT_MANIFEST = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<manifest:manifest xmlns:manifest="urn:oasis:names:tc:opendocument:xmlns:manifest:1.0"'
    ' manifest:version="1.2">\n'
    ' <manifest:file-entry manifest:full-path="/" manifest:version="1.2"'
    ' manifest:media-type="application/vnd.oasis.opendocument.text"/>\n'
    ' <manifest:file-entry manifest:full-path="content.xml" manifest:media-type="text/xml"/>\n'
    "</manifest:manifest>\n"
)


def render_odt(content: StructuredContent, path: Path, input_format: str) -> None:
    """Write a minimal OpenDocument text package"""
    paragraphs = "".join(f"<text:p>{xml_escape(p)}</text:p>\n" for p in content.paragraphs)
    document = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<office:document-content"
        ' xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0"'
        ' xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0"'
        ' office:version="1.2">\n'
        "<office:body>\n<office:text>\n"
        f'<text:h text:outline-level="1">{xml_escape(content.title)}</text:h>\n'
        f"{paragraphs}"
        f"<text:p>{xml_escape(footer_text(input_format))}</text:p>\n"
        "</office:text>\n</office:body>\n"
        "</office:document-content>\n"
    )
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            zipfile.ZipInfo("mimetype"),
            "application/vnd.oasis.opendocument.text",
            compress_type=zipfile.ZIP_STORED,
        )
        archive.writestr("META-INF/manifest.xml", _ODT_MANIFEST, compress_type=zipfile.ZIP_DEFLATED)
        archive.writestr("content.xml", document, compress_type=zipfile.ZIP_DEFLATED)


def render_docx_with_library(content: StructuredContent, path: Path, input_format: str) -> None:
    from docx import Document

    document = Document()
    document.add_heading(content.title, level=0)
    for paragraph in content.paragraphs:
        document.add_paragraph(paragraph)
    footer = document.add_paragraph().add_run(footer_text(input_format))
    footer.italic = True
    document.save(str(path))


BUILTIN_PARSERS: Dict[str, Parser] = {
    ".txt": parse_text,
    ".md": parse_markdown,
    ".html": parse_html,
    ".htm": parse_html,
    ".docx": parse_docx,
    ".dotx": parse_docx,
    ".doc": parse_doc,
    ".odt": parse_odt,
    ".abw": parse_abw,
    ".rtf": parse_rtf,
    ".tex": parse_tex,
}

BUILTIN_RENDERERS: Dict[str, Renderer] = {
    ".txt": render_text,
    ".md": render_markdown,
    ".html": render_html,
    ".htm": render_html,
    ".rtf": render_rtf,
    ".tex": render_tex,
    ".odt": render_odt,
}

# Extension -> (capability name, function)
LIBRARY_PARSERS: Dict[str, Tuple[str, Parser]] = {
    ".docx": ("python-docx", parse_docx_with_library),
    ".dotx": ("python-docx", parse_docx_with_library),
    ".pdf": ("pymupdf", parse_pdf_with_library),
    ".html": ("beautifulsoup", parse_html_with_library),
    ".htm": ("beautifulsoup", parse_html_with_library),
}

LIBRARY_RENDERERS: Dict[str, Tuple[str, Renderer]] = {
    ".docx": ("python-docx", render_docx_with_library),
    # Same package as .docx, only the extension differs
    ".dotx": ("python-docx", render_docx_with_library),
}

LIBRARY_MODULES = {"python-docx": "docx", "pymupdf": "fitz", "beautifulsoup": "bs4"}

LIBREOFFICE_INPUTS = frozenset({
    ".doc", ".docx", ".dotx", ".odt", ".rtf", ".txt", ".html", ".htm", ".wps", ".abw", ".pages",
})
LIBREOFFICE_FILTERS = {
    ".pdf": "writer_pdf_Export",
    ".doc": "MS Word 97",
    ".docx": "MS Word 2007 XML",
    ".dotx": "MS Word 2007 XML Template",
    ".odt": "writer8",
    ".rtf": "Rich Text Format",
    ".txt": "Text (encoded):UTF8",
    ".html": "HTML (StarWriter)",
}


def parse_and_render(
    job: ConversionJob,
    parser: Parser,
    renderer: Renderer
) -> Path:
    """
    Run the two-phase pipeline for a job

    Inputs that fail to parse degrade to placeholder content.
    """
    try:
        content = parser(job.input_path, job.input_format)
    except Exception as e:
        logger.warning(f"Could not parse {job.input_path.name} as {job.input_format}: {e}")
        content = placeholder(job.input_format)

    if not content.title.strip():
        content = StructuredContent(
            title=placeholder(job.input_format).title, paragraphs=content.paragraphs
        )
    renderer(content, job.output_path, job.input_format)
    return job.output_path


class LibreOfficeDocumentBackend(ConverterBackend):
    """Office suite conversion between word processing formats"""

    name = "libreoffice"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return (
            job.input_format in LIBREOFFICE_INPUTS
            and job.output_format in LIBREOFFICE_FILTERS
        )

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await convert_with_libreoffice(
            capabilities.tool(self.name, "libreoffice"),
            job.input_path,
            job.output_path,
            job.output_format.lstrip("."),
            LIBREOFFICE_FILTERS[job.output_format],
            timeout=self.settings.backend_timeout_seconds,
            temp_root=self.settings.temp_dir,
        )


class LibraryDocumentBackend(ConverterBackend):
    """Parse and render with the specialised document libraries"""

    name = "library"

    def pipeline(
        self,
        job: ConversionJob,
        capabilities: CapabilitySet
    ) -> Optional[Tuple[Parser, Renderer]]:
        """Pick parser and renderer; None unless a library takes part"""
        parser = BUILTIN_PARSERS.get(job.input_format)
        renderer = BUILTIN_RENDERERS.get(job.output_format)
        uses_library = False

        library_parser = LIBRARY_PARSERS.get(job.input_format)
        if library_parser and capabilities.has(library_parser[0]):
            parser = library_parser[1]
            uses_library = True

        library_renderer = LIBRARY_RENDERERS.get(job.output_format)
        if library_renderer and capabilities.has(library_renderer[0]):
            renderer = library_renderer[1]
            uses_library = True

        if not uses_library or parser is None or renderer is None:
            return None
        return parser, renderer

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return self.pipeline(job, capabilities) is not None

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        selected = self.pipeline(job, capabilities)
        if selected is None:
            raise BackendFailure(self.name, f"cannot convert {job.input_format} to {job.output_format}")
        parser, renderer = selected
        return await run_blocking(
            self.name, parse_and_render, job, parser, renderer,
            timeout=self.settings.backend_timeout_seconds,
        )


class BuiltinDocumentBackend(ConverterBackend):
    """Text based parse and render with no external dependencies"""

    name = "builtin"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in BUILTIN_PARSERS and job.output_format in BUILTIN_RENDERERS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await run_blocking(
            self.name,
            parse_and_render,
            job,
            BUILTIN_PARSERS[job.input_format],
            BUILTIN_RENDERERS[job.output_format],
            timeout=self.settings.backend_timeout_seconds,
        )


class DocumentConverter(ConverterChain):
    """Converter chain for word processing and text documents"""

    category = FileCategory.DOCUMENT

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        super().__init__(
            [],
            app_settings,
            initial_capabilities or CapabilitySet(backends=frozenset({"builtin"})),
        )
        self.backends = [
            LibreOfficeDocumentBackend(self.settings),
            LibraryDocumentBackend(self.settings),
            BuiltinDocumentBackend(self.settings),
        ]

    async def probe(self) -> CapabilitySet:
        backends = {"builtin"}
        tools = {}

        executable = await probe_libreoffice(self.settings.probe_timeout_seconds)
        if executable:
            backends.add("libreoffice")
            tools["libreoffice"] = executable

        libraries = {name for name, module in LIBRARY_MODULES.items() if probe_module(module)}
        if libraries:
            backends.add("library")
            backends.update(libraries)

        return CapabilitySet(backends=frozenset(backends), tools=tools, probed=True)

    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        formats = set()
        if capabilities.has("builtin"):
            formats.update(BUILTIN_PARSERS)
        if capabilities.has("library"):
            formats.update(
                ext for ext, (library, _) in LIBRARY_PARSERS.items() if capabilities.has(library)
            )
        if capabilities.has("libreoffice"):
            formats.update(LIBREOFFICE_INPUTS)
        return frozenset(formats)

    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        formats = set()
        if capabilities.has("builtin"):
            formats.update(BUILTIN_RENDERERS)
        if capabilities.has("library"):
            formats.update(
                ext for ext, (library, _) in LIBRARY_RENDERERS.items() if capabilities.has(library)
            )
        if capabilities.has("libreoffice"):
            formats.update(LIBREOFFICE_FILTERS)
        return frozenset(formats)
