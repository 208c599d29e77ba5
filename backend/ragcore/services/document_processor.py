"""Document extraction for PDF, DOCX, Markdown, CSV and plain-text files."""
import csv
import io
import re
from pathlib import Path
from typing import List, Optional

from ragcore.exceptions import ExtractionError, ServiceUnavailableError
from ragcore.models.document import ExtractedDocument, SegmentType, StructuredSegment
from ragcore.utils.logger import logger
from ragcore.utils.text_cleaner import clean_text
from ragcore.validators import DocumentValidator

try:
    import pdfplumber
    PDFPLUMBER_AVAILABLE = True
except ImportError:
    PDFPLUMBER_AVAILABLE = False
    logger.warning("pdfplumber is not available. PDF processing will not work.")

try:
    from docx import Document as DocxDocument
    DOCX_AVAILABLE = True
except ImportError:
    DOCX_AVAILABLE = False
    logger.warning("python-docx is not available. DOCX processing will not work.")


# file type -> document type reported in document metadata
DOCUMENT_TYPES = {
    "pdf": "pdf",
    "docx": "docx",
    "txt": "text",
    "md": "markdown",
    "csv": "csv",
}

MARKDOWN_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
MARKDOWN_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
DOCX_HEADING_STYLE = re.compile(r"^Heading\s*(\d+)$", re.IGNORECASE)


def get_file_type(file_path: str, file_name: Optional[str] = None) -> str:
    """Determine file type based on file extension."""
    return DocumentValidator.validate_file_type(file_name or Path(file_path).name)


def _read_text_file(file_path: str, file_name: Optional[str] = None) -> str:
    try:
        with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()
    except OSError as e:
        logger.error(f"Error reading file {file_path}: {str(e)}")
        raise ExtractionError(f"Failed to read {file_name or Path(file_path).name}: {str(e)}")


def _split_paragraphs(text: str) -> List[str]:
    return [block.strip() for block in re.split(r"\n\s*\n", text) if block.strip()]


def extract_text_from_txt(file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
    """Extract text from a plain-text file (no structural segments)."""
    text = clean_text(_read_text_file(file_path, file_name))
    return ExtractedDocument(text=text, document_type=DOCUMENT_TYPES["txt"])


def parse_markdown_segments(text: str) -> List[StructuredSegment]:
    """
    Parse Markdown into heading, list and paragraph segments.

    Args:
        text: Markdown source

    Returns:
        Segments in document order
    """
    segments: List[StructuredSegment] = []
    buffer: List[str] = []
    buffer_type = SegmentType.PARAGRAPH

    def flush():
        if buffer:
            content = "\n".join(buffer).strip()
            if content:
                segments.append(StructuredSegment(segment_type=buffer_type, content=content))
            buffer.clear()

    for line in text.split("\n"):
        heading = MARKDOWN_HEADING.match(line)
        if heading:
            flush()
            segments.append(
                StructuredSegment(
                    segment_type=SegmentType.HEADING,
                    content=heading.group(2),
                    level=len(heading.group(1)),
                )
            )
            continue

        if not line.strip():
            flush()
            continue

        line_type = SegmentType.LIST if MARKDOWN_LIST_ITEM.match(line) else SegmentType.PARAGRAPH
        if buffer and line_type != buffer_type and line_type == SegmentType.LIST:
            flush()
        if not buffer:
            buffer_type = line_type
        buffer.append(line.strip())

    flush()
    return segments


def extract_text_from_markdown(file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
    """Extract Markdown text with heading/list/paragraph structure."""
    text = clean_text(_read_text_file(file_path, file_name))
    segments = parse_markdown_segments(text)
    title = next(
        (s.content for s in segments if s.segment_type == SegmentType.HEADING and s.level == 1),
        None,
    )
    return ExtractedDocument(
        text=text,
        document_type=DOCUMENT_TYPES["md"],
        segments=segments,
        title=title,
    )


def extract_text_from_csv(file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
    """Extract CSV rows as one comma-separated line per row."""
    raw = _read_text_file(file_path, file_name)
    try:
        rows = list(csv.reader(io.StringIO(raw)))
    except csv.Error as e:
        raise ExtractionError(f"Failed to parse CSV file {file_name or Path(file_path).name}: {str(e)}")

    lines = [", ".join(cell.strip() for cell in row) for row in rows if any(cell.strip() for cell in row)]
    return ExtractedDocument(text=clean_text("\n".join(lines)), document_type=DOCUMENT_TYPES["csv"])


def extract_text_from_pdf(file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
    """
    Extract text from PDF using pdfplumber.

    Each paragraph on a page becomes one segment tagged with its page number.

    Raises:
        ServiceUnavailableError: If pdfplumber is not available
        ExtractionError: If PDF processing fails
    """
    if not PDFPLUMBER_AVAILABLE:
        raise ServiceUnavailableError("pdfplumber is not available. Please install pdfplumber.")

    segments: List[StructuredSegment] = []
    page_texts: List[str] = []

    try:
        with pdfplumber.open(file_path) as pdf:
            info = pdf.metadata or {}
            page_count = len(pdf.pages)
            for page_num, page in enumerate(pdf.pages, 1):
                try:
                    text = clean_text(page.extract_text() or "")
                except Exception as e:
                    logger.warning(f"Error extracting text from PDF page {page_num}: {str(e)}")
                    text = ""
                if not text:
                    continue
                page_texts.append(text)
                for paragraph in _split_paragraphs(text):
                    segments.append(
                        StructuredSegment(
                            segment_type=SegmentType.PARAGRAPH,
                            content=paragraph,
                            page=page_num,
                        )
                    )
    except Exception as e:
        logger.error(f"Error opening PDF file {file_path}: {str(e)}")
        raise ExtractionError(f"Failed to process PDF file {file_name or Path(file_path).name}: {str(e)}")

    return ExtractedDocument(
        text="\n\n".join(page_texts),
        document_type=DOCUMENT_TYPES["pdf"],
        segments=segments,
        title=_metadata_string(info.get("Title")),
        author=_metadata_string(info.get("Author")),
        page_count=page_count,
    )


def _metadata_string(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def extract_text_from_docx(file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
    """
    Extract text from DOCX file.

    Heading styles become heading segments, list styles become list segments
    and each table becomes one table segment.

    Raises:
        ServiceUnavailableError: If python-docx is not available
        ExtractionError: If DOCX processing fails
    """
    if not DOCX_AVAILABLE:
        raise ServiceUnavailableError("python-docx is not available. Please install python-docx.")

    try:
        doc = DocxDocument(file_path)
    except Exception as e:
        logger.error(f"Error processing DOCX file {file_path}: {str(e)}")
        raise ExtractionError(f"Failed to process DOCX file {file_name or Path(file_path).name}: {str(e)}")

    segments: List[StructuredSegment] = []
    for paragraph in doc.paragraphs:
        text = paragraph.text.strip()
        if not text:
            continue
        style_name = paragraph.style.name if paragraph.style is not None else ""
        heading = DOCX_HEADING_STYLE.match(style_name)
        if heading or style_name == "Title":
            level = int(heading.group(1)) if heading else 1
            segments.append(StructuredSegment(segment_type=SegmentType.HEADING, content=text, level=level))
        elif style_name.startswith("List"):
            segments.append(StructuredSegment(segment_type=SegmentType.LIST, content=text))
        else:
            segments.append(StructuredSegment(segment_type=SegmentType.PARAGRAPH, content=text))

    for table in doc.tables:
        rows = []
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                rows.append(" | ".join(cells))
        if rows:
            segments.append(StructuredSegment(segment_type=SegmentType.TABLE, content="\n".join(rows)))

    text = clean_text("\n\n".join(segment.content for segment in segments))
    properties = doc.core_properties
    return ExtractedDocument(
        text=text,
        document_type=DOCUMENT_TYPES["docx"],
        segments=segments,
        title=_metadata_string(properties.title),
        author=_metadata_string(properties.author),
    )


class DocumentProcessor:
    """Extracts plain text, structural segments and metadata from supported files."""

    EXTRACTORS = {
        "pdf": extract_text_from_pdf,
        "docx": extract_text_from_docx,
        "txt": extract_text_from_txt,
        "md": extract_text_from_markdown,
        "csv": extract_text_from_csv,
    }

    def extract(self, file_path: str, file_name: Optional[str] = None) -> ExtractedDocument:
        """
        Extract text from any supported file type.

        Args:
            file_path: Path to file
            file_name: Original file name, used for the type and in errors.
                Defaults to the name on disk.

        Returns:
            ExtractedDocument with text, segments and metadata

        Raises:
            FileTypeNotSupportedError: If file type is not supported
            ExtractionError: If extraction fails
        """
        file_name = file_name or Path(file_path).name
        file_type = get_file_type(file_path, file_name)
        extracted = self.EXTRACTORS[file_type](file_path, file_name)

        logger.info(
            f"Extracted text from {file_name}: "
            f"{len(extracted.segments)} segments, {len(extracted.text):,} characters",
            extra={"file_name": file_name},
        )
        return extracted
