"""Sentence- and structure-aware chunking with word-level overlap."""
import re
from typing import Iterable, List, Optional

from ragcore.models.document import (
    Chunk,
    ChunkMetadata,
    ExtractedDocument,
    SegmentType,
    StructuredSegment,
)
from ragcore.utils.logger import logger

DEFAULT_CHUNK_SIZE = 300
DEFAULT_OVERLAP_SIZE = 20

# Attribution lines are kept whole instead of being split into sentences
METADATA_LINE_PATTERN = re.compile(r"^(Credits?|Author|Title|Date|Source|Project):", re.IGNORECASE)
SENTENCE_BOUNDARY_PATTERN = re.compile(r"[.!?]+")
LINE_BREAK_PATTERN = re.compile(r"\n+")


def split_into_units(text: str) -> List[str]:
    """
    Split text into sentence units.

    Args:
        text: Plain document text

    Returns:
        Units in document order; metadata lines stay whole
    """
    units = []
    for line in LINE_BREAK_PATTERN.split(text or ""):
        stripped = line.strip()
        if not stripped:
            continue
        if METADATA_LINE_PATTERN.match(stripped):
            units.append(stripped)
            continue
        units.extend(
            sentence.strip()
            for sentence in SENTENCE_BOUNDARY_PATTERN.split(line)
            if sentence.strip()
        )
    return units


class _ChunkBuilder:
    """Greedy accumulator that closes chunks at unit boundaries."""

    def __init__(self, document_id: str, file_name: str, chunk_size: int, overlap_size: int):
        self.document_id = document_id
        self.file_name = file_name
        self.chunk_size = chunk_size
        self.overlap_size = overlap_size
        self.chunks: List[Chunk] = []

        self._words: List[str] = []
        self._has_body = False
        self._opening = True
        self._heading: Optional[str] = None
        self._heading_level: Optional[int] = None
        self._page: Optional[int] = None

        # Structure active when the current chunk was opened
        self.active_heading: Optional[str] = None
        self.active_heading_level: Optional[int] = None

    def add(self, unit: str, page: Optional[int] = None, is_heading: bool = False) -> None:
        words = unit.split()
        if not words:
            return

        if not self._opening and len(self._words) + len(words) > self.chunk_size:
            self.close()

        if self._opening:
            self._heading = self.active_heading
            self._heading_level = self.active_heading_level
            self._page = page
            self._opening = False
        elif is_heading and not self._has_body:
            self._heading = self.active_heading
            self._heading_level = self.active_heading_level

        self._words.extend(words)
        if not is_heading:
            self._has_body = True

    def start_section(self, heading: str, level: Optional[int], page: Optional[int]) -> None:
        """Close the current chunk (if it holds body text) and open a new section."""
        if self._words and self._has_body:
            self.close()
        self.active_heading = heading
        self.active_heading_level = level
        self.add(heading, page=page, is_heading=True)

    def close(self) -> None:
        if not self._words:
            return

        self.chunks.append(
            Chunk(
                document_id=self.document_id,
                content=" ".join(self._words),
                metadata=ChunkMetadata(
                    file_name=self.file_name,
                    chunk_index=len(self.chunks),
                    token_count=len(self._words),
                    heading=self._heading,
                    heading_level=self._heading_level,
                    page=self._page,
                ),
            )
        )

        # Seed the next chunk with the trailing words of this one
        overlap = self._words[-self.overlap_size:] if self.overlap_size > 0 else []
        self._words = list(overlap)
        self._has_body = False
        self._opening = True

    def finish(self) -> List[Chunk]:
        if self._words and not self._opening:
            self.close()
        return self.chunks


class DocumentChunker:
    """Splits extracted documents into overlapping chunks."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap_size: int = DEFAULT_OVERLAP_SIZE):
        """
        Initialize chunker.

        Args:
            chunk_size: Soft word budget per chunk, enforced at unit boundaries
            overlap_size: Number of trailing words carried into the next chunk
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap_size < 0:
            raise ValueError("overlap_size cannot be negative")
        self.chunk_size = chunk_size
        self.overlap_size = overlap_size

    def _builder(self, document_id: str, file_name: str) -> _ChunkBuilder:
        return _ChunkBuilder(document_id, file_name, self.chunk_size, self.overlap_size)

    def chunk_text(self, text: str, document_id: str, file_name: str) -> List[Chunk]:
        """
        Chunk plain text on sentence boundaries.

        Args:
            text: Extracted document text
            document_id: Owning document identifier
            file_name: Original file name

        Returns:
            Ordered list of chunks
        """
        builder = self._builder(document_id, file_name)
        for unit in split_into_units(text):
            builder.add(unit)
        return builder.finish()

    def chunk_segments(
        self, segments: Iterable[StructuredSegment], document_id: str, file_name: str
    ) -> List[Chunk]:
        """
        Chunk typed segments, keeping paragraphs and lists whole where they fit.

        Headings close the current chunk and label the chunks that follow.
        """
        builder = self._builder(document_id, file_name)
        for segment in segments:
            content = (segment.content or "").strip()
            if not content:
                continue

            if segment.segment_type == SegmentType.HEADING:
                builder.start_section(content, segment.level, segment.page)
                continue

            if len(content.split()) <= self.chunk_size:
                builder.add(content, page=segment.page)
            else:
                for unit in split_into_units(content):
                    builder.add(unit, page=segment.page)

        return builder.finish()

    def chunk_document(
        self, extracted: ExtractedDocument, document_id: str, file_name: str
    ) -> List[Chunk]:
        """
        Chunk an extracted document and stamp document-level metadata.

        The structure-aware path is used when extraction produced segments.
        """
        if extracted.segments:
            chunks = self.chunk_segments(extracted.segments, document_id, file_name)
            mode = "structured"
        else:
            chunks = self.chunk_text(extracted.text, document_id, file_name)
            mode = "sentence"

        finalize_chunks(chunks, extracted)
        logger.info(
            f"Created {len(chunks)} chunks from {file_name} ({mode} chunking)",
            extra={"document_id": document_id, "chunk_count": len(chunks)},
        )
        return chunks


def finalize_chunks(chunks: List[Chunk], extracted: ExtractedDocument) -> List[Chunk]:
    """Stamp every chunk with the chunk total and document-level metadata."""
    total = len(chunks)
    for chunk in chunks:
        chunk.metadata.total_chunks = total
        chunk.metadata.document_title = extracted.title
        chunk.metadata.document_author = extracted.author
        chunk.metadata.document_type = extracted.document_type
    return chunks
