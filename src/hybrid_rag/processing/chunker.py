"""
Size-based chunking for transcripts and text pages.

The strategy depends on how big the document is:
- single: short documents get one whole-document embedding, no chunks
- speaker_turns: fixed-size batches of sentences/paragraphs
- chapters: one section per chapter boundary (falls back to speaker_turns
  when the document carries no chapters)
"""

import logging
import math
import re
import textwrap
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..models import Chapter, Chunk, Document, TranscriptSentence

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*)$")


class ChunkingStrategy(str, Enum):
    SINGLE = "single"
    SPEAKER_TURNS = "speaker_turns"
    CHAPTERS = "chapters"


@dataclass
class ChunkingConfig:
    """Configuration for strategy selection and batching."""
    batch_size: int = 20  # Units per speaker_turns batch
    # Thresholds for documents with a known duration
    single_max_seconds: float = 900  # < 15 min: single
    speaker_turns_max_seconds: float = 1800  # < 30 min: speaker_turns
    # Thresholds for text documents (character count)
    single_max_chars: int = 3000
    speaker_turns_max_chars: int = 12000
    max_chunk_chars: int = 2000  # Text chunks only; transcript batches are sized by batch_size
    speaker_turns_section: str = "Discussion"
    segment_label: str = "Discussion segment {n}"


@dataclass
class Unit:
    """The atom a chunk is built from: a transcript sentence or a paragraph."""
    text: str
    speaker: Optional[str] = None
    start_time: float = 0.0
    end_time: float = 0.0


def select_strategy(
    size: float,
    single_threshold: float,
    chapters_threshold: float,
) -> ChunkingStrategy:
    """
    Choose a chunking strategy from a size proxy.

    Args:
        size: Duration in seconds, or character count
        single_threshold: Sizes below this get a single embedding
        chapters_threshold: Sizes at or above this are chunked by chapter

    Returns:
        The strategy to apply
    """
    if size < single_threshold:
        return ChunkingStrategy.SINGLE
    if size < chapters_threshold:
        return ChunkingStrategy.SPEAKER_TURNS
    return ChunkingStrategy.CHAPTERS


def strategy_for_document(doc: Document, config: ChunkingConfig) -> ChunkingStrategy:
    """Pick the size proxy for a document and select its strategy."""
    if doc.duration_seconds is not None:
        return select_strategy(
            doc.duration_seconds,
            config.single_max_seconds,
            config.speaker_turns_max_seconds,
        )
    if doc.sentences:
        size = sum(len(s.text or "") for s in doc.sentences)
    else:
        size = len(doc.content or "")
    return select_strategy(size, config.single_max_chars, config.speaker_turns_max_chars)


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def clean_transcript_text(units: List[Unit]) -> str:
    """
    Render units as readable text.

    Consecutive units from the same speaker share one "Speaker: ..." line;
    speaker changes are separated by a blank line. Units without a speaker
    (paragraphs) are joined by blank lines as-is.
    """
    lines = []
    current_speaker = None
    current_texts: list[str] = []

    def flush():
        if current_texts:
            joined = " ".join(current_texts)
            lines.append(f"{current_speaker}: {joined}" if current_speaker else joined)

    for unit in units:
        text = (unit.text or "").strip()
        if not text:
            continue
        speaker = unit.speaker
        if speaker and speaker == current_speaker:
            current_texts.append(text)
            continue
        flush()
        current_speaker = speaker
        current_texts = [text]

    flush()
    return "\n\n".join(lines)


def split_markdown(content: str) -> tuple[List[Unit], List[Chapter]]:
    """
    Split a text body into paragraph units and heading chapters.

    Every markdown heading opens a chapter whose range covers the paragraphs
    up to the next heading. Text before the first heading belongs to a
    "General" chapter. No headings means no chapters.
    """
    units: List[Unit] = []
    chapters: List[Chapter] = []
    current_title: Optional[str] = None
    current_start = 0
    buffer: list[str] = []

    def flush_paragraph():
        text = normalize_whitespace("\n".join(buffer))
        if text:
            units.append(Unit(text=text))
        buffer.clear()

    def close_chapter():
        if len(units) > current_start:
            chapters.append(Chapter(
                title=current_title or "General",
                start_index=current_start,
                end_index=len(units),
            ))

    for line in (content or "").split("\n"):
        heading = HEADING_RE.match(line)
        if heading:
            flush_paragraph()
            close_chapter()
            current_title = heading.group(1).strip()
            current_start = len(units)
        elif not line.strip():
            flush_paragraph()
        else:
            buffer.append(line)

    flush_paragraph()
    if current_title is None:
        # No headings at all
        return units, []
    close_chapter()
    return units, chapters


def units_for_document(doc: Document) -> tuple[List[Unit], List[Chapter]]:
    """Extract units and available chapters from a document."""
    if doc.sentences:
        units = [_sentence_unit(s) for s in doc.sentences if (s.text or "").strip()]
        return units, list(doc.chapters)

    units, heading_chapters = split_markdown(doc.content)
    return units, list(doc.chapters) or heading_chapters


def _sentence_unit(sentence: TranscriptSentence) -> Unit:
    return Unit(
        text=sentence.text.strip(),
        speaker=sentence.speaker_name or "Unknown",
        start_time=sentence.start_time or 0.0,
        end_time=sentence.end_time or 0.0,
    )


class ChunkBuilder:
    """
    Apply a chunking strategy to a document.

    Produces ordered Chunk records whose order_index runs 0..n-1 within each
    (document, section). Embeddings are left empty for the indexer.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

    def build(self, doc: Document, strategy: ChunkingStrategy) -> List[Chunk]:
        """
        Build chunks for a document.

        Args:
            doc: Source document
            strategy: Strategy from select_strategy()

        Returns:
            Chunks in reading order (empty for single or for documents with no units)
        """
        if strategy == ChunkingStrategy.SINGLE:
            return []

        units, chapters = units_for_document(doc)
        if not units:
            return []

        if strategy == ChunkingStrategy.CHAPTERS:
            if chapters:
                return self._chapter_chunks(doc, units, chapters)
            logger.warning(f"No chapters available for {doc.id}, falling back to speaker_turns")

        return self._speaker_turn_chunks(doc, units)

    def _batches(self, units: List[Unit], start: int, end: int):
        """
        Yield (unit offset, batch) runs over units[start:end].

        A run holds at most batch_size units. Paragraph runs also stay within
        max_chunk_chars of rendered text; a paragraph longer than that is
        wrapped into several single-piece runs sharing its offset.
        """
        size = max(1, self.config.batch_size)
        limit = self.config.max_chunk_chars
        batch: List[Unit] = []
        batch_start = start
        length = 0

        for i in range(start, end):
            unit = units[i]
            capped = limit > 0 and unit.speaker is None
            if capped and len(unit.text) > limit:
                if batch:
                    yield batch_start, batch
                    batch, length = [], 0
                for piece in textwrap.wrap(unit.text, width=limit, break_on_hyphens=False):
                    yield i, [Unit(text=piece)]
                continue

            added = len(unit.text) + (2 if batch else 0)  # "\n\n" between paragraphs
            if batch and (len(batch) >= size or (capped and length + added > limit)):
                yield batch_start, batch
                batch, length = [], 0
                added = len(unit.text)
            if not batch:
                batch_start = i
            batch.append(unit)
            length += added

        if batch:
            yield batch_start, batch

    def _speaker_turn_chunks(self, doc: Document, units: List[Unit]) -> List[Chunk]:
        """Batches sharing one section."""
        chunks = []

        for batch_num, (start, batch) in enumerate(self._batches(units, 0, len(units))):
            chunks.append(self._make_chunk(
                doc,
                batch,
                section=self.config.speaker_turns_section,
                order_index=batch_num,
                chunk_index=len(chunks),
                topic=self.config.segment_label.format(n=batch_num + 1),
                unit_start=start,
            ))

        return chunks

    def _chapter_chunks(
        self,
        doc: Document,
        units: List[Unit],
        chapters: List[Chapter],
    ) -> List[Chunk]:
        """One section per chapter; long chapters are batched within the section."""
        per_chapter = math.ceil(len(units) / len(chapters))
        chunks = []
        used_sections: dict[str, int] = {}

        for i, chapter in enumerate(chapters):
            if chapter.has_range:
                start = max(0, chapter.start_index)
                end = min(len(units), chapter.end_index)
            else:
                start = i * per_chapter
                end = min(start + per_chapter, len(units))
            if start >= end:
                continue

            title = chapter.title or chapter.gist or f"Chapter {i + 1}"
            # Repeated titles continue the same section's ordering
            order = used_sections.get(title, 0)

            for batch_start, batch in self._batches(units, start, end):
                chunks.append(self._make_chunk(
                    doc,
                    batch,
                    section=title,
                    order_index=order,
                    chunk_index=len(chunks),
                    topic=title,
                    unit_start=batch_start,
                ))
                order += 1
            used_sections[title] = order

        return chunks

    def _make_chunk(
        self,
        doc: Document,
        batch: List[Unit],
        section: str,
        order_index: int,
        chunk_index: int,
        topic: str,
        unit_start: int,
    ) -> Chunk:
        speakers = list(dict.fromkeys(u.speaker for u in batch if u.speaker))
        return Chunk(
            id=f"{doc.id}_chunk_{chunk_index}",
            doc_id=doc.id,
            section=section,
            order_index=order_index,
            chunk_index=chunk_index,
            content=clean_transcript_text(batch),
            title=doc.title or None,
            external_url=doc.external_url,
            updated_at=doc.updated_at,
            tenant_id=doc.tenant_id,
            product=doc.product,
            version=doc.version,
            language=doc.language,
            topic=topic,
            speakers=speakers,
            start_time=batch[0].start_time,
            end_time=batch[-1].end_time,
            unit_start=unit_start,
            unit_end=unit_start + len(batch),
        )
