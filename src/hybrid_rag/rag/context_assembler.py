"""
Context Assembler - Render retrieved chunks into a citable prompt context.

Chunks are put back into reading order, tagged S1..Sn and capped at
max_context_chunks. Each block reads:

    [#S1] <title> | <section>
    <content>
    <blank line>
"""

import logging

from ..models import RetrievalContext, ScoredChunk, SourceCitation

logger = logging.getLogger(__name__)


def reading_order(chunks: list[ScoredChunk]) -> list[ScoredChunk]:
    """Sort by (doc_id, section, order_index)."""
    return sorted(
        chunks,
        key=lambda c: (c.chunk.doc_id, c.chunk.section or "", c.chunk.order_index),
    )


def format_block(tag: str, item: ScoredChunk) -> list[str]:
    chunk = item.chunk
    header = f"[#{tag}] {chunk.title or 'Untitled'} | {chunk.section or 'General'}"
    return [header, chunk.content, ""]


class ContextAssembler:
    """
    Build the RetrievalContext returned to the caller.

    Usage:
        assembler = ContextAssembler(max_chunks=20)
        context = assembler.build(expanded_chunks)
        prompt = f"Context:\\n{context.context_text}"
    """

    def __init__(self, max_chunks: int = 20):
        self.max_chunks = max(0, max_chunks)

    def build(self, chunks: list[ScoredChunk]) -> RetrievalContext:
        """
        Order, tag, truncate and render chunks.

        Args:
            chunks: Anchors plus neighbors, any order

        Returns:
            RetrievalContext with chunks, sources and context_text of equal length
        """
        ordered = reading_order(chunks)[:self.max_chunks]
        if len(chunks) > len(ordered):
            logger.debug(f"Context capped at {self.max_chunks} of {len(chunks)} chunks")

        sources = []
        lines: list[str] = []
        for n, item in enumerate(ordered, start=1):
            tag = f"S{n}"
            chunk = item.chunk
            sources.append(SourceCitation(
                id=chunk.id,
                tag=tag,
                title=chunk.title,
                external_url=chunk.external_url,
                section=chunk.section,
                updated_at=chunk.updated_at,
            ))
            lines.extend(format_block(tag, item))

        return RetrievalContext(
            chunks=ordered,
            sources=sources,
            context_text="\n".join(lines),
        )
