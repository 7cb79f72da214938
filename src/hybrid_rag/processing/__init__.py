"""Document processing: strategy selection and chunk building."""

from .chunker import (
    ChunkBuilder,
    ChunkingConfig,
    ChunkingStrategy,
    clean_transcript_text,
    select_strategy,
    split_markdown,
    strategy_for_document,
)

__all__ = [
    "ChunkBuilder",
    "ChunkingConfig",
    "ChunkingStrategy",
    "clean_transcript_text",
    "select_strategy",
    "split_markdown",
    "strategy_for_document",
]
