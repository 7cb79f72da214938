"""
RAG module.

Components:
- RagEngine: upsert/retrieve consumer interface with lifecycle
- ContextAssembler: Order, tag and render chunks as citable context
"""

from .context_assembler import ContextAssembler
from .rag_pipeline import EngineConfig, RagEngine

__all__ = [
    "ContextAssembler",
    "EngineConfig",
    "RagEngine",
]
