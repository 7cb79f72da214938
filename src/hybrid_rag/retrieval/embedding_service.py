"""
Embedding Service - Generate embeddings through an OpenAI-compatible API.

Supports:
- OpenAI text-embedding-3-small/large (dimension set per request)
- Nebius-hosted models (fixed native dimension, no dimensions parameter)

Query and document inputs are embedded in different modes; instruction-tuned
models get a per-mode prefix from the config.
"""

import logging
import math
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from openai import OpenAI

from ..errors import ConfigError, EmbeddingError
from ..models import EmbeddingResult

logger = logging.getLogger(__name__)


class EmbeddingMode(str, Enum):
    QUERY = "query"
    DOCUMENT = "document"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "openai"  # "openai" or "nebius"
    model: str = "text-embedding-3-small"
    dimension: int = 1024
    batch_size: int = 48
    max_input_chars: int = 8000  # Provider input cap
    query_prefix: str = ""
    document_prefix: str = ""
    timeout_seconds: float = 30.0
    api_key: Optional[str] = None
    base_url: Optional[str] = None


class EmbeddingService:
    """
    Generate embeddings for queries and chunks.

    Usage:
        service = EmbeddingService()
        result = service.embed("what did we decide about pricing?", EmbeddingMode.QUERY)
        results = service.embed_batch(["text1", "text2"], EmbeddingMode.DOCUMENT)
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, client=None):
        self.config = config or EmbeddingConfig()
        self._client = client
        if self._client is None:
            self._init_client()

    def _init_client(self):
        """Initialize OpenAI-compatible client (works with Nebius too)."""
        if self.config.provider == "nebius":
            api_key = self.config.api_key or os.getenv("LLM_API_KEY")
            base_url = self.config.base_url or os.getenv("LLM_BASE_URL", "https://api.studio.nebius.ai/v1")
            key_name = "LLM_API_KEY"
        else:
            api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
            base_url = self.config.base_url or os.getenv("OPENAI_BASE_URL")
            key_name = "OPENAI_API_KEY"

        if not api_key:
            raise ConfigError(f"{key_name} not set - embedding service unavailable")

        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=self.config.timeout_seconds,
        )
        logger.info(
            f"EmbeddingService initialized ({self.config.provider}): "
            f"model={self.config.model}, dim={self.config.dimension}"
        )

    def prepare(self, text: str, mode: EmbeddingMode) -> str:
        """Clean, prefix and truncate text to the provider input cap."""
        prefix = self.config.query_prefix if mode == EmbeddingMode.QUERY else self.config.document_prefix
        cleaned = (text or "").replace("\n", " ").strip()
        if not cleaned:
            return ""
        return (prefix + cleaned)[:self.config.max_input_chars]

    def embed(self, text: str, mode: EmbeddingMode = EmbeddingMode.DOCUMENT) -> EmbeddingResult:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed
            mode: QUERY for search queries, DOCUMENT for indexed content

        Returns:
            EmbeddingResult with the validated vector
        """
        return self.embed_batch([text], mode)[0]

    def embed_batch(
        self,
        texts: list[str],
        mode: EmbeddingMode = EmbeddingMode.DOCUMENT,
    ) -> list[EmbeddingResult]:
        """
        Generate embeddings for multiple texts in batches.

        Args:
            texts: List of texts to embed
            mode: Embedding mode applied to every text

        Returns:
            One EmbeddingResult per input, in input order
        """
        prepared = [self.prepare(t, mode) for t in texts]
        if any(not p for p in prepared):
            raise EmbeddingError("Cannot generate embedding for empty text")

        results: list[EmbeddingResult] = []
        batch_size = max(1, self.config.batch_size)
        total_batches = (len(prepared) + batch_size - 1) // batch_size

        for i in range(0, len(prepared), batch_size):
            batch = prepared[i:i + batch_size]
            batch_num = i // batch_size + 1

            try:
                response = self._create(batch)
            except Exception as e:
                logger.error(f"Embedding failed at batch {batch_num}/{total_batches}: {e}")
                raise EmbeddingError(f"Embedding request failed: {e}") from e

            data = sorted(response.data, key=lambda d: getattr(d, "index", 0))
            if len(data) != len(batch):
                raise EmbeddingError(
                    f"Provider returned {len(data)} embeddings for {len(batch)} inputs"
                )
            results.extend(self._validate(d.embedding) for d in data)

            if total_batches > 1:
                logger.debug(f"Embedded batch {batch_num}/{total_batches} ({len(results)}/{len(texts)} texts)")

        return results

    def _create(self, inputs: list[str]):
        # Nebius models don't support dimensions parameter
        if self.config.provider == "nebius":
            return self._client.embeddings.create(model=self.config.model, input=inputs)
        return self._client.embeddings.create(
            model=self.config.model,
            input=inputs,
            dimensions=self.config.dimension,
        )

    def _validate(self, vector) -> EmbeddingResult:
        """Check dimension and finiteness of a provider vector."""
        if vector is None:
            raise EmbeddingError("Provider returned no embedding")
        values = [float(v) for v in vector]
        if self.config.dimension and len(values) != self.config.dimension:
            raise EmbeddingError(
                f"Expected {self.config.dimension}-dim embedding, got {len(values)}"
            )
        if not all(math.isfinite(v) for v in values):
            raise EmbeddingError("Provider returned non-finite embedding values")
        return EmbeddingResult(vector=values, dimension=len(values))
