"""
Process-wide retrieval tunables.

Values are resolved once at startup: dataclass defaults, then the optional
``rag`` section of config/config.yaml, then RAG_* environment variables.
Unusable values (non-numeric, non-finite, negative counts) fall back to the
default instead of raising.
"""

import logging
import math
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "config.yaml"

RERANK_FAILURE_POLICIES = ("fail", "fusion")


@dataclass(frozen=True)
class RagConfig:
    """Retrieval pipeline tunables."""
    k_dense: int = 60  # Candidates from vector search
    k_sparse: int = 40  # Candidates from BM25 search
    fusion_weight_dense: float = 0.7
    fusion_weight_sparse: float = 0.3  # Weights need not sum to 1
    rerank_top_k: int = 12  # Fused candidates sent to the cross-encoder
    rerank_score_threshold: float = 0.2
    neighbor_window: int = 1
    max_context_chunks: int = 20
    search_timeout_seconds: float = 10.0
    rerank_timeout_seconds: float = 30.0
    rerank_failure_policy: str = "fail"  # "fail" or "fusion"
    max_workers: int = 8


ENV_KEYS = {
    "k_dense": "RAG_K_DENSE",
    "k_sparse": "RAG_K_SPARSE",
    "fusion_weight_dense": "RAG_FUSION_DENSE_WEIGHT",
    "fusion_weight_sparse": "RAG_FUSION_SPARSE_WEIGHT",
    "rerank_top_k": "RAG_RERANK_TOP_K",
    "rerank_score_threshold": "RAG_RERANK_SCORE_THRESHOLD",
    "neighbor_window": "RAG_NEIGHBOR_WINDOW",
    "max_context_chunks": "RAG_MAX_CONTEXT_CHUNKS",
    "search_timeout_seconds": "RAG_SEARCH_TIMEOUT_SECONDS",
    "rerank_timeout_seconds": "RAG_RERANK_TIMEOUT_SECONDS",
    "rerank_failure_policy": "RAG_RERANK_FAILURE_POLICY",
    "max_workers": "RAG_MAX_WORKERS",
}

_POSITIVE_FIELDS = {"search_timeout_seconds", "rerank_timeout_seconds", "max_workers"}


def load_config(path: Optional[str] = None) -> dict:
    """Load config.yaml. A missing file yields an empty dict."""
    config_path = Path(path or os.getenv("RAG_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


def to_number(value, fallback: float) -> float:
    """Parse a number, returning ``fallback`` for anything unparsable or non-finite."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def get_rag_config(
    env: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> RagConfig:
    """
    Build the RagConfig for this process.

    Args:
        env: Environment mapping (default: os.environ)
        config_path: Path to config.yaml (default: RAG_CONFIG_PATH or config/config.yaml)

    Returns:
        RagConfig with every field resolved
    """
    env = os.environ if env is None else env
    file_values = load_config(config_path).get("rag", {}) or {}

    values = {}
    for f in fields(RagConfig):
        raw = env.get(ENV_KEYS[f.name])
        if raw is None:
            raw = file_values.get(f.name)

        if f.name == "rerank_failure_policy":
            policy = str(raw).strip().lower() if raw is not None else f.default
            if policy not in RERANK_FAILURE_POLICIES:
                logger.warning(f"Unknown rerank failure policy {raw!r}, using {f.default!r}")
                policy = f.default
            values[f.name] = policy
            continue

        number = to_number(raw, f.default)
        if f.type is int or f.type == "int":
            number = int(number)
            if number < 0:
                number = f.default
        if f.name in _POSITIVE_FIELDS and number <= 0:
            number = f.default
        values[f.name] = number

    config = RagConfig(**values)
    logger.debug(f"Resolved {config}")
    return config
