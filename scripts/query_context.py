#!/usr/bin/env python3
"""
Query Context - Run a retrieval and print the assembled context.

Usage:
    python scripts/query_context.py "what did we decide about pricing?"
    python scripts/query_context.py "release plan" --tenant acme --product billing
    python scripts/query_context.py "onboarding" --from-date 2024-01-01 --scores
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from hybrid_rag.ingestion import parse_timestamp
from hybrid_rag.models import SearchFilters
from hybrid_rag.rag import RagEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_filters(args) -> SearchFilters:
    return SearchFilters(
        tenant_id=args.tenant,
        product=args.product,
        version=args.version,
        language=args.language,
        from_date=parse_timestamp(args.from_date),
        to_date=parse_timestamp(args.to_date),
    )


def print_scores(context):
    """Print per-chunk scores."""
    print(f"\n{'─'*70}")
    print(f"{'Tag':<5} {'Dense':>7} {'Sparse':>7} {'Fused':>7} {'Rerank':>7}  Chunk")
    print(f"{'─'*70}")

    def fmt(score):
        return f"{score:7.3f}" if score is not None else "      -"

    for source, item in zip(context.sources, context.chunks):
        print(
            f"{source.tag:<5} {fmt(item.dense_score)} {fmt(item.sparse_score)} "
            f"{fmt(item.fused_score)} {fmt(item.rerank_score)}  {item.id}"
        )


def main():
    parser = argparse.ArgumentParser(description="Retrieve context for a query")
    parser.add_argument("query", help="Search query")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--tenant", help="Filter by tenant_id")
    parser.add_argument("--product", help="Filter by product")
    parser.add_argument("--version", help="Filter by version")
    parser.add_argument("--language", help="Filter by language")
    parser.add_argument("--from-date", help="Earliest updated_at (ISO-8601)")
    parser.add_argument("--to-date", help="Latest updated_at (ISO-8601)")
    parser.add_argument("--scores", action="store_true", help="Show per-chunk scores")

    args = parser.parse_args()
    filters = build_filters(args)

    with RagEngine.from_env(args.config) as engine:
        context = engine.retrieve(args.query, None if filters.is_empty else filters)

    if context.is_empty:
        print("\nNo relevant context found.")
        return

    print(f"\n{'='*70}")
    print(f"Query: {args.query}")
    print(f"{'='*70}\n")
    print(context.context_text)

    if args.scores:
        print_scores(context)


if __name__ == "__main__":
    main()
