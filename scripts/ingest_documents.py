#!/usr/bin/env python3
"""
Document Ingestion CLI - Chunk, embed and index JSON document exports.

Usage:
    python scripts/ingest_documents.py data/raw/transcripts/       # Index every *.json in a directory
    python scripts/ingest_documents.py export.json                 # Index one file
    python scripts/ingest_documents.py --delete DOC_ID             # Remove a document
    python scripts/ingest_documents.py --rebuild-bm25              # Rebuild sparse index from the store
    python scripts/ingest_documents.py --stats                     # Show store statistics
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

from hybrid_rag.ingestion import load_documents
from hybrid_rag.models import IndexingResult
from hybrid_rag.rag import RagEngine


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def print_summary(results: list[IndexingResult]):
    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    total_chunks = sum(r.chunk_count for r in successful)
    total_time = sum(r.processing_time_ms for r in successful)

    by_strategy: dict[str, int] = {}
    for r in successful:
        by_strategy[r.strategy] = by_strategy.get(r.strategy, 0) + 1

    print(f"\n{'='*60}")
    print("INDEXING SUMMARY")
    print(f"{'='*60}")
    print(f"  Successful: {len(successful)} documents")
    print(f"  Failed:     {len(failed)} documents")
    print(f"  Total chunks: {total_chunks}")
    print(f"  Total time: {total_time/1000:.1f}s")
    for strategy, count in sorted(by_strategy.items()):
        print(f"  {strategy}: {count}")

    if failed:
        print("\nFailed documents:")
        for r in failed:
            print(f"  - {r.document_id}: {r.error}")


def show_stats(engine: RagEngine):
    """Show store statistics."""
    stats = engine.get_stats()

    print(f"\n{'='*60}")
    print("STORE STATISTICS")
    print(f"{'='*60}")
    print(f"  Documents: {stats['vector_store']['document_count']}")
    print(f"  Chunks: {stats['vector_store']['chunk_count']}")
    print(f"  BM25 chunks: {stats['bm25']['chunk_count']}")
    print(f"  Path: {stats['vector_store']['persist_directory']}")


def main():
    parser = argparse.ArgumentParser(description="Document Ingestion CLI")
    parser.add_argument("path", nargs="?", help="JSON file or directory of JSON files")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--delete", metavar="DOC_ID", help="Delete a document")
    parser.add_argument("--rebuild-bm25", action="store_true", help="Rebuild sparse index from the store")
    parser.add_argument("--stats", action="store_true", help="Show statistics only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not (args.path or args.delete or args.rebuild_bm25 or args.stats):
        parser.error("a path, --delete, --rebuild-bm25 or --stats is required")

    with RagEngine.from_env(args.config) as engine:
        if args.delete:
            engine.delete(args.delete)
            print(f"Deleted {args.delete}")

        if args.rebuild_bm25:
            chunks = engine.vector_store.get_all_chunks()
            engine.bm25_index.build_from_chunks(chunks, save=True)
            print(f"Rebuilt BM25 index: {len(chunks)} chunks")

        if args.path:
            documents = load_documents(args.path)
            print(f"\nIndexing {len(documents)} documents from: {args.path}")
            results = engine.indexer.index_documents(documents)
            print_summary(results)

        show_stats(engine)


if __name__ == "__main__":
    main()
