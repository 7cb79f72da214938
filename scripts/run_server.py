#!/usr/bin/env python3
"""Run the hybrid retrieval API server."""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run retrieval API server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--workers", type=int, default=1, help="Number of workers")

    args = parser.parse_args()

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                Hybrid RAG Retrieval API Server               ║
╠══════════════════════════════════════════════════════════════╣
║  Endpoints:                                                  ║
║    POST   /retrieve         - Retrieve citable context       ║
║    POST   /documents        - Index a document               ║
║    DELETE /documents/{{id}}   - Delete a document              ║
║    GET    /health           - Health check                   ║
║                                                              ║
║  Documentation:                                              ║
║    http://{args.host}:{args.port}/docs     - Swagger UI                ║
╚══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "hybrid_rag.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
    )


if __name__ == "__main__":
    main()
