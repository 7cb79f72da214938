"""
Document Loader - Parse JSON exports into Document records.

Accepts two shapes:
- Transcript exports (Fireflies style): ``sentences``, ``duration`` in
  minutes, ``date`` as epoch milliseconds, summary fields under ``summary``
- Text pages: ``content`` (or ``body``/``text``) with optional markdown
  headings, ``updated_at`` as ISO-8601 or epoch milliseconds

A file may hold one object, a list, or ``{"documents": [...]}``.
"""

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from ..models import Chapter, Document, TranscriptSentence, utcnow

logger = logging.getLogger(__name__)

FILTER_FIELDS = ("tenant_id", "product", "version", "language")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse epoch milliseconds (number or numeric string) or ISO-8601.

    Naive ISO values are taken as UTC. Unparsable input returns None.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparsable timestamp: {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _as_text(value: Any) -> Optional[str]:
    """Lists become newline-joined text; empty values become None."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = "\n".join(str(v).strip() for v in value if str(v).strip())
    text = str(value).strip()
    return text or None


def _as_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _to_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_chapters(raw: Any) -> list[Chapter]:
    """Chapters given as plain titles or as objects with an optional unit range."""
    chapters = []
    for item in raw or []:
        if isinstance(item, str):
            chapters.append(Chapter(title=item.strip()))
        elif isinstance(item, dict):
            start = item.get("start_index")
            end = item.get("end_index")
            chapters.append(Chapter(
                title=str(item.get("title") or "").strip(),
                gist=item.get("gist"),
                start_index=int(start) if start is not None else None,
                end_index=int(end) if end is not None else None,
            ))
    return chapters


def parse_sentences(raw: Any) -> list[TranscriptSentence]:
    sentences = []
    for item in raw or []:
        text = (item.get("text") or item.get("raw_text") or "").strip()
        if not text:
            continue
        sentences.append(TranscriptSentence(
            text=text,
            speaker_name=item.get("speaker_name"),
            start_time=_to_float(item.get("start_time")) or 0.0,
            end_time=_to_float(item.get("end_time")) or 0.0,
        ))
    return sentences


def _require_id(data: dict) -> str:
    doc_id = data.get("id")
    if doc_id is None or not str(doc_id).strip():
        raise ValueError(f"Document without id: {str(data)[:80]}")
    return str(doc_id).strip()


def parse_transcript(data: dict) -> Document:
    """Build a Document from a transcript export."""
    summary = data.get("summary") or {}

    minutes = _to_float(data.get("duration"))
    duration_seconds = round(minutes * 60) if minutes is not None else None

    return Document(
        id=_require_id(data),
        title=(data.get("title") or "").strip(),
        source_type="transcript",
        external_url=data.get("transcript_url") or data.get("external_url"),
        updated_at=parse_timestamp(data.get("date")) or parse_timestamp(data.get("updated_at")) or utcnow(),
        sentences=parse_sentences(data.get("sentences")),
        chapters=parse_chapters(summary.get("transcript_chapters") or data.get("chapters")),
        duration_seconds=duration_seconds,
        overview=_as_text(summary.get("overview")),
        short_summary=_as_text(summary.get("short_summary")),
        action_items=_as_text(summary.get("action_items")),
        keywords=_as_list(summary.get("keywords")),
        topics=_as_list(summary.get("topics_discussed")),
        metadata=dict(data.get("metadata") or {}),
        **{name: data.get(name) for name in FILTER_FIELDS},
    )


def parse_text_document(data: dict) -> Document:
    """Build a Document from a knowledge-base page."""
    content = data.get("content") or data.get("body") or data.get("text") or ""
    return Document(
        id=_require_id(data),
        title=(data.get("title") or "").strip(),
        source_type="text",
        external_url=data.get("external_url") or data.get("url"),
        updated_at=parse_timestamp(data.get("updated_at")) or utcnow(),
        content=content,
        chapters=parse_chapters(data.get("chapters")),
        duration_seconds=_to_float(data.get("duration_seconds")),
        overview=_as_text(data.get("overview")),
        short_summary=_as_text(data.get("short_summary")),
        keywords=_as_list(data.get("keywords")),
        topics=_as_list(data.get("topics")),
        metadata=dict(data.get("metadata") or {}),
        **{name: data.get(name) for name in FILTER_FIELDS},
    )


def parse_document(data: dict) -> Document:
    """Dispatch on shape: anything with ``sentences`` is a transcript."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    if "sentences" in data or data.get("source_type") == "transcript":
        return parse_transcript(data)
    return parse_text_document(data)


def load_documents(path: Union[str, Path]) -> list[Document]:
    """
    Load every document from a JSON file or a directory of JSON files.

    Args:
        path: File or directory path

    Returns:
        Parsed documents in file order
    """
    path = Path(path)
    files = sorted(path.glob("*.json")) if path.is_dir() else [path]

    documents = []
    for file in files:
        with open(file, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, dict) and "documents" in data:
            items = data["documents"]
        elif isinstance(data, list):
            items = data
        else:
            items = [data]

        documents.extend(parse_document(item) for item in items)
        logger.info(f"Loaded {len(items)} documents from {file}")

    return documents
