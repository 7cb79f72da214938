"""Tests for strategy selection and chunk building."""

import pytest

from hybrid_rag.models import Chapter, Document
from hybrid_rag.processing.chunker import (
    ChunkBuilder,
    ChunkingConfig,
    ChunkingStrategy,
    Unit,
    clean_transcript_text,
    select_strategy,
    split_markdown,
    strategy_for_document,
)


class TestSelectStrategy:

    @pytest.mark.parametrize("size,expected", [
        (0, ChunkingStrategy.SINGLE),
        (899, ChunkingStrategy.SINGLE),
        (900, ChunkingStrategy.SPEAKER_TURNS),
        (1799, ChunkingStrategy.SPEAKER_TURNS),
        (1800, ChunkingStrategy.CHAPTERS),
        (7200, ChunkingStrategy.CHAPTERS),
    ])
    def test_duration_thresholds(self, size, expected):
        assert select_strategy(size, 900, 1800) == expected

    def test_document_with_duration(self, transcript_factory):
        config = ChunkingConfig()
        assert strategy_for_document(transcript_factory("a", 10, 10), config) == ChunkingStrategy.SINGLE
        assert strategy_for_document(transcript_factory("b", 10, 20), config) == ChunkingStrategy.SPEAKER_TURNS
        assert strategy_for_document(transcript_factory("c", 10, 45), config) == ChunkingStrategy.CHAPTERS

    def test_text_document_uses_character_count(self):
        config = ChunkingConfig(single_max_chars=100, speaker_turns_max_chars=1000)
        assert strategy_for_document(Document(id="t", content="x" * 50), config) == ChunkingStrategy.SINGLE
        assert strategy_for_document(Document(id="t", content="x" * 500), config) == ChunkingStrategy.SPEAKER_TURNS
        assert strategy_for_document(Document(id="t", content="x" * 5000), config) == ChunkingStrategy.CHAPTERS


class TestCleanTranscriptText:

    def test_groups_consecutive_speakers(self):
        units = [
            Unit(text="Hello.", speaker="Alice"),
            Unit(text="How are you?", speaker="Alice"),
            Unit(text="Fine.", speaker="Bob"),
            Unit(text="Great.", speaker="Alice"),
        ]
        assert clean_transcript_text(units) == (
            "Alice: Hello. How are you?\n\nBob: Fine.\n\nAlice: Great."
        )

    def test_paragraphs_without_speaker(self):
        units = [Unit(text="First paragraph."), Unit(text="Second paragraph.")]
        assert clean_transcript_text(units) == "First paragraph.\n\nSecond paragraph."

    def test_empty(self):
        assert clean_transcript_text([]) == ""


class TestSplitMarkdown:

    def test_no_headings_means_no_chapters(self):
        units, chapters = split_markdown("One para.\n\nTwo para.")
        assert [u.text for u in units] == ["One para.", "Two para."]
        assert chapters == []

    def test_headings_become_chapters(self):
        content = "Intro text.\n\n# Setup\nInstall it.\n\nConfigure it.\n\n## Usage\nRun it."
        units, chapters = split_markdown(content)

        assert [u.text for u in units] == ["Intro text.", "Install it.", "Configure it.", "Run it."]
        assert [(c.title, c.start_index, c.end_index) for c in chapters] == [
            ("General", 0, 1),
            ("Setup", 1, 3),
            ("Usage", 3, 4),
        ]

    def test_whitespace_normalized(self):
        units, _ = split_markdown("line one\n   line   two\n\n")
        assert units[0].text == "line one line two"


class TestChunkBuilder:

    def test_single_produces_no_chunks(self, transcript_factory):
        doc = transcript_factory("m1", 30, 10)
        assert ChunkBuilder().build(doc, ChunkingStrategy.SINGLE) == []

    def test_zero_units_produces_no_chunks(self):
        doc = Document(id="empty", content="   ")
        assert ChunkBuilder().build(doc, ChunkingStrategy.SPEAKER_TURNS) == []

    def test_speaker_turns_batches(self, transcript_factory):
        doc = transcript_factory("m1", 45, 20)
        chunks = ChunkBuilder().build(doc, ChunkingStrategy.SPEAKER_TURNS)

        assert len(chunks) == 3
        assert [c.id for c in chunks] == ["m1_chunk_0", "m1_chunk_1", "m1_chunk_2"]
        assert {c.section for c in chunks} == {"Discussion"}
        assert [c.order_index for c in chunks] == [0, 1, 2]
        assert [c.topic for c in chunks] == [
            "Discussion segment 1", "Discussion segment 2", "Discussion segment 3",
        ]
        assert [(c.unit_start, c.unit_end) for c in chunks] == [(0, 20), (20, 40), (40, 45)]
        assert chunks[0].speakers == ["Alice", "Bob"]
        assert chunks[0].start_time == 0.0
        assert chunks[0].end_time == 199.0
        assert chunks[0].content.startswith("Alice: Sentence 0")

    def test_chunks_carry_document_metadata(self, transcript_factory):
        doc = transcript_factory("m1", 25, 20, tenant_id="acme", product="billing", external_url="https://x/1")
        chunk = ChunkBuilder().build(doc, ChunkingStrategy.SPEAKER_TURNS)[0]

        assert chunk.doc_id == "m1"
        assert chunk.title == "Meeting m1"
        assert chunk.tenant_id == "acme"
        assert chunk.product == "billing"
        assert chunk.external_url == "https://x/1"
        assert chunk.updated_at == doc.updated_at

    def test_chapters_proportional_split(self, transcript_factory):
        doc = transcript_factory("m1", 30, 45)
        doc.chapters = [Chapter(title="Intro"), Chapter(title="Budget"), Chapter(gist="Wrap-up talk")]
        chunks = ChunkBuilder().build(doc, ChunkingStrategy.CHAPTERS)

        assert [c.section for c in chunks] == ["Intro", "Budget", "Wrap-up talk"]
        assert [(c.unit_start, c.unit_end) for c in chunks] == [(0, 10), (10, 20), (20, 30)]
        assert all(c.order_index == 0 for c in chunks)
        assert [c.topic for c in chunks] == ["Intro", "Budget", "Wrap-up talk"]

    def test_chapter_without_title_or_gist_is_numbered(self, transcript_factory):
        doc = transcript_factory("m1", 4, 45)
        doc.chapters = [Chapter(title="Intro"), Chapter()]
        chunks = ChunkBuilder().build(doc, ChunkingStrategy.CHAPTERS)
        assert [c.section for c in chunks] == ["Intro", "Chapter 2"]

    def test_long_chapter_is_batched_within_section(self, transcript_factory):
        doc = transcript_factory("m1", 50, 45)
        doc.chapters = [Chapter(title="Only", start_index=0, end_index=50)]
        chunks = ChunkBuilder(ChunkingConfig(batch_size=20)).build(doc, ChunkingStrategy.CHAPTERS)

        assert [c.section for c in chunks] == ["Only"] * 3
        assert [c.order_index for c in chunks] == [0, 1, 2]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]

    def test_chapters_fallback_equals_speaker_turns(self, transcript_factory):
        doc = transcript_factory("m1", 45, 45)
        builder = ChunkBuilder()

        fallback = builder.build(doc, ChunkingStrategy.CHAPTERS)
        speaker_turns = builder.build(doc, ChunkingStrategy.SPEAKER_TURNS)

        assert [(c.id, c.section, c.order_index, c.content) for c in fallback] == [
            (c.id, c.section, c.order_index, c.content) for c in speaker_turns
        ]

    def test_markdown_document_chapters(self):
        content = "# Install\nStep one.\n\nStep two.\n\n# Usage\nRun the tool."
        doc = Document(id="kb1", title="Guide", content=content)
        chunks = ChunkBuilder().build(doc, ChunkingStrategy.CHAPTERS)

        assert [(c.section, c.order_index) for c in chunks] == [("Install", 0), ("Usage", 0)]
        assert chunks[0].content == "Step one.\n\nStep two."

    def test_order_index_contiguous_per_section(self, transcript_factory):
        doc = transcript_factory("m1", 90, 45)
        doc.chapters = [Chapter(title="A"), Chapter(title="B")]
        chunks = ChunkBuilder(ChunkingConfig(batch_size=20)).build(doc, ChunkingStrategy.CHAPTERS)

        by_section: dict[str, list[int]] = {}
        for c in chunks:
            by_section.setdefault(c.section, []).append(c.order_index)
        for indexes in by_section.values():
            assert indexes == list(range(len(indexes)))

    def test_text_chunks_stay_within_char_cap(self):
        paragraphs = [f"Paragraph {i} " + "detail " * 60 for i in range(30)]
        doc = Document(id="kb1", title="Handbook", content="\n\n".join(paragraphs))
        config = ChunkingConfig(max_chunk_chars=1000)
        chunks = ChunkBuilder(config).build(doc, ChunkingStrategy.SPEAKER_TURNS)

        assert len(chunks) > 2
        assert all(len(c.content) <= 1000 for c in chunks)
        assert [c.order_index for c in chunks] == list(range(len(chunks)))
        # Every paragraph lands in exactly one chunk, in order
        assert chunks[0].unit_start == 0
        assert chunks[-1].unit_end == 30
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.unit_end == nxt.unit_start

    def test_oversized_paragraph_is_wrapped(self):
        doc = Document(id="kb1", content="# Policy\n" + "refund " * 700)
        chunks = ChunkBuilder(ChunkingConfig(max_chunk_chars=2000)).build(doc, ChunkingStrategy.CHAPTERS)

        assert len(chunks) == 3
        assert all(len(c.content) <= 2000 for c in chunks)
        assert [(c.section, c.order_index) for c in chunks] == [("Policy", 0), ("Policy", 1), ("Policy", 2)]
        assert " ".join(c.content for c in chunks) == ("refund " * 700).strip()

    def test_char_cap_does_not_resize_transcript_batches(self, transcript_factory):
        doc = transcript_factory("m1", 45, 20)
        chunks = ChunkBuilder(ChunkingConfig(max_chunk_chars=100)).build(doc, ChunkingStrategy.SPEAKER_TURNS)
        assert [(c.unit_start, c.unit_end) for c in chunks] == [(0, 20), (20, 40), (40, 45)]
