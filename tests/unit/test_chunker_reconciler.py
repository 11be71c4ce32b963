"""
Tests for services/chunker.py and services/reconciler.py

Coverage:
- Sentence splitting and greedy packing
- Contiguity: chunks concatenate back to the page text
- Offsets: each chunk starts where the previous one ended
- Reconciliation: exact, case-insensitive and fallback locations
- Context windows
"""

import pytest

from intone.schemas.content import Chunk, Page
from intone.services.chunker import chunk_page, split_sentences, split_text
from intone.services.reconciler import context_window, locate, reconcile


# ============================================================================
# CHUNKER
# ============================================================================


class TestSplitText:
    def test_short_text_is_single_chunk(self):
        assert split_text("Hello there.", 100) == ["Hello there."]

    def test_empty_text(self):
        assert split_text("", 100) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            split_text("text", 0)

    def test_sentences_keep_punctuation_and_trailing_text(self):
        assert split_sentences("One. Two! Three? tail") == ["One.", " Two!", " Three?", " tail"]

    def test_oversized_sentence_emitted_whole(self):
        long_sentence = "a" * 50 + "."

        chunks = split_text(long_sentence + " Short.", 20)

        assert chunks[0] == long_sentence
        assert "".join(chunks) == long_sentence + " Short."


class TestChunkPage:
    def test_long_page_splits_into_two_chunks(self):
        text = "This is a sentence. " * 475
        assert len(text) == 9500

        chunks = chunk_page(Page(source="https://example.com", text=text), 8000)

        assert len(chunks) == 2
        assert chunks[0].start_offset == 0
        assert chunks[1].start_offset == len(chunks[0].text)
        assert all(len(chunk.text) <= 8000 for chunk in chunks)
        assert "".join(chunk.text for chunk in chunks) == text

    def test_offsets_are_contiguous(self):
        text = "First sentence here. Second one follows! Third asks why? Fourth without end"

        chunks = chunk_page(Page(source="doc.txt", text=text), 25)

        assert [c.index for c in chunks] == list(range(len(chunks)))
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start_offset == previous.end_offset
        assert "".join(c.text for c in chunks) == text
        for chunk in chunks:
            assert text[chunk.start_offset:chunk.end_offset] == chunk.text


# ============================================================================
# RECONCILER
# ============================================================================


class TestReconciler:
    def test_locate_exact(self):
        location = locate("We utilize synergy", "synergy")

        assert (location.start, location.end, location.exact) == (11, 18, True)

    def test_locate_case_insensitive(self):
        location = locate("We utilize Synergy", "synergy")

        assert location.exact is True
        assert location.start == 11

    def test_locate_treats_needle_literally(self):
        assert locate("costs $5 (approx.)", "$5 (approx.)").exact is True

    def test_reconcile_translates_to_page_offsets(self):
        page_text = "Intro sentence. We utilize synergy here."
        chunk = Chunk(text=page_text[16:], start_offset=16, index=1)

        location = reconcile(chunk, "utilize")

        assert page_text[location.start:location.end] == "utilize"
        assert location.exact is True

    def test_reconcile_fallback_to_chunk_start(self):
        chunk = Chunk(text="Nothing relevant here.", start_offset=100, index=2)

        location = reconcile(chunk, "missing snippet")

        assert location.start == 100
        assert location.end == 100 + len("missing snippet")
        assert location.exact is False

    def test_context_window(self):
        text = "a" * 60 + "TARGET" + "b" * 60

        before, after = context_window(text, 60, 66)

        assert before == "a" * 50
        assert after == "b" * 50

    def test_context_window_at_edges(self):
        before, after = context_window("TARGET", 0, 6)

        assert before == ""
        assert after == ""
