"""
Sentence-aware text chunker.

Splits page text into chunks no longer than ``max_chunk_size`` (except a single
oversized sentence, which is emitted whole) so each fits the evaluator's
context window. Chunks are contiguous: concatenated in order they reproduce
the input exactly, and each carries its start offset in the page.
"""

import re
from typing import List

from ..schemas.content import Chunk, Page

# A run of non-terminal text followed by its terminal punctuation, or a bare
# punctuation run. Unterminated trailing text matches the first branch.
_SENTENCE = re.compile(r"[^.!?]+[.!?]*|[.!?]+")


def split_sentences(text: str) -> List[str]:
    return _SENTENCE.findall(text)


def split_text(text: str, max_chunk_size: int) -> List[str]:
    """
    Greedily pack sentences into chunks.

    Args:
        text: Text to split
        max_chunk_size: Target maximum chunk length in characters

    Returns:
        Ordered, non-overlapping chunks whose concatenation equals ``text``
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if not text:
        return []
    if len(text) <= max_chunk_size:
        return [text]

    chunks: List[str] = []
    current = ""
    for sentence in split_sentences(text):
        if current and len(current) + len(sentence) > max_chunk_size:
            chunks.append(current)
            current = sentence
        else:
            current += sentence
    if current:
        chunks.append(current)
    return chunks


def chunk_page(page: Page, max_chunk_size: int) -> List[Chunk]:
    """Split a page into chunks with page-relative start offsets."""
    chunks: List[Chunk] = []
    offset = 0
    for index, piece in enumerate(split_text(page.text, max_chunk_size)):
        chunks.append(Chunk(text=piece, start_offset=offset, index=index))
        offset += len(piece)
    return chunks
