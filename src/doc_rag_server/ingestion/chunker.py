"""
Text Chunker

Turns extracted document text into ordered, overlapping, page-aware
passages.

Algorithm
---------
1. Optionally split the text into pages on form feeds or runs of three or
   more newlines. Pages are trimmed; empty pages are skipped but keep their
   position for page numbering.
2. Split each page into sentence-like units on `.`, `!` or `?` followed by
   whitespace.
3. Greedily pack sentences into a buffer bounded by `max_chunk_size`. When
   a sentence does not fit, the buffer is emitted and the next one is
   seeded with the last `chunk_overlap // 5` words of the emitted chunk.
4. A sentence longer than `max_chunk_size` is split on spaces into forced
   pieces. No overlap is carried between forced pieces; the last piece
   becomes the new buffer.
5. Passages get ids `{document_id}-chunk-{index}` in emission order and
   `total_chunks` is filled in once the whole document is known.
"""

from __future__ import annotations

import re
from typing import List, Optional

from .models import ChunkingOptions, Passage, passage_id_for

PAGE_BREAK_RE = re.compile(r"\f|\n{3,}")
SENTENCE_END_RE = re.compile(r"([.!?])\s+")

# Approximate characters per word used to turn the overlap budget into words.
CHARS_PER_WORD = 5

DEFAULT_OPTIONS = ChunkingOptions()


def split_pages(text: str, split_on_page_breaks: bool = True) -> List[str]:
    """Split raw text into page segments (untrimmed, empties kept)."""
    if not split_on_page_breaks:
        return [text]
    return PAGE_BREAK_RE.split(text)


def split_sentences(text: str) -> List[str]:
    """Split text into trimmed, non-empty sentence-like units."""
    marked = SENTENCE_END_RE.sub(r"\1\n", text)
    return [s.strip() for s in marked.split("\n") if s.strip()]


def overlap_tail(text: str, chunk_overlap: int) -> str:
    """Return the trailing words of `text` used to seed the next chunk."""
    word_count = chunk_overlap // CHARS_PER_WORD
    if word_count <= 0:
        return ""
    return " ".join(text.split(" ")[-word_count:])


def _seed_chunk(previous: str, sentence: str, max_size: int, overlap: int) -> str:
    """
    Start a new chunk with the overlap tail of `previous` followed by `sentence`.

    Leading tail words are dropped until the seeded chunk fits `max_size`.
    """
    tail_words = overlap_tail(previous, overlap).split()
    while tail_words and len(" ".join(tail_words)) + 1 + len(sentence) > max_size:
        tail_words.pop(0)
    if not tail_words:
        return sentence
    return f"{' '.join(tail_words)} {sentence}"


def _force_split(sentence: str, max_size: int) -> List[str]:
    """
    Split an oversize sentence on spaces.

    Pieces never exceed `max_size` unless a single word does. The returned
    list always ends with the (possibly short) remainder.
    """
    pieces: List[str] = []
    current = ""

    for word in sentence.split(" "):
        if not word:
            continue
        if not current:
            current = word
        elif len(current) + 1 + len(word) > max_size:
            pieces.append(current)
            current = word
        else:
            current = f"{current} {word}"

    if current:
        pieces.append(current)
    return pieces


def split_text(text: str, max_size: int, overlap: int) -> List[str]:
    """
    Pack the sentences of a single page into chunk strings.

    Parameters
    ----------
    text : str
        Trimmed page text.
    max_size : int
        Length budget of a chunk.
    overlap : int
        Overlap budget in characters (converted to words).

    Returns
    -------
    List[str]
        Chunk texts in order.
    """
    chunks: List[str] = []
    current = ""

    for sentence in split_sentences(text):
        if len(sentence) > max_size:
            if current:
                chunks.append(current.strip())
                current = ""

            pieces = _force_split(sentence, max_size)
            chunks.extend(pieces[:-1])
            current = pieces[-1] if pieces else ""
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_size:
            current = candidate
            continue

        if current:
            chunks.append(current.strip())
            current = _seed_chunk(current, sentence, max_size, overlap)
        else:
            current = sentence

    if current.strip():
        chunks.append(current.strip())

    return chunks


def chunk_document(
    text: str,
    document_id: str,
    options: Optional[ChunkingOptions] = None,
) -> List[Passage]:
    """
    Split a document's text into passages.

    Parameters
    ----------
    text : str
        Extracted document text. Empty or whitespace-only text yields an
        empty list.
    document_id : str
        Owning document id, used to derive passage ids.
    options : Optional[ChunkingOptions]
        Chunking options; defaults to 1000 / 200 / page splitting on.

    Returns
    -------
    List[Passage]
        Ordered passages sharing the same `total_chunks`.

    Notes
    -----
    Pages are numbered only when more than one non-empty page remains, so a
    trailing page break does not make a single-page document multi-page.
    A numbered page keeps its position among all split segments, empty ones
    included.
    """
    opts = options or DEFAULT_OPTIONS

    # (1-based position in the source, trimmed text) for non-empty pages
    pages = [
        (position, raw_page.strip())
        for position, raw_page in enumerate(split_pages(text, opts.split_on_page_breaks), start=1)
        if raw_page.strip()
    ]
    multi_page = len(pages) > 1

    drafts: List[tuple[str, Optional[int]]] = []
    for position, page_text in pages:
        page_number = position if multi_page else None
        for chunk_text in split_text(page_text, opts.max_chunk_size, opts.chunk_overlap):
            drafts.append((chunk_text, page_number))

    total = len(drafts)
    return [
        Passage(
            id=passage_id_for(document_id, index),
            document_id=document_id,
            chunk_index=index,
            text=chunk_text,
            page_number=page_number,
            total_chunks=total,
        )
        for index, (chunk_text, page_number) in enumerate(drafts)
    ]
