"""Prompt text and context formatting for answer synthesis."""

from __future__ import annotations

from typing import Sequence

from ..search.models import SearchResult

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on the provided context.\n"
    "If the context doesn't contain relevant information, say so.\n"
    "Always cite your sources using the [N] notation."
)

NO_RESULTS_ANSWER = "I could not find any relevant information in the documents."


def build_context(passages: Sequence[SearchResult]) -> str:
    """Number passages `[1]..[n]` in ranked order, separated by blank lines."""
    return "\n\n".join(f"[{n}] {p.text}" for n, p in enumerate(passages, start=1))


def preview(text: str, length: int = 200) -> str:
    if len(text) <= length:
        return text
    return text[:length] + "..."
