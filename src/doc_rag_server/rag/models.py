"""
Answer Data Models

Buffered answers and the typed events of a streamed answer.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..providers.llm import TokenUsage


class Citation(BaseModel):
    """A retrieved passage as exposed to the caller."""
    document_id: str
    preview: str = Field(..., description="Truncated passage text, not the full passage.")
    score: float
    page_number: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class Answer(BaseModel):
    text: str
    citations: List[Citation] = Field(default_factory=list)
    token_usage: Optional[TokenUsage] = None


StreamEventType = Literal["sources", "answer", "done", "error"]


class StreamEvent(BaseModel):
    """
    One event of a streamed answer.

    A stream is `sources`, then zero or more `answer` fragments in
    generation order, then exactly one terminal `done` or `error`.
    """

    type: StreamEventType
    content: Optional[str] = None
    sources: Optional[List[Citation]] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")

    @classmethod
    def of_sources(cls, citations: List[Citation]) -> "StreamEvent":
        return cls(type="sources", sources=citations)

    @classmethod
    def of_answer(cls, fragment: str) -> "StreamEvent":
        return cls(type="answer", content=fragment)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(type="done")

    @classmethod
    def failed(cls, message: str) -> "StreamEvent":
        return cls(type="error", error=message)
