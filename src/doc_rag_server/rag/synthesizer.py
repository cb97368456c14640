"""
Answer Synthesizer

Turns ranked passages into a grounded answer with citations, either as one
buffered completion or as a stream of typed events.

With no passages the fixed fallback answer is returned and the completion
provider is never called.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, List, Optional, Protocol, Sequence

from ..core.errors import DocRagError, GenerationError
from ..providers.llm import CompletionResult
from ..search.models import SearchResult
from .models import Answer, Citation, StreamEvent
from .prompts import NO_RESULTS_ANSWER, SYSTEM_PROMPT, build_context, preview

logger = logging.getLogger("docrag.synthesizer")


class SupportsCompletion(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
    ) -> CompletionResult: ...

    def complete_streaming(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
    ) -> AsyncGenerator[str, None]: ...


class AnswerSynthesizer:
    def __init__(
        self,
        llm: SupportsCompletion,
        preview_length: int = 200,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.llm = llm
        self.preview_length = preview_length
        self.system_prompt = system_prompt

    def citations(self, passages: Sequence[SearchResult]) -> List[Citation]:
        return [
            Citation(
                document_id=p.document_id,
                preview=preview(p.text, self.preview_length),
                score=p.score,
                page_number=p.page_number,
            )
            for p in passages
        ]

    async def answer(self, question: str, passages: Sequence[SearchResult]) -> Answer:
        """
        Produce a buffered answer.

        Raises
        ------
        GenerationError
            If the completion provider fails.
        """
        if not passages:
            return Answer(text=NO_RESULTS_ANSWER)

        completion = await self.llm.complete(
            self.system_prompt,
            question,
            context=build_context(passages),
        )
        return Answer(
            text=completion.text,
            citations=self.citations(passages),
            token_usage=completion.token_usage,
        )

    async def stream(
        self,
        question: str,
        passages: Sequence[SearchResult],
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Produce an answer as `sources`, `answer`* and one terminal event.

        Provider failures never escape: they end the stream with an `error`
        event. Closing this generator early closes the provider stream.
        """
        yield StreamEvent.of_sources(self.citations(passages))

        if not passages:
            yield StreamEvent.of_answer(NO_RESULTS_ANSWER)
            yield StreamEvent.done()
            return

        fragments = self.llm.complete_streaming(
            self.system_prompt,
            question,
            context=build_context(passages),
        )
        try:
            async for fragment in fragments:
                yield StreamEvent.of_answer(fragment)
        except DocRagError as exc:
            logger.error("Streaming answer failed: %s", exc)
            yield StreamEvent.failed(exc.public_message)
            return
        except Exception:
            logger.exception("Unexpected error while streaming answer")
            yield StreamEvent.failed(GenerationError.public_message)
            return
        finally:
            await fragments.aclose()

        yield StreamEvent.done()
