"""
Query Routes

Buffered and streamed question answering over the indexed documents.

Stream format (Server-Sent Events), one JSON object per event:

    data: {"type": "sources", "sources": [...]}

    data: {"type": "answer", "content": "..."}

    data: {"type": "done"}

A failure after the stream has started is sent as
`data: {"type": "error", "error": "..."}` and ends the stream.
"""

from __future__ import annotations

import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..rag.models import StreamEvent
from ..rag.service import QueryService
from .dependencies import get_query_service
from .models import Envelope, QueryRequest, QueryResponse

router = APIRouter(prefix="/query", tags=["query"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.model_dump(mode='json', exclude_none=True))}\n\n"


@router.post("", response_model=Envelope[QueryResponse])
async def query(
    req: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> Envelope[QueryResponse]:
    answer = await service.query(req.query, top_k=req.top_k, document_id=req.document_id)
    return Envelope(
        data=QueryResponse(
            answer=answer.text,
            sources=answer.citations,
            token_usage=answer.token_usage,
        )
    )


@router.post("/stream")
async def query_stream(
    req: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> StreamingResponse:
    # Raises before the response starts on invalid input.
    events = await service.query_streaming(
        req.query,
        top_k=req.top_k,
        document_id=req.document_id,
    )

    async def event_source() -> AsyncIterator[str]:
        try:
            async for event in events:
                yield format_sse(event)
        finally:
            # Client disconnects land here; closing stops provider reads.
            await events.aclose()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
