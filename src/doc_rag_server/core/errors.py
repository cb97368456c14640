"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by the ingestion and
query pipelines, and the FastAPI handlers that translate them into HTTP
responses.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Keep the exception classes framework-agnostic (only the handlers know
  about FastAPI)
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("docrag.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class DocRagError(RuntimeError):
    """Base class for every error raised by the core."""

    public_message = "Operation failed"


class InvalidInputError(DocRagError):
    """Raised when a query or document text is empty or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.public_message = message


class ChunkingError(DocRagError):
    """Raised when a document cannot be chunked; fatal to the ingestion request."""

    public_message = "Failed to chunk document"


class GenerationError(DocRagError):
    """Raised when the embedding or completion provider fails or returns no data."""

    public_message = "Generation failed"


class EmbeddingError(GenerationError):
    """Raised when embedding generation fails."""


class IndexOperationError(DocRagError):
    """Raised when an indexing, search or delete call against the index fails."""

    public_message = "Search operation failed"


class DocumentNotFoundError(DocRagError):
    """Raised when a document record does not exist."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id
        self.public_message = "Document not found"


class JobNotFoundError(DocRagError):
    """Raised when a job id is unknown or no job queue is configured."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id
        self.public_message = "Job not found"


# ---------------------------------------------------------------------
# Status Mapping
# ---------------------------------------------------------------------

_STATUS_BY_ERROR: Dict[type, int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    DocumentNotFoundError: status.HTTP_404_NOT_FOUND,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    ChunkingError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    GenerationError: status.HTTP_502_BAD_GATEWAY,
    IndexOperationError: status.HTTP_502_BAD_GATEWAY,
}


def status_code_for(exc: DocRagError) -> int:
    """Return the HTTP status for a core error, walking the class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_payload(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def docrag_exception_handler(
    request: Request,
    exc: DocRagError,
) -> JSONResponse:
    """
    Translate a core error into a structured failure response.

    The original cause is logged; only the error's public message is
    returned to the client.
    """
    status_code = status_code_for(exc)

    if status_code >= 500:
        logger.error(
            "Request failed: %s %s (%s: %s)",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc,
            exc_info=exc.__cause__ or exc,
        )
    else:
        logger.info(
            "Request rejected: %s %s (%s)",
            request.method,
            request.url.path,
            exc,
        )

    return JSONResponse(
        status_code=status_code,
        content=error_payload(exc.public_message),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Reject malformed request bodies with 400 and the envelope used by every
    other failure, naming the first offending field.
    """
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location or 'body'}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"

    logger.info("Request rejected: %s %s (%s)", request.method, request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload(message),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DocRagError, docrag_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
