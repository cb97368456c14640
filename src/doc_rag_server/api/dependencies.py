"""
Request-scoped access to the service handles built at startup.

Handlers depend on these functions instead of module-level singletons, so
tests can either pass a fake `Services` to `create_app()` or override a
single dependency.
"""

from __future__ import annotations

from fastapi import Request

from ..db.document_store import DocumentStore
from ..ingestion.service import IngestionService
from ..rag.service import QueryService
from ..services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_ingestion_service(request: Request) -> IngestionService:
    return get_services(request).ingestion


def get_query_service(request: Request) -> QueryService:
    return get_services(request).query


def get_document_store(request: Request) -> DocumentStore:
    return get_services(request).documents
