"""
Worker Process Entry Point

Runs `worker_concurrency` ingestion worker loops against the shared job
queue until interrupted. Installed as the `doc-rag-worker` console script.
"""

from __future__ import annotations

import asyncio
import logging

from .config import Settings, get_settings
from .jobs.worker import IngestionWorker, default_worker_id
from .services import build_services
from .core.logging_config import configure_logging

logger = logging.getLogger("docrag.worker")


async def run_workers(settings: Settings) -> None:
    services = build_services(settings)
    if services.queue is None:
        logger.error("No job queue configured (queue_backend=disabled); nothing to do")
        await services.aclose()
        return
    if settings.queue_backend == "memory":
        logger.warning("In-memory queue is process-local; this worker only sees its own jobs")

    workers = [
        IngestionWorker(
            services.queue,
            services.embedder,
            services.index,
            services.documents,
            worker_id=default_worker_id(slot),
            poll_interval=settings.worker_poll_interval,
        )
        for slot in range(settings.worker_concurrency)
    ]

    try:
        await asyncio.gather(*(worker.run_forever() for worker in workers))
    finally:
        for worker in workers:
            worker.stop()
        await services.aclose()


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "Starting %d ingestion worker(s) on the %s queue",
        settings.worker_concurrency,
        settings.queue_backend,
    )
    try:
        asyncio.run(run_workers(settings))
    except KeyboardInterrupt:
        logger.info("Ingestion workers interrupted; shutting down")


if __name__ == "__main__":
    main()
