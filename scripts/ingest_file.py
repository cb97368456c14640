"""
Upload one or more plain-text files and, with the in-memory queue, index
them in-process.

Usage: python scripts/ingest_file.py FILE [FILE ...]
"""

import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from doc_rag_server.config import get_settings
from doc_rag_server.core.logging_config import configure_logging
from doc_rag_server.jobs.worker import IngestionWorker
from doc_rag_server.services import build_services


async def main(paths) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings)

    try:
        for path in paths:
            with open(path, encoding="utf-8") as f:
                text = f.read()
            record = await services.ingestion.upload_document(os.path.basename(path), text)
            print(f"{path}: document {record.id}, {record.chunk_count} chunks, {record.status.value}")

        # A separate doc-rag-worker process cannot see an in-memory queue.
        if settings.queue_backend == "memory":
            worker = IngestionWorker(
                services.queue,
                services.embedder,
                services.index,
                services.documents,
                poll_interval=settings.worker_poll_interval,
            )
            print("Indexing in-process...")
            await worker.drain()
            for record in await services.documents.list():
                print(f"{record.filename}: {record.status.value}")
    finally:
        await services.aclose()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(main(sys.argv[1:]))
