"""Create the pgvector extension and the document, index and job tables."""

import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from doc_rag_server.config import get_settings
from doc_rag_server.db.session import create_engine, init_schema


async def main() -> int:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    try:
        print("Creating search index and tables...")
        await init_schema(engine)
    except Exception as e:
        print(f"Failed to create search index: {e}")
        return 1
    finally:
        await engine.dispose()

    print("Search index created successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
