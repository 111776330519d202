#!/usr/bin/env python3
"""
Load IMDb titles for one or more movie participants into Neo4j.

For each name, every joined row (title, principal, rating, person and
optional plot) is merged into the graph as Movie, Person, Genre and
Profession nodes. Re-running with the same names is safe: merges never
duplicate nodes or relationships.

Usage:
    python scripts/ingest.py --name "Terry Gilliam"
    python scripts/ingest.py --name "Terry Gilliam" --name "Jonathan Pryce"
    python scripts/ingest.py --apply-schema --name "Terry Gilliam"
    python scripts/ingest.py --delete --yes

Configuration is read from the environment or .env (NEO4J_URI,
NEO4J_USER, NEO4J_PASSWORD, IMDB_DB_PATH, OPENAI_API_KEY, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import signal
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.common import get_logger, get_settings, setup_logging
from src.common.errors import StoreUnavailableError
from src.ingestion import BatchDriver, DriverState, IngestionConfig
from src.knowledge_graph import apply_schema, clear_database
from src.sources import SqliteRowSource

logger = get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Run the requested actions; returns the process exit code."""
    settings = get_settings()
    config = IngestionConfig.from_settings(settings)
    if args.concurrency:
        config = dataclasses.replace(config, max_concurrency=args.concurrency)

    source = SqliteRowSource(args.db or settings.imdb_db_path)
    driver = BatchDriver.from_config(config, source)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, driver.cancel)
    except NotImplementedError:
        pass

    try:
        if args.delete:
            if not args.yes:
                print("Refusing to delete all graph data without --yes")
                return 2
            deleted = await clear_database(driver.store, confirm=True)
            print(f"All graph data deleted ({deleted} nodes).")

        if args.apply_schema:
            dimension = driver.embedder.dimension if driver.embedder else None
            await apply_schema(driver.store, embedding_dimension=dimension)

        if not args.name:
            return 0

        summaries = await driver.ingest_many(args.name)
        print(json.dumps([s.to_dict() for s in summaries], indent=2))

        if any(s.state == DriverState.ABORTED for s in summaries):
            return 1
        return 0

    except StoreUnavailableError as e:
        logger.error("store_unavailable", error=str(e))
        return 1

    finally:
        await driver.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Load IMDb participants into a Neo4j property graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--name",
        action="append",
        default=[],
        help="Movie participant to load (repeatable)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the IMDb SQLite database (default: IMDB_DB_PATH or im.db)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Rows merged concurrently (default: INGEST_CONCURRENCY or 1)",
    )
    parser.add_argument(
        "--apply-schema",
        action="store_true",
        help="Create constraints and indexes before loading",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete all graph data before loading",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm --delete",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, json_logs=args.json_logs or settings.json_logs)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
