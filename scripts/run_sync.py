"""
Script to run one sync cycle for all configured sources (or the ones named)
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from api.main import build_aggregator
from core.database import async_session_maker, create_tables, engine
from core.logging import setup_logging
from core.settings_store import SettingsStore

logger = logging.getLogger(__name__)


async def run_sync(sources):
    """Sync the requested sources once and exit non-zero if any failed"""
    await create_tables()
    settings_store = SettingsStore(async_session_maker)
    aggregator = build_aggregator(settings_store)

    if not aggregator.source_names:
        logger.warning("No task sources configured. Skipping sync.")
        await engine.dispose()
        return 0

    try:
        if sources:
            results = [await aggregator.sync_source(name) for name in sources]
        else:
            results = await aggregator.sync_all()

        for result in results:
            if result.skipped:
                logger.info(f"{result.source}: skipped ({result.reason})")
            elif result.error:
                logger.error(f"{result.source}: {result.error}")
            else:
                logger.info(f"{result.source}: {result.count} tasks, {result.removed} removed")

        return 1 if any(r.error for r in results) else 0
    finally:
        await aggregator.close()
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("sources", nargs="*", help="Source names (default: all configured)")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(run_sync(args.sources)))
