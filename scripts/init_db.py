"""
Create tables, seed default settings and optionally a sample capability matrix
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, create_tables, engine
from core.logging import setup_logging
from core.settings_store import SettingsStore
from models.base import ItemType
from models.onboarding_config import SaleType
from onboarding.config_resolver import OnboardingConfigRepository
from schemas.onboarding import MatrixUpdate
from sqlalchemy import select

logger = logging.getLogger(__name__)

SAMPLE_SALE_TYPE = "BYM"
SAMPLE_GROUPS = {
    "Platform": [
        ("Web Portal", [("User accounts", ItemType.STANDARD), ("Branding", ItemType.STANDARD)]),
        ("Mobile App", [("Push notifications", ItemType.BOLT_ON)]),
    ],
    "Payments": [
        ("Card Payments", [("Merchant account", ItemType.STANDARD)]),
    ],
}


async def seed_sample_matrix():
    async with async_session_maker() as session:
        existing = await session.execute(select(SaleType).where(SaleType.name == SAMPLE_SALE_TYPE))
        if existing.scalar_one_or_none() is not None:
            logger.info(f"Sale type {SAMPLE_SALE_TYPE} already exists, skipping sample matrix")
            return

        repository = OnboardingConfigRepository(session)
        sale_type = await repository.add_sale_type(SAMPLE_SALE_TYPE)

        updates = []
        for group_order, (group_name, capabilities) in enumerate(SAMPLE_GROUPS.items()):
            group = await repository.add_ticket_group(group_name, sort_order=group_order)
            for capability_order, (capability_name, items) in enumerate(capabilities):
                capability = await repository.add_capability(
                    capability_name, ticket_group_id=group.id, sort_order=capability_order
                )
                for item_order, (item_name, item_type) in enumerate(items):
                    await repository.add_item(capability.id, item_name, item_type, sort_order=item_order)
                updates.append(MatrixUpdate(sale_type_id=sale_type.id, capability_id=capability.id, enabled=True))

        await repository.batch_update_matrix(updates)
        logger.info(f"Seeded sample matrix for {SAMPLE_SALE_TYPE}")


async def init_database(seed_matrix: bool):
    logger.info("Connecting to database...")
    await create_tables()
    await SettingsStore(async_session_maker).seed_defaults()
    logger.info("Default settings seeded.")

    if seed_matrix:
        await seed_sample_matrix()

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed-matrix", action="store_true", help="Insert a sample BYM capability matrix")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(args.seed_matrix))
