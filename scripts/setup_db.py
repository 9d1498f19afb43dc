#!/usr/bin/env python3
"""Setup script for the cabin booking engine: migrate, then seed rooms and refund policies."""

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from cabin_booking.core.config import settings
from cabin_booking.core.database import async_session_factory, close_db
from cabin_booking.models import BookingMode, Property, RefundPolicy, Room
from cabin_booking.services.refund_policy import RefundPolicyService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

server_dir = Path(__file__).parent.parent / "server"

SAMPLE_ROOMS = {
    Property.TAHOE: [("Lakeview", 4), ("Pine", 2), ("Cedar", 2), ("Loft", 6)],
    Property.CLEAR_LAKE: [("Dock House", 6)],
}

# (days_before_checkin, refund_percentage)
SAMPLE_POLICY_RULES = [(30, 100), (14, 50), (7, 0)]


def run_migrations():
    """Upgrade the database to the latest schema revision."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create rooms and default refund policies when the database is empty."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing_rooms = await db.scalar(select(func.count()).select_from(Room))
        if existing_rooms:
            logger.info("Rooms already exist, skipping room seed")
        else:
            for property_name, rooms in SAMPLE_ROOMS.items():
                for name, capacity in rooms:
                    db.add(Room(property=property_name.value, name=name, capacity_max=capacity))
            await db.commit()
            logger.info("Sample rooms created")

        existing_policies = await db.scalar(select(func.count()).select_from(RefundPolicy))
        if existing_policies:
            logger.info("Refund policies already exist, skipping policy seed")
            return

        policies = RefundPolicyService(db)
        for property_name in Property:
            for mode in BookingMode:
                await policies.replace_active_policy(
                    property_name,
                    mode,
                    f"Standard {property_name.value} {mode.value} policy",
                    SAMPLE_POLICY_RULES,
                )
        logger.info("Sample refund policies created")


async def seed():
    try:
        await create_sample_data()
    finally:
        await close_db()


def main():
    """Main setup function."""
    logger.info("Starting cabin booking engine setup...")

    run_migrations()
    asyncio.run(seed())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: uvicorn cabin_booking.main:app --reload")


if __name__ == "__main__":
    main()
