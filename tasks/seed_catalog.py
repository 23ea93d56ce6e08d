"""
tasks/seed_catalog.py
Fill an empty service catalog with the standard GetLife offerings.
Called on startup in development; a no-op once any service exists.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import session_scope
from shared.models.models import Service

logger = logging.getLogger(__name__)

DEFAULT_SERVICES = (
    ("Cleaning Service", "Pembersihan rumah standar", 150000, 120),
    ("Deep Cleaning", "Pembersihan menyeluruh termasuk dapur dan kamar mandi", 300000, 240),
    ("Massage Tradisional", "Pijat tradisional seluruh badan", 120000, 60),
    ("Massage Refleksi", "Pijat refleksi kaki", 100000, 60),
)


async def seed_services(db: AsyncSession) -> int:
    """Insert DEFAULT_SERVICES into an empty catalog. Returns how many rows were added."""
    if await db.scalar(select(func.count(Service.id))):
        return 0

    for name, description, price, minutes in DEFAULT_SERVICES:
        db.add(
            Service(
                name=name,
                description=description,
                base_price=Decimal(price),
                duration_minutes=minutes,
            )
        )
    await db.commit()

    logger.info(f"Seeded {len(DEFAULT_SERVICES)} services")
    return len(DEFAULT_SERVICES)


async def seed_catalog() -> int:
    async with session_scope() as db:
        return await seed_services(db)
