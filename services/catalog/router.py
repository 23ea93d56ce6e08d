"""
services/catalog/router.py
Public read-only catalog: bookable services and the home-screen banners.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.models.models import Banner, Service
from shared.schemas.schemas import BannerResponse, ServiceResponse

router = APIRouter(tags=["Catalog"])


@router.get("/services", response_model=List[ServiceResponse])
async def list_services(db: AsyncSession = Depends(get_db)):
    """Active services, alphabetical."""
    result = await db.execute(
        select(Service).where(Service.is_active == True).order_by(Service.name)
    )
    return [ServiceResponse.model_validate(s) for s in result.scalars()]


@router.get("/banners", response_model=List[BannerResponse])
async def list_banners(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Banner)
        .where(Banner.is_active == True)
        .order_by(Banner.order_index, Banner.created_at)
    )
    return [BannerResponse.model_validate(b) for b in result.scalars()]
