"""System settings API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from stemcare.app.db.base import get_db
from stemcare.app.schemas.settings import SystemSettingsResponse, SystemSettingsUpdate
from stemcare.app.services.system_settings import SystemSettingsCache, get_system_settings

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("/general", response_model=SystemSettingsResponse)
async def get_general_settings(
    cache: SystemSettingsCache = Depends(get_system_settings),
) -> SystemSettingsResponse:
    """Get the general system settings (served from the cache)."""
    return SystemSettingsResponse.model_validate(await cache.get())


@router.put("/general", response_model=SystemSettingsResponse)
async def update_general_settings(
    update: SystemSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    cache: SystemSettingsCache = Depends(get_system_settings),
) -> SystemSettingsResponse:
    """
    Update the general system settings and reload the cache.

    Raises:
        HTTPException: 400 if no field was given
    """
    changes = update.changes()
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No settings to update"
        )

    values = await cache.update(db, changes)
    return SystemSettingsResponse.model_validate(values)
