"""
Global runtime settings.

Writes go through SettingsStore.set, so listeners (sync intervals, enabled
flags) pick up the change without a restart.
"""

from typing import Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from api.dependencies import CurrentUser, get_current_user, get_settings_store
from core.settings_store import SettingsStore
from schemas.api import SettingResponse, SettingUpdate
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/settings", tags=["Settings"])

EDITOR_ROLES = {"admin", "editor"}


def require_store(store: Optional[SettingsStore] = Depends(get_settings_store)) -> SettingsStore:
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Settings not available")
    return store


@router.get("", response_model=Dict[str, str])
async def list_settings(store: SettingsStore = Depends(require_store)):
    return await store.get_all()


@router.put("/{key}", response_model=SettingResponse)
async def update_setting(
    key: str,
    body: SettingUpdate,
    store: SettingsStore = Depends(require_store),
    user: Optional[CurrentUser] = Depends(get_current_user)
):
    """Update one global setting (admin or editor only)"""
    if user is None or user.role not in EDITOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Editor role required")

    logger.info(f"PUT /settings/{key} by user {user.id}")
    await store.set(key, body.value)
    return SettingResponse(key=key, value=body.value)
