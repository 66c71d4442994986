"""
Per-user visibility of task sources.

Per-user settings are checked first. Only admins fall back to the global
settings (they configured the global integrations); other users must
enable an integration in their own settings to see its tasks.
"""

from typing import Any, Iterable, List, Optional, Set
from models.base import TaskSource, LOCALLY_OWNED_SOURCES

INTEGRATION_SOURCES = {
    "issue_tracker_enabled": {TaskSource.ISSUE_TRACKER},
    "msgraph_enabled": {
        TaskSource.PLANNER,
        TaskSource.TODO,
        TaskSource.CALENDAR,
        TaskSource.EMAIL,
    },
    "spreadsheet_board_enabled": {TaskSource.SPREADSHEET_BOARD},
}

ADMIN_ROLE = "admin"


async def get_allowed_sources(
    user_id: Optional[int],
    user_role: Optional[str],
    user_settings: Any = None,
    settings: Any = None
) -> Set[TaskSource]:
    """Sources the user may see; locally-owned sources are always allowed"""
    allowed = set(LOCALLY_OWNED_SOURCES)
    if not user_id:
        return allowed

    async def check(key: str) -> bool:
        if user_settings is not None:
            user_value = await user_settings.get(user_id, key)
            if user_value is not None:
                return user_value == "true"
        if user_role == ADMIN_ROLE and settings is not None:
            return await settings.get(key) == "true"
        return False

    for key, sources in INTEGRATION_SOURCES.items():
        if await check(key):
            allowed.update(sources)

    return allowed


async def filter_tasks_by_allowed_sources(
    tasks: Iterable[Any],
    user_id: Optional[int],
    user_role: Optional[str],
    user_settings: Any = None,
    settings: Any = None
) -> List[Any]:
    """Keep only tasks whose source the user may see"""
    allowed = await get_allowed_sources(user_id, user_role, user_settings, settings)
    return [task for task in tasks if TaskSource(task.source) in allowed]
