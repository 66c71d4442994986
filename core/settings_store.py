"""
Runtime settings backed by the settings / user_settings tables.

Values are flat strings. Writers notify subscribers so that interval
changes reach the scheduler without a restart.
"""

from typing import Callable, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from models.settings import Setting, UserSetting, DEFAULT_SETTINGS
import logging

logger = logging.getLogger(__name__)

SettingListener = Callable[[str, Optional[str]], None]


class SettingsStore:
    """Global key/value settings"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._listeners: List[SettingListener] = []

    def subscribe(self, listener: SettingListener) -> None:
        self._listeners.append(listener)

    async def get(self, key: str) -> Optional[str]:
        async with self.session_factory() as session:
            row = await session.get(Setting, key)
            return row.value if row else None

    async def get_all(self) -> Dict[str, str]:
        async with self.session_factory() as session:
            result = await session.execute(select(Setting))
            return {row.key: row.value for row in result.scalars().all() if row.value is not None}

    async def set(self, key: str, value: Optional[str]) -> None:
        async with self.session_factory() as session:
            row = await session.get(Setting, key)
            if row is None:
                session.add(Setting(key=key, value=value))
            else:
                row.value = value
            await session.commit()

        logger.info(f"Setting updated: {key}")
        for listener in self._listeners:
            try:
                listener(key, value)
            except Exception as e:
                logger.error(f"Settings listener failed for {key}: {e}")

    async def seed_defaults(self) -> None:
        """Insert default values for keys that are not set yet"""
        async with self.session_factory() as session:
            for key, value in DEFAULT_SETTINGS.items():
                if await session.get(Setting, key) is None:
                    session.add(Setting(key=key, value=value))
            await session.commit()


class UserSettingsStore:
    """Per-user overrides"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get(self, user_id: int, key: str) -> Optional[str]:
        async with self.session_factory() as session:
            return await self._get(session, user_id, key)

    async def get_all(self, user_id: int) -> Dict[str, str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserSetting).where(UserSetting.user_id == user_id)
            )
            return {row.key: row.value for row in result.scalars().all() if row.value is not None}

    async def set(self, user_id: int, key: str, value: Optional[str]) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserSetting).where(
                    UserSetting.user_id == user_id,
                    UserSetting.key == key
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(UserSetting(user_id=user_id, key=key, value=value))
            else:
                row.value = value
            await session.commit()

    @staticmethod
    async def _get(session: AsyncSession, user_id: int, key: str) -> Optional[str]:
        result = await session.execute(
            select(UserSetting.value).where(
                UserSetting.user_id == user_id,
                UserSetting.key == key
            )
        )
        return result.scalar_one_or_none()
