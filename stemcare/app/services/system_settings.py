"""
Process-wide cache of the ``system_settings`` table.

The cache is explicit state with a lifecycle: ``init()`` binds it to a
session factory and loads once, ``reload()`` re-reads the table, and ``get()``
reloads when the snapshot is older than ``staleness_seconds``. When the table
cannot be read the documented defaults are served.
"""

import asyncio
import logging
import time
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stemcare.app.core.config import settings
from stemcare.app.models.system_setting import SystemSetting

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_SETTINGS: dict[str, Any] = {
    "systemName": "干细胞治疗档案管理系统",
    "systemVersion": "1.2.1",
    "adminEmail": "admin@system.com",
    "adminPhone": "400-888-8888",
    "systemDescription": "专业的干细胞治疗档案管理系统，提供全面的患者信息管理、治疗方案制定和数据分析功能。",
    "enableNotifications": True,
}


def decode_value(value: str | None, value_type: str) -> Any:
    """Convert a stored string to its typed value."""
    if value is None:
        return None
    if value_type == "boolean":
        return value.lower() == "true"
    if value_type == "number":
        try:
            number = float(value)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    return value


def encode_value(value: Any) -> tuple[str, str]:
    """Convert a typed value to ``(stored string, value_type)``."""
    if isinstance(value, bool):
        return ("true" if value else "false"), "boolean"
    if isinstance(value, (int, float)):
        return str(value), "number"
    return str(value), "string"


class SystemSettingsCache:
    """Cached key/value system settings with a staleness window."""

    def __init__(self, staleness_seconds: int | None = None):
        self.staleness_seconds = (
            settings.settings_staleness_seconds if staleness_seconds is None else staleness_seconds
        )
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._values: dict[str, Any] = dict(DEFAULT_SYSTEM_SETTINGS)
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    @property
    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return time.monotonic() - self._loaded_at >= self.staleness_seconds

    async def init(self, session_factory: async_sessionmaker[AsyncSession]) -> dict[str, Any]:
        """Bind the cache to a session factory and load it."""
        self._session_factory = session_factory
        return await self.reload()

    async def reload(self) -> dict[str, Any]:
        """
        Re-read the table.

        Raises:
            RuntimeError: If init() has not been called
        """
        if self._session_factory is None:
            raise RuntimeError("SystemSettingsCache.init() must be called before reload()")

        try:
            async with self._session_factory() as db:
                result = await db.execute(select(SystemSetting))
                stored = {
                    row.key: decode_value(row.value, row.value_type)
                    for row in result.scalars().all()
                }
            self._values = {**DEFAULT_SYSTEM_SETTINGS, **stored}
            logger.info(f"[SETTINGS] Loaded {len(stored)} system settings from database")
        except SQLAlchemyError as e:
            logger.error(f"[SETTINGS] Failed to load system settings, using defaults: {e}")
            self._values = dict(DEFAULT_SYSTEM_SETTINGS)

        self._loaded_at = time.monotonic()
        return dict(self._values)

    async def get(self) -> dict[str, Any]:
        """Current settings; reloads first when the snapshot is stale."""
        if not self.initialized:
            return dict(self._values)
        if self.is_stale:
            async with self._lock:
                if self.is_stale:
                    await self.reload()
        return dict(self._values)

    async def get_value(self, key: str, default: Any = None) -> Any:
        values = await self.get()
        return values.get(key, default)

    async def update(self, db: AsyncSession, changes: dict[str, Any]) -> dict[str, Any]:
        """Upsert the given keys, then reload the cache."""
        for key, value in changes.items():
            stored, value_type = encode_value(value)
            row = await db.get(SystemSetting, key)
            if row is None:
                db.add(SystemSetting(key=key, value=stored, value_type=value_type))
            else:
                row.value = stored
                row.value_type = value_type
        await db.commit()
        logger.info(f"[SETTINGS] Updated system settings: {sorted(changes)}")

        if self.initialized:
            return await self.reload()
        self._values = {**self._values, **changes}
        return dict(self._values)


# Global cache instance, bound in the application lifespan
system_settings = SystemSettingsCache()


def get_system_settings() -> SystemSettingsCache:
    return system_settings
