"""
Site settings: free-form key/value pairs the storefront reads at startup
(store banner, support WhatsApp, footer text, ...).
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import SiteSetting, utcnow
from domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100


async def get_all(db: AsyncSession) -> dict[str, str]:
    res = await db.execute(select(SiteSetting).order_by(SiteSetting.key))
    return {s.key: s.value for s in res.scalars().all()}


def _clean_key(key: str) -> str:
    key = (key or "").strip()
    if not key:
        raise ValidationError("Setting key is required", field="key")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"Setting key longer than {MAX_KEY_LENGTH} characters", field="key")
    return key


async def set_one(db: AsyncSession, key: str, value: str) -> SiteSetting:
    """Insert or overwrite a single setting."""
    key = _clean_key(key)
    res = await db.execute(select(SiteSetting).where(SiteSetting.key == key))
    setting = res.scalar_one_or_none()
    if setting:
        setting.value = value
        setting.updated_at = utcnow()
    else:
        setting = SiteSetting(key=key, value=value)
        db.add(setting)
    await db.flush()
    return setting


async def set_many(db: AsyncSession, values: dict[str, str]) -> dict[str, str]:
    if not values:
        raise ValidationError("No settings provided", field="settings")
    for key, value in values.items():
        await set_one(db, key, value)
    logger.info(f"{len(values)} site setting(s) saved")
    return await get_all(db)


async def delete(db: AsyncSession, key: str) -> None:
    res = await db.execute(select(SiteSetting).where(SiteSetting.key == key))
    setting = res.scalar_one_or_none()
    if not setting:
        raise NotFoundError("Setting", key)
    await db.delete(setting)
    await db.flush()
