"""
Site settings endpoints — public read, admin write.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import CurrentSession, require_admin
from domain.responses import success_response
from services import settings_service

router = APIRouter(prefix="/api/settings", tags=["settings"])


class SettingRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., max_length=10_000)


class SettingsBulkRequest(BaseModel):
    settings: dict[str, str]


@router.get("")
async def get_settings(db: AsyncSession = Depends(get_db)):
    return success_response(data=await settings_service.get_all(db))


@router.post("")
async def set_setting(
    request: SettingRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    setting = await settings_service.set_one(db, request.key, request.value)
    await db.commit()
    return success_response(data={"key": setting.key, "value": setting.value})


@router.post("/bulk")
async def set_settings_bulk(
    request: SettingsBulkRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    saved = await settings_service.set_many(db, request.settings)
    await db.commit()
    return success_response(data=saved)


@router.delete("/{key}")
async def delete_setting(
    key: str,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await settings_service.delete(db, key)
    await db.commit()
    return success_response(data={"key": key, "deleted": True})
