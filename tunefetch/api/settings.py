import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..config import apply_overrides, validate_override
from ..core.service import ServiceRuntime
from ..db.models import Setting
from .deps import get_db, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


class SettingModel(BaseModel):
    key: str
    value: str

    class Config:
        from_attributes = True


@router.get("", response_model=List[SettingModel])
async def get_settings(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Setting))
    return result.scalars().all()


@router.put("")
async def update_setting(
    setting: SettingModel,
    db: AsyncSession = Depends(get_db),
    runtime: ServiceRuntime = Depends(get_runtime),
):
    error = validate_override(setting.key, setting.value)
    if error:
        raise HTTPException(status_code=422, detail=error)

    result = await db.execute(select(Setting).where(Setting.key == setting.key))
    existing = result.scalars().first()
    if existing:
        existing.value = setting.value
    else:
        new_setting = Setting(key=setting.key, value=setting.value)
        db.add(new_setting)
    await db.commit()

    # Re-apply every stored override on top of the environment defaults
    result = await db.execute(select(Setting))
    overrides = {s.key: s.value for s in result.scalars().all()}
    runtime.service.apply_settings(apply_overrides(runtime.base_settings, overrides))
    logger.info(f"Setting updated: {setting.key}")
    return {"status": "ok", "key": setting.key, "value": setting.value}
