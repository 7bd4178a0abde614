from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from sello.db.database import get_db
from sello.db.repositories import TemplateRepository

router = APIRouter(prefix="/api/ai-templates", tags=["ai-templates"])


class TemplateSummary(BaseModel):
    id: str
    name: str
    kind: str
    form_config: dict
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class TemplateDetail(TemplateSummary):
    template: dict


@router.get("")
async def list_templates(db: AsyncSession = Depends(get_db)):
    templates = await TemplateRepository(db).list_all()
    return {"templates": [TemplateSummary.model_validate(t) for t in templates]}


@router.get("/{template_id}")
async def get_template(template_id: str, db: AsyncSession = Depends(get_db)):
    template = await TemplateRepository(db).get_by_id(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="AI template not found")
    return {"template": TemplateDetail.model_validate(template)}
