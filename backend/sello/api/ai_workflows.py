from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sello.api.deps import get_ai_workflow_service, get_current_user
from sello.models.ai_workflow import AIWorkflow
from sello.models.user import User
from sello.services.ai_workflow_service import AIWorkflowService
from sello.services.errors import ValidationError

router = APIRouter(prefix="/api", tags=["ai-workflows"])


class AIWorkflowCreate(BaseModel):
    """Fields from the template's form config. Unknown form fields are ignored."""

    ai_template_id: str
    name: str = Field(min_length=3, max_length=100)
    system_prompt: str = Field(min_length=10, max_length=5000)
    telegram_token: str | None = None
    telegram_bot_username: str | None = None


class AIWorkflowUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    system_prompt: str | None = Field(default=None, min_length=10, max_length=5000)
    telegram_bot_username: str | None = None


class GeneratePromptRequest(BaseModel):
    assistant_type: str = Field(min_length=1, max_length=100)
    service_id: str


class TemplateRef(BaseModel):
    id: str
    name: str


class AIWorkflowResponse(BaseModel):
    id: str
    user_id: str
    service_id: str | None
    ai_template_id: str | None
    ai_template: TemplateRef | None = None
    name: str
    system_prompt: str
    n8n_workflow_id: str | None
    webhook_url: str | None
    is_active: bool
    telegram_bot_username: str | None = None
    has_telegram_token: bool = False
    n8n_credentials_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _to_response(w: AIWorkflow) -> AIWorkflowResponse:
    return AIWorkflowResponse(
        id=w.id,
        user_id=w.user_id,
        service_id=w.service_id,
        ai_template_id=w.ai_template_id,
        ai_template=TemplateRef(id=w.ai_template.id, name=w.ai_template.name) if w.ai_template else None,
        name=w.name,
        system_prompt=w.system_prompt,
        n8n_workflow_id=w.n8n_workflow_id,
        webhook_url=w.webhook_url,
        is_active=w.is_active,
        telegram_bot_username=w.telegram_bot_username,
        has_telegram_token=bool(w.telegram_token),
        n8n_credentials_id=w.n8n_credentials_id,
        created_at=w.created_at,
        updated_at=w.updated_at,
    )


@router.get("/services/{service_id}/ai-workflows")
async def list_service_ai_workflows(
    service_id: str,
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    workflows = await service.list_for_service(service_id)
    return {"workflows": [_to_response(w) for w in workflows]}


@router.post("/services/{service_id}/ai-workflows", status_code=201)
async def create_ai_workflow(
    service_id: str,
    req: AIWorkflowCreate,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    workflow = await service.create(
        user,
        service_id,
        ai_template_id=req.ai_template_id,
        name=req.name,
        system_prompt=req.system_prompt,
        telegram_token=req.telegram_token,
        telegram_bot_username=req.telegram_bot_username,
    )
    return {"workflow": _to_response(workflow)}


@router.post("/ai-workflows/generate-prompt")
async def generate_prompt(
    req: GeneratePromptRequest,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    system_prompt = await service.generate_prompt(req.assistant_type, req.service_id)
    return {"system_prompt": system_prompt}


@router.patch("/ai-workflows/{workflow_id}")
async def update_ai_workflow(
    workflow_id: str,
    req: AIWorkflowUpdate,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    fields = req.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise ValidationError("At least one of name, system_prompt or telegram_bot_username is required")

    workflow = await service.update(user, workflow_id, **fields)
    return {"workflow": _to_response(workflow)}


@router.patch("/ai-workflows/{workflow_id}/toggle")
async def toggle_ai_workflow(
    workflow_id: str,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    workflow = await service.toggle(user, workflow_id)
    return {"workflow": _to_response(workflow)}


@router.delete("/ai-workflows/{workflow_id}")
async def delete_ai_workflow(
    workflow_id: str,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    await service.delete(user, workflow_id)
    return {"message": "AI workflow deleted successfully"}
