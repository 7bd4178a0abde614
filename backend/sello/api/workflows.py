from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sello.api.deps import get_account_service, get_ai_workflow_service, get_current_user
from sello.models.user import User
from sello.services.account_service import AccountService
from sello.services.ai_workflow_service import AIWorkflowService

router = APIRouter(prefix="/api", tags=["workflows"])


class ExecuteRequest(BaseModel):
    data: dict | None = None


@router.post("/workflows/connect")
async def connect_n8n(
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    result = await accounts.connect(user)
    already = result.pop("already_connected")
    message = "n8n account already connected" if already else "n8n account connected successfully"
    return {"message": message, "data": result}


@router.get("/workflows/status")
async def check_n8n_status(
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    return {"data": await accounts.check_and_auto_connect(user)}


@router.get("/workflows")
async def list_workflows(
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    workflows = await service.list_remote_workflows(user)
    return {"data": {"workflows": workflows}}


@router.get("/workflows/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    workflow = await service.get_remote_workflow(user, workflow_id)
    return {"data": {"workflow": workflow}}


@router.post("/workflows/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: str,
    req: ExecuteRequest | None = None,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    result = await service.execute_remote(user, workflow_id, req.data if req else None)
    return {"message": "Workflow execution started", "data": result}


@router.get("/workflows/{workflow_id}/executions")
async def list_executions(
    workflow_id: str,
    limit: int | None = Query(default=None, ge=1, le=250),
    status: str | None = None,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    executions = await service.list_remote_executions(user, workflow_id, limit=limit, status=status)
    return {"data": {"executions": executions}}


@router.get("/executions/{execution_id}")
async def get_execution(
    execution_id: str,
    user: User = Depends(get_current_user),
    service: AIWorkflowService = Depends(get_ai_workflow_service),
):
    execution = await service.get_remote_execution(user, execution_id)
    return {"data": {"execution": execution}}
