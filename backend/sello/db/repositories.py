"""Data access for the AI workflow core.

Each repository wraps the request's AsyncSession. Writes commit immediately so
one call is one local transaction.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sello.models.ai_template import AITemplate
from sello.models.ai_workflow import AIWorkflow
from sello.models.service import Service
from sello.models.user import User


class TemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, template_id: str) -> AITemplate | None:
        return await self.session.get(AITemplate, template_id)

    async def list_all(self) -> list[AITemplate]:
        result = await self.session.execute(select(AITemplate).order_by(AITemplate.name.asc()))
        return list(result.scalars().all())


class AIWorkflowRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _reload(self, workflow_id: str) -> AIWorkflow:
        # picks up server-side defaults and the template relationship after a commit
        result = await self.session.execute(
            select(AIWorkflow).where(AIWorkflow.id == workflow_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def create(self, **fields) -> AIWorkflow:
        workflow = AIWorkflow(**fields)
        self.session.add(workflow)
        await self.session.commit()
        return await self._reload(workflow.id)

    async def find_by_id(self, workflow_id: str) -> AIWorkflow | None:
        result = await self.session.execute(select(AIWorkflow).where(AIWorkflow.id == workflow_id))
        return result.scalar_one_or_none()

    async def find_by_remote_id(self, n8n_workflow_id: str, user_id: str) -> AIWorkflow | None:
        """Ownership lookup: the n8n id only resolves for the user who owns it."""
        result = await self.session.execute(
            select(AIWorkflow).where(
                AIWorkflow.n8n_workflow_id == n8n_workflow_id,
                AIWorkflow.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def update(self, workflow: AIWorkflow, **fields) -> AIWorkflow:
        for field, value in fields.items():
            setattr(workflow, field, value)
        await self.session.commit()
        return await self._reload(workflow.id)

    async def delete(self, workflow: AIWorkflow):
        await self.session.delete(workflow)
        await self.session.commit()

    async def list_by_service(self, service_id: str) -> list[AIWorkflow]:
        result = await self.session.execute(
            select(AIWorkflow)
            .where(AIWorkflow.service_id == service_id)
            .order_by(AIWorkflow.created_at.desc())
        )
        return list(result.scalars().all())

    async def remote_ids_for_user(self, user_id: str) -> set[str]:
        result = await self.session.execute(
            select(AIWorkflow.n8n_workflow_id).where(
                AIWorkflow.user_id == user_id,
                AIWorkflow.n8n_workflow_id.isnot(None),
            )
        )
        return set(result.scalars().all())


class ServiceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, service_id: str) -> bool:
        result = await self.session.execute(select(Service.id).where(Service.id == service_id))
        return result.scalar_one_or_none() is not None


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def find_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user
