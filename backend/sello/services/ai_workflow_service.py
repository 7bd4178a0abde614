"""Provisioning and lifecycle of AI assistant workflows on n8n.

A local AIWorkflow row exists only once n8n has confirmed both creation and
activation, and its ``is_active`` flag only changes after n8n confirmed the
matching activate/deactivate call. Steps that are best-effort (Telegram
webhook management, remote teardown on delete) are collected as
``StepFailure`` entries instead of failing the operation.
"""

import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from sello.config import Settings, get_settings
from sello.db.repositories import AIWorkflowRepository, ServiceRepository, TemplateRepository
from sello.models.ai_workflow import AIWorkflow
from sello.models.user import User
from sello.services.crypto_service import decrypt_or_none, encrypt
from sello.services.errors import (
    AccountNotConnectedError,
    AppError,
    EngineCallError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sello.services.n8n_service import N8nClient
from sello.services.template_service import (
    bind_bot_credential,
    bind_trigger,
    clone_template,
    replace_literal,
    substitute_placeholders,
    to_clean_submission,
)

logger = logging.getLogger(__name__)

BOT_TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]+$")
BOT_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,64}$")


@dataclass
class StepFailure:
    step: str
    message: str


@dataclass
class TeardownReport:
    workflow_id: str
    failures: list[StepFailure] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failures


class AIWorkflowService:
    def __init__(self, session: AsyncSession, n8n: N8nClient, settings: Settings | None = None):
        self.n8n = n8n
        self.settings = settings or get_settings()
        self.templates = TemplateRepository(session)
        self.workflows = AIWorkflowRepository(session)
        self.services = ServiceRepository(session)

    async def _best_effort(self, step: str, call: Callable[[], Awaitable]) -> StepFailure | None:
        try:
            await call()
        except EngineCallError as e:
            logger.warning(f"Best-effort step '{step}' failed: {e.message}")
            return StepFailure(step=step, message=e.message)
        return None

    async def _get_owned(self, user: User, workflow_id: str, verb: str) -> AIWorkflow:
        workflow = await self.workflows.find_by_id(workflow_id)
        if workflow is None:
            raise NotFoundError("AI workflow not found")
        if workflow.user_id != user.id:
            raise ForbiddenError(f"You don't have permission to {verb} this workflow")
        return workflow

    async def _ensure_service(self, service_id: str):
        if not await self.services.exists(service_id):
            raise NotFoundError("Service not found")

    @staticmethod
    def _validate_bot_fields(token: str | None, username: str | None) -> tuple[str, str]:
        token = (token or "").strip()
        username = (username or "").strip().lstrip("@")
        if not token or not username:
            raise ValidationError("telegram_token and telegram_bot_username are required for this template")
        if not BOT_TOKEN_RE.match(token):
            raise ValidationError("telegram_token is not a valid Telegram bot token")
        if not BOT_USERNAME_RE.match(username):
            raise ValidationError("telegram_bot_username is not a valid Telegram username")
        return token, username

    @staticmethod
    def _validate_bot_username(workflow: AIWorkflow, telegram_bot_username: str) -> str:
        if not workflow.telegram_token or (workflow.ai_template and not workflow.ai_template.requires_bot):
            raise ValidationError("telegram_bot_username can only be set on a Telegram bot workflow")
        username = telegram_bot_username.strip().lstrip("@")
        if not BOT_USERNAME_RE.match(username):
            raise ValidationError("telegram_bot_username is not a valid Telegram username")
        return username

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_for_service(self, service_id: str) -> list[AIWorkflow]:
        await self._ensure_service(service_id)
        return await self.workflows.list_by_service(service_id)

    # ── Create ────────────────────────────────────────────────────────────

    async def _discard_remote(self, remote_id: str | None = None, credential_id: str | None = None):
        admin_key = self.n8n.admin_key
        if remote_id:
            await self._best_effort("discard n8n workflow", lambda: self.n8n.delete_workflow(admin_key, remote_id))
        if credential_id:
            await self._best_effort(
                "discard n8n credential", lambda: self.n8n.delete_bot_credential(admin_key, credential_id)
            )

    async def create(
        self,
        user: User,
        service_id: str,
        ai_template_id: str,
        name: str,
        system_prompt: str,
        telegram_token: str | None = None,
        telegram_bot_username: str | None = None,
    ) -> AIWorkflow:
        await self._ensure_service(service_id)
        template = await self.templates.get_by_id(ai_template_id)
        if template is None:
            raise NotFoundError("AI template not found")

        token, username = None, None
        if template.requires_bot:
            token, username = self._validate_bot_fields(telegram_token, telegram_bot_username)

        admin_key = self.n8n.admin_key
        webhook_id = secrets.token_hex(16)
        document = bind_trigger(clone_template(template.template), webhook_id, f"service-{service_id}-{webhook_id}")

        credential_id = None
        if token:
            credential_name = f"{username}_{service_id}_{int(time.time())}"
            credential_id = await self.n8n.create_bot_credential(admin_key, token, credential_name)
            document = bind_bot_credential(document, credential_id, credential_name)

        document = substitute_placeholders(document, system_prompt, token)
        submission = to_clean_submission(document, name)

        try:
            created = await self.n8n.create_workflow(admin_key, submission)
        except EngineCallError:
            await self._discard_remote(credential_id=credential_id)
            raise

        try:
            await self.n8n.set_active(admin_key, created.remote_id, True)
        except EngineCallError:
            await self._discard_remote(remote_id=created.remote_id, credential_id=credential_id)
            raise

        if token and created.webhook_url:
            # the user can retry through toggle, creation still succeeds
            await self._best_effort(
                "register Telegram webhook", lambda: self.n8n.register_bot_webhook(token, created.webhook_url)
            )

        workflow = await self.workflows.create(
            user_id=user.id,
            service_id=service_id,
            ai_template_id=template.id,
            name=name,
            system_prompt=system_prompt,
            n8n_workflow_id=created.remote_id,
            webhook_url=created.webhook_url,
            is_active=True,
            telegram_token=encrypt(token),
            telegram_bot_username=username,
            n8n_credentials_id=credential_id,
        )
        logger.info(f"AI workflow {workflow.id} created for service {service_id} (n8n {created.remote_id})")
        return workflow

    # ── Update ────────────────────────────────────────────────────────────

    async def _push_changes(self, workflow: AIWorkflow, changes: dict):
        admin_key = self.n8n.admin_key
        remote_id = workflow.n8n_workflow_id
        try:
            remote = await self.n8n.get_workflow(admin_key, remote_id)
            nodes = remote.get("nodes") or []
            if "system_prompt" in changes:
                nodes = replace_literal(nodes, workflow.system_prompt, changes["system_prompt"])

            submission = to_clean_submission({**remote, "nodes": nodes}, changes.get("name", workflow.name))
            await self.n8n.update_workflow(admin_key, remote_id, submission)

            # n8n keeps serving the old definition until the workflow is re-activated
            if workflow.is_active:
                await self.n8n.set_active(admin_key, remote_id, False)
                await self.n8n.set_active(admin_key, remote_id, True)
        except EngineCallError as e:
            logger.error(f"Error updating n8n workflow {remote_id}: {e.message}")
            raise EngineCallError(e.status_code, f"Failed to update workflow in n8n: {e.message}") from e

    async def update(
        self,
        user: User,
        workflow_id: str,
        name: str | None = None,
        system_prompt: str | None = None,
        telegram_bot_username: str | None = None,
    ) -> AIWorkflow:
        workflow = await self._get_owned(user, workflow_id, "update")

        changes = {}
        if name is not None and name != workflow.name:
            changes["name"] = name
        if system_prompt is not None and system_prompt != workflow.system_prompt:
            changes["system_prompt"] = system_prompt
        if telegram_bot_username is not None:
            username = self._validate_bot_username(workflow, telegram_bot_username)
            if username != workflow.telegram_bot_username:
                changes["telegram_bot_username"] = username

        # TODO: push other engine-bound fields once form configs grow beyond name and prompt
        if ("name" in changes or "system_prompt" in changes) and workflow.n8n_workflow_id:
            await self._push_changes(workflow, changes)

        if changes:
            workflow = await self.workflows.update(workflow, **changes)
            logger.info(f"AI workflow {workflow.id} updated: {', '.join(sorted(changes))}")
        return workflow

    # ── Toggle ────────────────────────────────────────────────────────────

    async def toggle(self, user: User, workflow_id: str) -> AIWorkflow:
        workflow = await self._get_owned(user, workflow_id, "change")
        new_state = not workflow.is_active

        await self.n8n.set_active(self.n8n.admin_key, workflow.n8n_workflow_id, new_state)

        token = decrypt_or_none(workflow.telegram_token, label=f"Telegram token of AI workflow {workflow.id}")
        if token:
            if new_state and workflow.webhook_url:
                webhook_url = workflow.webhook_url
                await self._best_effort(
                    "register Telegram webhook", lambda: self.n8n.register_bot_webhook(token, webhook_url)
                )
            elif not new_state:
                await self._best_effort("delete Telegram webhook", lambda: self.n8n.delete_bot_webhook(token))

        workflow = await self.workflows.update(workflow, is_active=new_state)
        logger.info(f"AI workflow {workflow.id} {'activated' if new_state else 'deactivated'}")
        return workflow

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete(self, user: User, workflow_id: str) -> TeardownReport:
        workflow = await self._get_owned(user, workflow_id, "delete")
        report = TeardownReport(workflow_id=workflow.id)

        admin_key = self.n8n.admin_key
        remote_id = workflow.n8n_workflow_id
        credential_id = workflow.n8n_credentials_id
        token = decrypt_or_none(workflow.telegram_token, label=f"Telegram token of AI workflow {workflow.id}")

        steps = []
        if token:
            steps.append(("delete Telegram webhook", lambda: self.n8n.delete_bot_webhook(token)))
        if remote_id:
            steps.append(("delete n8n workflow", lambda: self.n8n.delete_workflow(admin_key, remote_id)))
        if credential_id:
            steps.append(("delete n8n credential", lambda: self.n8n.delete_bot_credential(admin_key, credential_id)))

        for step, call in steps:
            failure = await self._best_effort(step, call)
            if failure:
                report.failures.append(failure)

        # an orphaned n8n workflow is preferable to a local row the user cannot remove
        await self.workflows.delete(workflow)
        if report.failures:
            logger.warning(f"AI workflow {report.workflow_id} deleted with {len(report.failures)} remote cleanup failure(s)")
        else:
            logger.info(f"AI workflow {report.workflow_id} deleted")
        return report

    # ── Prompt generation ─────────────────────────────────────────────────

    async def generate_prompt(self, assistant_type: str, service_id: str) -> str:
        await self._ensure_service(service_id)
        webhook_url = self.settings.N8N_PROMPT_GENERATION_WEBHOOK
        if not webhook_url:
            raise AppError(
                "Prompt generation workflow is not configured. "
                "Please set N8N_PROMPT_GENERATION_WEBHOOK environment variable."
            )
        return await self.n8n.generate_system_prompt(webhook_url, assistant_type, service_id)

    # ── Read-side proxy to n8n, scoped to the caller's own workflows ──────

    @staticmethod
    def _api_key_for(user: User) -> str:
        api_key = user.n8n_api_key
        if not user.n8n_enabled or not api_key:
            raise AccountNotConnectedError()
        return api_key

    async def _ensure_owns_remote(self, user: User, remote_id: str):
        # existence is not disclosed to non-owners: unknown ids are a 403 too
        if await self.workflows.find_by_remote_id(remote_id, user.id) is None:
            raise ForbiddenError("You don't have access to this workflow")

    async def list_remote_workflows(self, user: User) -> list[dict]:
        api_key = self._api_key_for(user)
        owned = await self.workflows.remote_ids_for_user(user.id)
        if not owned:
            return []
        remote = await self.n8n.list_workflows(api_key)
        return [w for w in remote if str(w.get("id")) in owned]

    async def get_remote_workflow(self, user: User, remote_id: str) -> dict:
        api_key = self._api_key_for(user)
        await self._ensure_owns_remote(user, remote_id)
        return await self.n8n.get_workflow(api_key, remote_id)

    async def execute_remote(self, user: User, remote_id: str, data: dict | None = None) -> dict:
        api_key = self._api_key_for(user)
        await self._ensure_owns_remote(user, remote_id)
        return await self.n8n.execute(api_key, remote_id, data)

    async def list_remote_executions(
        self, user: User, remote_id: str, limit: int | None = None, status: str | None = None
    ) -> list[dict]:
        api_key = self._api_key_for(user)
        await self._ensure_owns_remote(user, remote_id)
        return await self.n8n.list_executions(api_key, remote_id, limit=limit, status=status)

    async def get_remote_execution(self, user: User, execution_id: str) -> dict:
        api_key = self._api_key_for(user)
        try:
            execution = await self.n8n.get_execution(api_key, execution_id)
        except EngineCallError as e:
            # unknown ids look the same as other users' executions
            if e.status_code == 404:
                raise ForbiddenError("You don't have access to this execution") from e
            raise
        workflow_id = execution.get("workflowId")
        if workflow_id is None or await self.workflows.find_by_remote_id(str(workflow_id), user.id) is None:
            raise ForbiddenError("You don't have access to this execution")
        return execution
