"""HTTP client for the n8n public API and the Telegram Bot API.

Every n8n call takes the API key to use explicitly. The administrative key is
handed to the client at construction and exposed as ``admin_key`` for the
callers that are allowed to act on behalf of the platform.
"""

import logging
import secrets
from dataclasses import dataclass

import httpx

from sello.config import Settings
from sello.services.errors import EngineCallError, EngineProvisioningError
from sello.services.template_service import CHAT_TRIGGER_NODE, TELEGRAM_CREDENTIAL_TYPE, find_trigger_node

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-N8N-API-KEY"
USERS_PAGE_LIMIT = 250
DEFAULT_EXECUTIONS_LIMIT = 20


@dataclass
class EngineUser:
    external_user_id: str
    api_key: str


@dataclass
class CreatedWorkflow:
    remote_id: str
    webhook_url: str | None
    document: dict


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        # n8n answers {"message": ...}, Telegram answers {"ok": false, "description": ...}
        return body.get("message") or body.get("description")
    return None


def _unwrap_list(payload) -> list:
    """n8n list endpoints answer either a bare list or {"data": [...], "nextCursor": ...}."""
    if isinstance(payload, dict):
        payload = payload.get("data", payload)
    if payload is None:
        return []
    return payload if isinstance(payload, list) else [payload]


class N8nClient:
    def __init__(
        self,
        base_url: str,
        admin_key: str,
        telegram_api_url: str = "https://api.telegram.org",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.admin_key = admin_key
        self.telegram_api_url = telegram_api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "N8nClient":
        return cls(
            base_url=settings.N8N_BASE_URL,
            admin_key=settings.N8N_ADMIN_KEY,
            telegram_api_url=settings.TELEGRAM_API_URL,
            timeout=settings.N8N_TIMEOUT,
        )

    async def _request(
        self,
        method: str,
        url: str,
        action: str,
        api_key: str | None = None,
        json=None,
        params: dict | None = None,
    ) -> httpx.Response:
        headers = {API_KEY_HEADER: api_key} if api_key else {}
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.HTTPError as e:
            # the exception text can carry the URL, and Telegram URLs embed the bot token
            logger.error(f"Failed to {action}: {type(e).__name__}")
            raise EngineCallError(None, f"Failed to {action}") from e

        if response.is_error:
            message = _error_message(response) or f"Failed to {action}"
            logger.error(f"Failed to {action}: HTTP {response.status_code} {message}")
            raise EngineCallError(response.status_code, message)
        return response

    def _api(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    def webhook_url_for(self, document: dict) -> str | None:
        """Public URL of the workflow's trigger, or None when it has no trigger node."""
        trigger = find_trigger_node(document.get("nodes"))
        if trigger is None:
            return None
        if trigger.get("type") == CHAT_TRIGGER_NODE:
            if not trigger.get("webhookId"):
                return None
            return f"{self.base_url}/webhook/{trigger['webhookId']}/chat"
        path = (trigger.get("parameters") or {}).get("path") or trigger.get("webhookId")
        if not path:
            return None
        return f"{self.base_url}/webhook/{path}"

    # ── Users ─────────────────────────────────────────────────────────────

    async def _list_users(self) -> list[dict]:
        users = []
        cursor = None
        while True:
            response = await self._request(
                "GET",
                self._api("/users"),
                "list n8n users",
                api_key=self.admin_key,
                params={"limit": USERS_PAGE_LIMIT, "cursor": cursor},
            )
            payload = response.json()
            users.extend(u for u in _unwrap_list(payload) if u)
            cursor = payload.get("nextCursor") if isinstance(payload, dict) else None
            if not cursor:
                return users

    async def find_user_by_email(self, email: str) -> dict | None:
        for user in await self._list_users():
            if user.get("email") == email:
                return user
        return None

    async def _login_for_api_key(self, email: str, password: str) -> str | None:
        try:
            response = await self._request(
                "POST",
                self._api("/login"),
                "log in as new n8n user",
                json={"email": email, "password": password},
            )
        except EngineCallError:
            return None

        try:
            body = response.json()
        except ValueError:
            body = {}
        data = body.get("data") if isinstance(body, dict) else None
        return (
            (data or {}).get("apiKey")
            or (body.get("apiKey") if isinstance(body, dict) else None)
            or response.headers.get("x-n8n-api-key")
        )

    async def find_or_create_user(self, email: str, first_name: str, last_name: str = "") -> EngineUser:
        """Return the n8n user for ``email``, creating it when missing.

        n8n does not let an admin mint API keys for other users, so an existing
        user is paired with the admin key. A newly created user gets a personal
        key when logging in with its throwaway password yields one; otherwise
        the admin key is used as well.
        """
        try:
            existing = await self.find_user_by_email(email)
        except EngineCallError as e:
            logger.warning(f"Could not look up n8n users, will attempt to create: {e.message}")
            existing = None

        if existing:
            logger.info(f"n8n user already exists for {email}: {existing['id']}")
            return EngineUser(external_user_id=str(existing["id"]), api_key=self.admin_key)

        password = secrets.token_hex(32)
        try:
            response = await self._request(
                "POST",
                self._api("/users"),
                "create n8n user",
                api_key=self.admin_key,
                json=[
                    {
                        "email": email,
                        "firstName": first_name,
                        "lastName": last_name,
                        "password": password,
                        "role": "global:member",
                    }
                ],
            )
        except EngineCallError as e:
            if e.status_code == 400 and "already" in e.message.lower():
                try:
                    existing = await self.find_user_by_email(email)
                except EngineCallError:
                    existing = None
                if existing:
                    logger.info(f"Found existing n8n user after create error: {existing['id']}")
                    return EngineUser(external_user_id=str(existing["id"]), api_key=self.admin_key)
            raise EngineProvisioningError(e.message or "Failed to create n8n user") from e

        payload = response.json()
        created = payload[0] if isinstance(payload, list) and payload else payload
        if isinstance(created, dict) and isinstance(created.get("data"), list) and created["data"]:
            created = created["data"][0]
        user_id = (created.get("user") or {}).get("id") or created.get("id")
        if not user_id:
            raise EngineProvisioningError("n8n did not return an id for the created user")
        logger.info(f"Created n8n user {user_id}")

        api_key = await self._login_for_api_key(email, password)
        if api_key:
            return EngineUser(external_user_id=str(user_id), api_key=api_key)

        logger.warning(f"Could not obtain a personal API key for n8n user {user_id}, using the admin key")
        return EngineUser(external_user_id=str(user_id), api_key=self.admin_key)

    # ── Workflows ─────────────────────────────────────────────────────────

    async def list_workflows(self, api_key: str) -> list[dict]:
        response = await self._request("GET", self._api("/workflows"), "fetch workflows", api_key=api_key)
        return _unwrap_list(response.json())

    async def get_workflow(self, api_key: str, workflow_id: str) -> dict:
        response = await self._request(
            "GET", self._api(f"/workflows/{workflow_id}"), "fetch workflow", api_key=api_key
        )
        return response.json()

    async def create_workflow(self, api_key: str, submission: dict) -> CreatedWorkflow:
        response = await self._request(
            "POST", self._api("/workflows"), "create workflow", api_key=api_key, json=submission
        )
        document = response.json()
        remote_id = str(document["id"])
        logger.info(f"Created n8n workflow {remote_id}")
        return CreatedWorkflow(remote_id=remote_id, webhook_url=self.webhook_url_for(document), document=document)

    async def update_workflow(self, api_key: str, workflow_id: str, submission: dict) -> dict:
        response = await self._request(
            "PUT", self._api(f"/workflows/{workflow_id}"), "update workflow", api_key=api_key, json=submission
        )
        logger.info(f"Updated n8n workflow {workflow_id}")
        return response.json()

    async def set_active(self, api_key: str, workflow_id: str, active: bool):
        endpoint = "activate" if active else "deactivate"
        await self._request(
            "POST",
            self._api(f"/workflows/{workflow_id}/{endpoint}"),
            f"{endpoint} workflow",
            api_key=api_key,
            json={},
        )
        logger.info(f"{'Activated' if active else 'Deactivated'} n8n workflow {workflow_id}")

    async def delete_workflow(self, api_key: str, workflow_id: str):
        await self._request("DELETE", self._api(f"/workflows/{workflow_id}"), "delete workflow", api_key=api_key)
        logger.info(f"Deleted n8n workflow {workflow_id}")

    # ── Executions ────────────────────────────────────────────────────────

    async def execute(self, api_key: str, workflow_id: str, payload: dict | None = None) -> dict:
        response = await self._request(
            "POST",
            self._api(f"/workflows/{workflow_id}/execute"),
            "execute workflow",
            api_key=api_key,
            json=payload or {},
        )
        return response.json()

    async def list_executions(
        self, api_key: str, workflow_id: str, limit: int | None = None, status: str | None = None
    ) -> list[dict]:
        response = await self._request(
            "GET",
            self._api("/executions"),
            "fetch executions",
            api_key=api_key,
            params={"workflowId": workflow_id, "limit": limit or DEFAULT_EXECUTIONS_LIMIT, "status": status},
        )
        return _unwrap_list(response.json())

    async def get_execution(self, api_key: str, execution_id: str) -> dict:
        response = await self._request(
            "GET", self._api(f"/executions/{execution_id}"), "fetch execution status", api_key=api_key
        )
        return response.json()

    # ── Credentials ───────────────────────────────────────────────────────

    async def create_bot_credential(self, api_key: str, token: str, name: str) -> str:
        response = await self._request(
            "POST",
            self._api("/credentials"),
            "create Telegram credential",
            api_key=api_key,
            json={"name": name, "type": TELEGRAM_CREDENTIAL_TYPE, "data": {"accessToken": token}},
        )
        credential_id = str(response.json()["id"])
        logger.info(f"Created n8n credential {credential_id} ({name})")
        return credential_id

    async def delete_bot_credential(self, api_key: str, credential_id: str):
        await self._request(
            "DELETE", self._api(f"/credentials/{credential_id}"), "delete Telegram credential", api_key=api_key
        )
        logger.info(f"Deleted n8n credential {credential_id}")

    # ── Telegram Bot API ──────────────────────────────────────────────────

    async def _telegram(self, token: str, method: str, action: str, json: dict | None = None):
        response = await self._request("POST", f"{self.telegram_api_url}/bot{token}/{method}", action, json=json)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict) or not body.get("ok", False):
            message = (body.get("description") if isinstance(body, dict) else None) or f"Failed to {action}"
            logger.error(f"Failed to {action}: {message}")
            raise EngineCallError(response.status_code, message)

    async def register_bot_webhook(self, token: str, webhook_url: str):
        await self._telegram(token, "setWebhook", "register Telegram webhook", json={"url": webhook_url})
        logger.info("Registered Telegram webhook")

    async def delete_bot_webhook(self, token: str):
        await self._telegram(token, "deleteWebhook", "delete Telegram webhook")
        logger.info("Deleted Telegram webhook")

    # ── Prompt generation ─────────────────────────────────────────────────

    async def generate_system_prompt(self, webhook_url: str, assistant_type: str, service_id: str) -> str:
        """Ask the prompt-generation workflow to draft a system prompt."""
        response = await self._request(
            "POST",
            webhook_url,
            "generate system prompt",
            json={"assistantType": assistant_type, "serviceId": service_id},
        )
        try:
            body = response.json()
        except ValueError:
            return response.text.strip()

        if isinstance(body, list) and body:
            body = body[0]
        if isinstance(body, dict):
            prompt = body.get("systemPrompt") or body.get("output") or body.get("text")
            if prompt:
                return prompt
        if isinstance(body, str) and body:
            return body
        raise EngineCallError(response.status_code, "Prompt generation workflow returned no prompt")
