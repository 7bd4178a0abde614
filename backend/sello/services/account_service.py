import logging

from sqlalchemy.ext.asyncio import AsyncSession

from sello.db.repositories import UserRepository
from sello.models.user import User
from sello.services.errors import EngineCallError
from sello.services.n8n_service import N8nClient

logger = logging.getLogger(__name__)


def split_name(full_name: str | None) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "User", ""
    return parts[0], " ".join(parts[1:])


class AccountService:
    """Links a marketplace user to their n8n identity."""

    def __init__(self, session: AsyncSession, n8n: N8nClient):
        self.users = UserRepository(session)
        self.n8n = n8n

    async def _link(self, user: User, n8n_user_id: str, api_key: str):
        user.n8n_user_id = n8n_user_id
        user.n8n_api_key = api_key
        user.n8n_enabled = True
        await self.users.save(user)

    async def connect(self, user: User) -> dict:
        if user.n8n_connected:
            return {"n8n_enabled": True, "n8n_user_id": user.n8n_user_id, "already_connected": True}
        if user.n8n_enabled:
            logger.warning(f"n8n link of user {user.id} has no usable API key, re-provisioning")

        first_name, last_name = split_name(user.name)
        logger.info(f"Connecting user {user.id} to n8n")
        engine_user = await self.n8n.find_or_create_user(user.email, first_name, last_name)

        await self._link(user, engine_user.external_user_id, engine_user.api_key)
        logger.info(f"User {user.id} connected to n8n user {engine_user.external_user_id}")
        return {"n8n_enabled": True, "n8n_user_id": engine_user.external_user_id, "already_connected": False}

    async def check_and_auto_connect(self, user: User) -> dict:
        if user.n8n_connected:
            return {"n8n_enabled": True, "auto_connected": False}

        try:
            engine_user = await self.n8n.find_user_by_email(user.email)
        except EngineCallError as e:
            logger.warning(f"n8n status check failed for user {user.id}, treating as not connected: {e.message}")
            engine_user = None

        if not engine_user:
            return {"n8n_enabled": False, "auto_connected": False}

        n8n_user_id = str(engine_user["id"])
        logger.info(f"Auto-connecting user {user.id} to existing n8n user {n8n_user_id}")
        await self._link(user, n8n_user_id, self.n8n.admin_key)
        return {"n8n_enabled": True, "auto_connected": True, "n8n_user_id": n8n_user_id}
