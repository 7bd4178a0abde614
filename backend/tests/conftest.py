import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="sello-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["ENCRYPTION_KEY"] = "a1" * 32
os.environ["N8N_BASE_URL"] = "https://n8n.test"
os.environ["N8N_ADMIN_KEY"] = "admin-key"
os.environ["N8N_PROMPT_GENERATION_WEBHOOK"] = "https://n8n.test/webhook/generate-prompt"
os.environ["SECRET_KEY"] = "test-secret"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from sello.api.auth import create_access_token  # noqa: E402
from sello.api.deps import get_n8n_client  # noqa: E402
from sello.db.database import async_session, drop_db, engine, init_db  # noqa: E402
from sello.main import app  # noqa: E402
from sello.models.ai_template import AITemplate, TemplateKind  # noqa: E402
from sello.models.service import Service  # noqa: E402
from sello.models.user import User  # noqa: E402
from sello.seed_data import CHAT_ASSISTANT_TEMPLATE, TELEGRAM_BOT_TEMPLATE  # noqa: E402
from sello.services.errors import EngineCallError  # noqa: E402
from sello.services.n8n_service import CreatedWorkflow, N8nClient  # noqa: E402


class FakeN8nClient(N8nClient):
    """In-memory n8n that records every call and fails the ones listed in ``fail``."""

    def __init__(self):
        super().__init__(base_url="https://n8n.test", admin_key="admin-key")
        self.calls: list[tuple] = []
        self.fail: set[str] = set()
        self.remote: dict[str, dict] = {}
        self.engine_users: list[dict] = []
        self.executions: dict[str, dict] = {}
        self._next_id = 0

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise EngineCallError(500, f"{name} failed")

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    async def find_user_by_email(self, email):
        self._record("find_user_by_email", email)
        return next((u for u in self.engine_users if u["email"] == email), None)

    async def find_or_create_user(self, email, first_name, last_name=""):
        from sello.services.n8n_service import EngineUser

        self._record("find_or_create_user", email, first_name, last_name)
        user = {"id": self._new_id("user"), "email": email}
        self.engine_users.append(user)
        return EngineUser(external_user_id=user["id"], api_key="personal-key")

    async def list_workflows(self, api_key):
        self._record("list_workflows", api_key)
        return list(self.remote.values())

    async def get_workflow(self, api_key, workflow_id):
        self._record("get_workflow", api_key, workflow_id)
        if workflow_id not in self.remote:
            raise EngineCallError(404, "Not Found")
        return self.remote[workflow_id]

    async def create_workflow(self, api_key, submission):
        self._record("create_workflow", api_key, submission)
        remote_id = self._new_id("wf")
        document = {**submission, "id": remote_id, "active": False}
        self.remote[remote_id] = document
        return CreatedWorkflow(remote_id=remote_id, webhook_url=self.webhook_url_for(document), document=document)

    async def update_workflow(self, api_key, workflow_id, submission):
        self._record("update_workflow", api_key, workflow_id, submission)
        self.remote[workflow_id] = {**self.remote.get(workflow_id, {}), **submission}
        return self.remote[workflow_id]

    async def set_active(self, api_key, workflow_id, active):
        self._record("set_active", api_key, workflow_id, active)
        if workflow_id in self.remote:
            self.remote[workflow_id]["active"] = active

    async def delete_workflow(self, api_key, workflow_id):
        self._record("delete_workflow", api_key, workflow_id)
        self.remote.pop(workflow_id, None)

    async def execute(self, api_key, workflow_id, payload=None):
        self._record("execute", api_key, workflow_id, payload)
        execution_id = self._new_id("exec")
        self.executions[execution_id] = {"id": execution_id, "workflowId": workflow_id, "status": "running"}
        return self.executions[execution_id]

    async def list_executions(self, api_key, workflow_id, limit=None, status=None):
        self._record("list_executions", api_key, workflow_id, limit, status)
        return [e for e in self.executions.values() if e["workflowId"] == workflow_id]

    async def get_execution(self, api_key, execution_id):
        self._record("get_execution", api_key, execution_id)
        if execution_id not in self.executions:
            raise EngineCallError(404, "Not Found")
        return self.executions[execution_id]

    async def create_bot_credential(self, api_key, token, name):
        self._record("create_bot_credential", api_key, token, name)
        return self._new_id("cred")

    async def delete_bot_credential(self, api_key, credential_id):
        self._record("delete_bot_credential", api_key, credential_id)

    async def register_bot_webhook(self, token, webhook_url):
        self._record("register_bot_webhook", token, webhook_url)

    async def delete_bot_webhook(self, token):
        self._record("delete_bot_webhook", token)

    async def generate_system_prompt(self, webhook_url, assistant_type, service_id):
        self._record("generate_system_prompt", webhook_url, assistant_type, service_id)
        return f"You are a helpful {assistant_type} assistant."


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create a fresh database for each test"""
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session():
    async with async_session() as session:
        yield session


@pytest.fixture
def n8n():
    return FakeN8nClient()


@pytest_asyncio.fixture
async def client(n8n):
    app.dependency_overrides[get_n8n_client] = lambda: n8n
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _add(session, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def owner(db_session):
    return await _add(db_session, User(email="olena@example.com", name="Olena  Kovalenko Shevchenko"))


@pytest_asyncio.fixture
async def stranger(db_session):
    return await _add(db_session, User(email="mallory@example.com", name="Mallory"))


@pytest_asyncio.fixture
async def listing(db_session, owner):
    return await _add(db_session, Service(owner_id=owner.id, title="Bike repair", description="Fast fixes"))


@pytest_asyncio.fixture
async def chat_template(db_session):
    return await _add(
        db_session,
        AITemplate(
            name="AI Chat Assistant",
            kind=TemplateKind.CHAT.value,
            template=CHAT_ASSISTANT_TEMPLATE,
            form_config={"fields": []},
        ),
    )


@pytest_asyncio.fixture
async def telegram_template(db_session):
    return await _add(
        db_session,
        AITemplate(
            name="Telegram AI Bot",
            kind=TemplateKind.MESSAGING_BOT.value,
            template=TELEGRAM_BOT_TEMPLATE,
            form_config={"fields": []},
        ),
    )


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def owner_headers(owner):
    return auth_headers_for(owner)


@pytest.fixture
def stranger_headers(stranger):
    return auth_headers_for(stranger)
