from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from sello.config import get_settings
from sello.db.database import get_db
from sello.db.repositories import UserRepository
from sello.models.user import User
from sello.services.account_service import AccountService
from sello.services.ai_workflow_service import AIWorkflowService
from sello.services.n8n_service import N8nClient

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    settings = get_settings()
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await UserRepository(db).find_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_n8n_client() -> N8nClient:
    return N8nClient.from_settings(get_settings())


def get_ai_workflow_service(
    db: AsyncSession = Depends(get_db),
    n8n: N8nClient = Depends(get_n8n_client),
) -> AIWorkflowService:
    return AIWorkflowService(db, n8n)


def get_account_service(
    db: AsyncSession = Depends(get_db),
    n8n: N8nClient = Depends(get_n8n_client),
) -> AccountService:
    return AccountService(db, n8n)
