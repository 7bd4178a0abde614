import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sello.db.database import Base
from sello.services.crypto_service import decrypt_or_none, encrypt


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False, default="")
    name: Mapped[str] = mapped_column(String, nullable=False)
    n8n_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    n8n_api_key_encrypted: Mapped[str | None] = mapped_column("n8n_api_key", Text, nullable=True)
    n8n_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    @property
    def n8n_api_key(self) -> str | None:
        return decrypt_or_none(self.n8n_api_key_encrypted, label=f"n8n API key of user {self.id}")

    @n8n_api_key.setter
    def n8n_api_key(self, value: str | None):
        self.n8n_api_key_encrypted = encrypt(value)

    @property
    def n8n_connected(self) -> bool:
        return bool(self.n8n_enabled and self.n8n_user_id and self.n8n_api_key)
