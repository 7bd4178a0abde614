import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sello.db.database import Base
from sello.models.ai_template import AITemplate


class AIWorkflow(Base):
    """One AI assistant provisioned on n8n from an AITemplate."""

    __tablename__ = "workflow_ai_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("services.id", ondelete="CASCADE"), nullable=True, index=True
    )
    ai_template_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("ai_templates.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    n8n_workflow_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    webhook_url: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    telegram_token: Mapped[str | None] = mapped_column(Text, nullable=True)  # ciphertext
    telegram_bot_username: Mapped[str | None] = mapped_column(String, nullable=True)
    n8n_credentials_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    ai_template: Mapped[AITemplate | None] = relationship(lazy="selectin")
