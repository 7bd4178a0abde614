import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sello.db.database import Base


class TemplateKind(str, enum.Enum):
    CHAT = "chat"
    MESSAGING_BOT = "messaging_bot"  # needs a Telegram bot token + username


class AITemplate(Base):
    __tablename__ = "ai_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False, default=TemplateKind.CHAT.value)
    template: Mapped[dict] = mapped_column(JSON, nullable=False)  # n8n workflow: nodes, connections, settings
    form_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # {"fields": [...]}
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def requires_bot(self) -> bool:
        return self.kind == TemplateKind.MESSAGING_BOT.value
