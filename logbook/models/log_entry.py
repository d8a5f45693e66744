"""Log entry model - a recorded clinical activity and its AI chat history."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from logbook.models.base import Base, BaseModel


class AIContextCategory(str, Enum):
    """What kind of activity an entry records (context for AI prompts)."""

    PROCEDURE = "procedure"
    CONSULTATION = "consultation"
    TEACHING = "teaching"
    MEETING = "meeting"
    RESEARCH = "research"
    OTHER = "other"


class ChatRole(str, Enum):
    """Author of a chat history message."""

    USER = "user"
    MODEL = "model"


class LogEntry(BaseModel):
    """
    Log Entry model.

    Owns zero or more audio recordings (see AudioRecording).
    Entry CRUD lives with the log-type plumbing; the transcription
    services only read entries.
    """

    __tablename__ = "log_entries"

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="Practitioner who owns the entry",
    )

    log_type_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Configurable log type the entry was recorded against",
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    notes: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    ai_context_category: Mapped[Optional[AIContextCategory]] = mapped_column(
        SQLEnum(AIContextCategory, name="ai_context_category", native_enum=False, create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )

    data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Structured fields defined by the log type",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<LogEntry id={self.id} user={self.user_id}>"


class ChatMessage(Base):
    """One message of an entry's AI chat history."""

    __tablename__ = "log_entry_chat_messages"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    entry_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("log_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[ChatRole] = mapped_column(
        SQLEnum(ChatRole, name="chat_role", native_enum=False, create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
