"""Thread and message models for conversation persistence."""
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from summary_chat.config import TRUNCATION_MARKER

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _values(enum_cls):
    return [member.value for member in enum_cls]


class ThreadStatus(enum.Enum):
    """Outcome of the latest generation attempt on a thread."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SenderType(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ContentKind(enum.Enum):
    TEXT = "text"
    PDF = "pdf"
    LINK = "link"


class SummaryRole(enum.Enum):
    """Marks the message that condenses a large source for its thread."""
    PRIMARY = "primary"
    ADDITIONAL = "additional"


class OffloadStatus(enum.Enum):
    """Result of sending a truncated message's full text to the index."""
    STORED = "stored"
    FAILED = "failed"


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.

    Each thread is a conversation between one user and the assistant.
    Its status tracks the most recent generation attempt.
    """
    __tablename__ = "threads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(255), nullable=True, default="New Chat")
    status = Column(
        Enum(ThreadStatus, values_callable=_values, name="thread_status"),
        nullable=False,
        default=ThreadStatus.PENDING,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Message(Base):
    """
    SQLAlchemy model for a single user or assistant turn.

    Large documents are stored as an excerpt ending with the truncation
    marker; their full text lives in the retrieval index.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(Integer, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    sender_type = Column(
        Enum(SenderType, values_callable=_values, name="sender_type"),
        nullable=False,
    )
    content_type = Column(
        Enum(ContentKind, values_callable=_values, name="content_kind"),
        nullable=False,
        default=ContentKind.TEXT,
    )
    content = Column(Text, nullable=False)
    file_name = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    link_url = Column(String, nullable=True)
    has_full_content = Column(Boolean, nullable=False, default=False)
    summary_role = Column(
        Enum(SummaryRole, values_callable=_values, name="summary_role"),
        nullable=True,
    )
    offload_status = Column(
        Enum(OffloadStatus, values_callable=_values, name="offload_status"),
        nullable=True,
    )
    retrieved_context = Column(Text, nullable=True)  # cached index hits, reused on retry
    context_source_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_truncated(self) -> bool:
        return not self.has_full_content and self.content.endswith(TRUNCATION_MARKER)
