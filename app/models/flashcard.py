import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, utcnow

FLASHCARD_TEXT_MAX_LENGTH = 200


class FlashcardSource(str, enum.Enum):
    ai = "ai"
    manual = "manual"


class Flashcard(Base):
    __tablename__ = "flashcards"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    generation_session_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("generation_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    sentence_en: Mapped[str] = mapped_column(
        String(FLASHCARD_TEXT_MAX_LENGTH), nullable=False
    )
    translation_pl: Mapped[str] = mapped_column(
        String(FLASHCARD_TEXT_MAX_LENGTH), nullable=False
    )
    source: Mapped[FlashcardSource] = mapped_column(
        Enum(FlashcardSource, name="flashcard_source_enum"),
        nullable=False,
        default=FlashcardSource.manual,
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="flashcards")
    generation_session: Mapped["GenerationSession | None"] = relationship(
        "GenerationSession", back_populates="flashcards"
    )

    __table_args__ = (
        Index("ix_flashcards_user_created", "user_id", "created_at"),
        Index("ix_flashcards_generation_session_id", "generation_session_id"),
    )
