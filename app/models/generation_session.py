import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.exceptions import InvalidStatusTransitionError
from app.database import Base, utcnow


class GenerationStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    partial = "partial"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "GenerationStatus") -> bool:
        return target in _TRANSITIONS[self]


# Forward-only: terminal states have no outgoing edges.
_TRANSITIONS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.pending: frozenset({GenerationStatus.processing}),
    GenerationStatus.processing: frozenset({
        GenerationStatus.completed,
        GenerationStatus.partial,
        GenerationStatus.failed,
    }),
    GenerationStatus.completed: frozenset(),
    GenerationStatus.partial: frozenset(),
    GenerationStatus.failed: frozenset(),
}


class GenerationSession(Base):
    """One generation request's lifecycle record.

    Status changes go through :meth:`start_processing` and :meth:`finalize`
    so that an illegal move (for example ``completed`` back to
    ``processing``) raises instead of being written.
    """

    __tablename__ = "generation_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    input_count: Mapped[int] = mapped_column(Integer, nullable=False)
    generated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[GenerationStatus] = mapped_column(
        Enum(GenerationStatus, name="generation_status_enum"),
        nullable=False,
        default=GenerationStatus.pending,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
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
    user: Mapped["User"] = relationship("User", back_populates="generation_sessions")
    flashcards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard", back_populates="generation_session", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_generation_sessions_user_created", "user_id", "created_at"),
    )

    @property
    def failed_count(self) -> int:
        return self.input_count - self.generated_count

    def _check_transition(self, target: GenerationStatus) -> None:
        current = self.status or GenerationStatus.pending
        if not current.can_transition_to(target):
            raise InvalidStatusTransitionError(
                f"Cannot move generation session from {current.value} to {target.value}"
            )

    def _transition(self, target: GenerationStatus) -> None:
        self._check_transition(target)
        self.status = target
        self.updated_at = utcnow()

    def start_processing(self, input_count: int) -> None:
        self._transition(GenerationStatus.processing)
        self.input_count = input_count
        self.generated_count = 0

    def finalize(
        self,
        status: GenerationStatus,
        generated_count: int,
        duration_ms: int,
        error_message: str | None = None,
    ) -> None:
        if not status.is_terminal:
            raise InvalidStatusTransitionError(
                f"{status.value} is not a terminal status"
            )
        self._check_transition(status)
        if not _counts_match(status, generated_count, self.input_count):
            raise ValueError(
                f"generated_count={generated_count} does not fit status {status.value} "
                f"for input_count={self.input_count}"
            )
        if duration_ms < 0:
            raise ValueError("duration_ms must be non-negative")
        self._transition(status)
        self.generated_count = generated_count
        self.duration_ms = duration_ms
        self.error_message = None if status is GenerationStatus.completed else error_message


def _counts_match(status: GenerationStatus, generated_count: int, input_count: int) -> bool:
    if status is GenerationStatus.completed:
        return generated_count == input_count
    if status is GenerationStatus.failed:
        return generated_count == 0
    return 0 < generated_count < input_count
