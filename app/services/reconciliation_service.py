import logging
import time
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import FailureReason
from app.models.flashcard import Flashcard, FlashcardSource
from app.models.generation_session import GenerationSession, GenerationStatus
from app.services.session_service import finalize_session
from app.services.translation_service import (
    TranslationFailure,
    TranslationOutcome,
    TranslationSuccess,
)

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    session: GenerationSession
    flashcards: list[Flashcard]
    failures: list[TranslationFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return self.session.input_count - self.session.generated_count

    @property
    def service_unavailable(self) -> bool:
        """Every sentence failed and none of the failures was the service refusing."""
        return (
            not self.flashcards
            and bool(self.failures)
            and all(f.reason.is_unavailability for f in self.failures)
        )


def elapsed_ms(started_at: float) -> int:
    return max(int((time.monotonic() - started_at) * 1000), 0)


def _is_valid_text(text: str) -> bool:
    return bool(text) and len(text) <= settings.SENTENCE_MAX_LENGTH


def validate_outcome(outcome: TranslationOutcome) -> TranslationOutcome:
    """Demote a success whose sentence or translation is empty or too long."""
    if not outcome.ok:
        return outcome
    sentence = outcome.sentence.strip()
    translation = outcome.translation.strip()
    if not (_is_valid_text(sentence) and _is_valid_text(translation)):
        logger.warning("Sentence #%d returned unusable output", outcome.index)
        return TranslationFailure(outcome.index, outcome.sentence, FailureReason.invalid_output)
    return TranslationSuccess(outcome.index, sentence, translation)


def choose_status(success_count: int, total: int) -> GenerationStatus:
    if success_count == total:
        return GenerationStatus.completed
    if success_count == 0:
        return GenerationStatus.failed
    return GenerationStatus.partial


def build_error_message(
    status: GenerationStatus, failures: list[TranslationFailure], total: int,
) -> str | None:
    if status is GenerationStatus.completed:
        return None
    if status is GenerationStatus.partial:
        return f"{len(failures)} of {total} sentences could not be translated."
    if failures and all(f.reason.is_unavailability for f in failures):
        return "The translation service is currently unavailable."
    return f"None of the {total} sentences could be translated."


async def _persist_batch(db: AsyncSession, cards: list[Flashcard]) -> None:
    async with db.begin_nested():
        db.add_all(cards)
        await db.flush()


async def _persist_one(db: AsyncSession, card: Flashcard) -> None:
    async with db.begin_nested():
        db.add(card)
        await db.flush()


async def persist_flashcards(
    db: AsyncSession,
    session: GenerationSession,
    successes: list[TranslationSuccess],
) -> tuple[list[Flashcard], list[TranslationFailure]]:
    """Insert one AI flashcard per success, in input order.

    Tries a single batch insert first and falls back to row-by-row inserts,
    each in its own savepoint, so one bad row only fails itself.
    """
    if not successes:
        return [], []

    def make_card(success: TranslationSuccess) -> Flashcard:
        return Flashcard(
            user_id=session.user_id,
            generation_session_id=session.id,
            sentence_en=success.sentence,
            translation_pl=success.translation,
            source=FlashcardSource.ai,
            is_edited=False,
        )

    cards = [make_card(success) for success in successes]
    try:
        await _persist_batch(db, cards)
        return cards, []
    except SQLAlchemyError:
        logger.warning(
            "Batch insert failed for session=%s; retrying row by row", session.id,
            exc_info=True,
        )

    persisted: list[Flashcard] = []
    failures: list[TranslationFailure] = []
    for success in successes:
        card = make_card(success)
        try:
            await _persist_one(db, card)
        except SQLAlchemyError:
            logger.warning(
                "Could not save flashcard for sentence #%d in session=%s",
                success.index, session.id, exc_info=True,
            )
            failures.append(
                TranslationFailure(success.index, success.sentence, FailureReason.persistence_error)
            )
            continue
        persisted.append(card)
    return persisted, failures


async def reconcile_results(
    db: AsyncSession,
    session: GenerationSession,
    outcomes: list[TranslationOutcome],
    started_at: float,
) -> GenerationResult:
    """Validate, persist and finalize. Does not commit."""
    total = session.input_count
    if len(outcomes) != total:
        raise ValueError(f"Expected {total} outcomes, got {len(outcomes)}")

    checked = [validate_outcome(outcome) for outcome in outcomes]
    successes = [o for o in checked if isinstance(o, TranslationSuccess)]
    failures = [o for o in checked if isinstance(o, TranslationFailure)]

    flashcards, write_failures = await persist_flashcards(db, session, successes)
    failures = sorted(failures + write_failures, key=lambda f: f.index)

    final_status = choose_status(len(flashcards), total)
    await finalize_session(
        db,
        session,
        final_status,
        generated_count=len(flashcards),
        duration_ms=elapsed_ms(started_at),
        error_message=build_error_message(final_status, failures, total),
    )
    return GenerationResult(session=session, flashcards=flashcards, failures=failures)
