import time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import FailureReason
from app.models.flashcard import Flashcard, FlashcardSource
from app.models.generation_session import GenerationSession, GenerationStatus
from app.services import reconciliation_service
from app.services.reconciliation_service import (
    build_error_message,
    choose_status,
    reconcile_results,
    validate_outcome,
)
from app.services.session_service import create_processing_session
from app.services.translation_service import TranslationFailure, TranslationSuccess

SENTENCES = ["Hello", "Good morning", "Thanks", "See you", "Bye"]


def _successes(sentences=SENTENCES):
    return [TranslationSuccess(i, s, f"PL: {s}") for i, s in enumerate(sentences)]


async def _stored_flashcards(session_factory, session_id):
    async with session_factory() as fresh:
        result = await fresh.execute(
            select(Flashcard)
            .where(Flashcard.generation_session_id == session_id)
            .order_by(Flashcard.created_at)
        )
        return list(result.scalars().all())


async def test_all_successes_complete_the_session(db, session_factory, user):
    session = await create_processing_session(db, user, 5)

    result = await reconcile_results(db, session, _successes(), time.monotonic())
    await db.commit()

    assert session.status is GenerationStatus.completed
    assert session.generated_count == 5
    assert session.error_message is None
    assert session.duration_ms >= 0
    assert result.failed_count == 0
    assert [card.sentence_en for card in result.flashcards] == SENTENCES
    assert all(card.source is FlashcardSource.ai for card in result.flashcards)
    assert not any(card.is_edited for card in result.flashcards)
    assert all(card.user_id == user.id for card in result.flashcards)

    stored = await _stored_flashcards(session_factory, session.id)
    assert len(stored) == 5


async def test_mixed_outcomes_give_partial(db, session_factory, user):
    session = await create_processing_session(db, user, 5)
    outcomes = _successes()
    outcomes[1] = TranslationFailure(1, "Good morning", FailureReason.rejected)
    outcomes[3] = TranslationFailure(3, "See you", FailureReason.timeout)

    result = await reconcile_results(db, session, outcomes, time.monotonic())
    await db.commit()

    assert session.status is GenerationStatus.partial
    assert session.generated_count == 3
    assert result.failed_count == 2
    assert session.error_message == "2 of 5 sentences could not be translated."
    assert [card.sentence_en for card in result.flashcards] == ["Hello", "Thanks", "Bye"]
    assert [f.index for f in result.failures] == [1, 3]
    assert not result.service_unavailable


async def test_all_failures_persist_nothing(db, session_factory, user):
    session = await create_processing_session(db, user, 5)
    outcomes = [TranslationFailure(i, s, FailureReason.rejected) for i, s in enumerate(SENTENCES)]

    result = await reconcile_results(db, session, outcomes, time.monotonic())
    await db.commit()

    assert session.status is GenerationStatus.failed
    assert session.generated_count == 0
    assert session.error_message == "None of the 5 sentences could be translated."
    assert result.flashcards == []
    assert not result.service_unavailable
    assert await _stored_flashcards(session_factory, session.id) == []


async def test_all_unavailable_is_flagged(db, user):
    session = await create_processing_session(db, user, 5)
    reasons = [
        FailureReason.timeout,
        FailureReason.service_unavailable,
        FailureReason.deadline_exceeded,
        FailureReason.timeout,
        FailureReason.service_unavailable,
    ]
    outcomes = [TranslationFailure(i, s, r) for i, (s, r) in enumerate(zip(SENTENCES, reasons))]

    result = await reconcile_results(db, session, outcomes, time.monotonic())

    assert result.service_unavailable
    assert session.error_message == "The translation service is currently unavailable."


async def test_degenerate_output_is_demoted(db, user):
    session = await create_processing_session(db, user, 5)
    outcomes = _successes()
    outcomes[0] = TranslationSuccess(0, "Hello", "   ")
    outcomes[2] = TranslationSuccess(2, "Thanks", "x" * 201)

    result = await reconcile_results(db, session, outcomes, time.monotonic())

    assert session.status is GenerationStatus.partial
    assert [card.sentence_en for card in result.flashcards] == ["Good morning", "See you", "Bye"]
    assert {f.reason for f in result.failures} == {FailureReason.invalid_output}


async def test_batch_write_failure_falls_back_to_single_rows(db, session_factory, user, monkeypatch):
    session = await create_processing_session(db, user, 5)
    original_persist_one = reconciliation_service._persist_one

    async def failing_batch(db, cards):
        raise IntegrityError("INSERT INTO flashcards", {}, Exception("batch rejected"))

    async def persist_one(db, card):
        if card.sentence_en == "See you":
            async with db.begin_nested():
                raise IntegrityError("INSERT INTO flashcards", {}, Exception("row rejected"))
        await original_persist_one(db, card)

    monkeypatch.setattr(reconciliation_service, "_persist_batch", failing_batch)
    monkeypatch.setattr(reconciliation_service, "_persist_one", persist_one)

    result = await reconcile_results(db, session, _successes(), time.monotonic())
    await db.commit()

    assert session.status is GenerationStatus.partial
    assert session.generated_count == 4
    assert [f.reason for f in result.failures] == [FailureReason.persistence_error]
    assert [card.sentence_en for card in result.flashcards] == ["Hello", "Good morning", "Thanks", "Bye"]
    stored = await _stored_flashcards(session_factory, session.id)
    assert sorted(card.sentence_en for card in stored) == ["Bye", "Good morning", "Hello", "Thanks"]


async def test_outcome_count_must_match_session(db, user):
    session = await create_processing_session(db, user, 5)

    with pytest.raises(ValueError):
        await reconcile_results(db, session, _successes()[:4], time.monotonic())


def test_validate_outcome_strips_translation():
    checked = validate_outcome(TranslationSuccess(0, "Hi", "  Cześć \n"))
    assert checked == TranslationSuccess(0, "Hi", "Cześć")


def test_validate_outcome_keeps_failures():
    failure = TranslationFailure(0, "Hi", FailureReason.rejected)
    assert validate_outcome(failure) is failure


@pytest.mark.parametrize(
    ("successes", "total", "expected"),
    [
        (5, 5, GenerationStatus.completed),
        (3, 5, GenerationStatus.partial),
        (0, 5, GenerationStatus.failed),
        (29, 30, GenerationStatus.partial),
    ],
)
def test_choose_status(successes, total, expected):
    assert choose_status(successes, total) is expected


def test_error_message_never_contains_failure_details():
    failures = [TranslationFailure(0, "Hello", FailureReason.rejected)]

    message = build_error_message(GenerationStatus.partial, failures, 5)

    assert message == "1 of 5 sentences could not be translated."
    assert build_error_message(GenerationStatus.completed, [], 5) is None


async def test_session_rows_are_distinct_per_request(db, session_factory, user):
    first = await create_processing_session(db, user, 5)
    await reconcile_results(db, first, _successes(), time.monotonic())
    await db.commit()
    second = await create_processing_session(db, user, 5)
    await reconcile_results(db, second, _successes(), time.monotonic())
    await db.commit()

    first_cards = await _stored_flashcards(session_factory, first.id)
    second_cards = await _stored_flashcards(session_factory, second.id)

    assert first.id != second.id
    assert {c.id for c in first_cards}.isdisjoint({c.id for c in second_cards})
    async with session_factory() as fresh:
        sessions = (await fresh.execute(select(GenerationSession))).scalars().all()
    assert len(sessions) == 2
