"""Batch translation: one Generation Service call per sentence.

Calls run concurrently behind a semaphore, transient failures are retried with
exponential backoff, and the whole batch is bounded by a deadline. Results
come back in input order, one outcome per sentence, whatever happened to the
individual calls.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.ai.translator import TranslationClient, classify_error
from app.config import settings
from app.core.exceptions import FailureReason, TransientServiceError, TranslationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationSuccess:
    index: int
    sentence: str
    translation: str

    ok = True


@dataclass(frozen=True)
class TranslationFailure:
    index: int
    sentence: str
    reason: FailureReason

    ok = False


TranslationOutcome = Union[TranslationSuccess, TranslationFailure]


class BatchTranslator:
    def __init__(
        self,
        client: TranslationClient,
        max_concurrency: int = 5,
        max_retries: int = 1,
        backoff_seconds: float = 0.5,
        backoff_max_seconds: float = 4.0,
        call_timeout: float = 8.0,
        deadline: float = 20.0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.client = client
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.call_timeout = call_timeout
        self.deadline = deadline

    @classmethod
    def from_settings(cls, client: TranslationClient) -> "BatchTranslator":
        return cls(
            client,
            max_concurrency=settings.GENERATION_MAX_CONCURRENCY,
            max_retries=settings.GENERATION_MAX_RETRIES,
            backoff_seconds=settings.GENERATION_RETRY_BACKOFF_SECONDS,
            backoff_max_seconds=settings.GENERATION_RETRY_BACKOFF_MAX_SECONDS,
            call_timeout=settings.GENERATION_CALL_TIMEOUT_SECONDS,
            deadline=settings.GENERATION_BATCH_DEADLINE_SECONDS,
        )

    async def _call(self, sentence: str) -> str:
        try:
            return await asyncio.wait_for(
                self.client.translate(sentence), timeout=self.call_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientServiceError(FailureReason.timeout) from exc
        except TranslationError:
            raise
        except Exception as exc:
            # A misbehaving client costs one sentence, not the batch.
            raise classify_error(exc) from exc

    async def _translate_with_retry(self, index: int, sentence: str) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientServiceError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.backoff_seconds, max=self.backoff_max_seconds,
            ),
            before_sleep=lambda state: logger.info(
                "Retrying sentence #%d after attempt %d: %s",
                index, state.attempt_number, state.outcome.exception().reason.value,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._call(sentence)
        raise AssertionError("retry loop exited without a result")

    async def _run_one(
        self, index: int, sentence: str, semaphore: asyncio.Semaphore,
    ) -> TranslationOutcome:
        async with semaphore:
            try:
                translation = await self._translate_with_retry(index, sentence)
            except TranslationError as exc:
                logger.warning("Sentence #%d failed: %s", index, exc.reason.value)
                return TranslationFailure(index, sentence, exc.reason)
            return TranslationSuccess(index, sentence, translation)

    async def translate(self, sentences: list[str] | tuple[str, ...]) -> list[TranslationOutcome]:
        if not sentences:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._run_one(index, sentence, semaphore))
            for index, sentence in enumerate(sentences)
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=self.deadline)
        finally:
            # Runs on deadline and on cancellation of the caller alike.
            for task in tasks:
                if not task.done():
                    task.cancel()

        if pending:
            logger.warning(
                "Batch deadline of %.1fs exceeded; %d of %d sentences abandoned",
                self.deadline, len(pending), len(tasks),
            )
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: list[TranslationOutcome] = []
        for index, (sentence, task) in enumerate(zip(sentences, tasks)):
            if task in pending or task.cancelled():
                outcomes.append(
                    TranslationFailure(index, sentence, FailureReason.deadline_exceeded)
                )
            else:
                outcomes.append(task.result())
        return outcomes
