import asyncio
import logging
from typing import Protocol

import httpx
from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_mistralai import ChatMistralAI

from app.config import settings
from app.core.exceptions import (
    FailureReason,
    PermanentServiceError,
    TransientServiceError,
    TranslationError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a professional translator helping {source_language} speakers build flashcards.

Translate the {source_language} sentence given by the user into natural, correct {target_language}.

Rules:
- Translate the whole sentence; keep its meaning, tone and punctuation.
- Do not add explanations, alternatives, transliterations or quotes.
- Keep the translation under 200 characters.

Return ONLY a JSON object, no extra text. Example:
{{"translation": "Dzień dobry, jak się masz?"}}
"""


class TranslationClient(Protocol):
    async def translate(self, sentence: str) -> str:
        """Translate one sentence or raise a TranslationError subclass."""
        ...


def _build_llm() -> ChatMistralAI:
    return ChatMistralAI(
        model=settings.MISTRAL_MODEL,
        api_key=settings.MISTRAL_API_KEY,
        temperature=settings.AI_TRANSLATION_TEMPERATURE,
        timeout=int(settings.GENERATION_CALL_TIMEOUT_SECONDS) + 1,
        max_retries=1,
    )


def _build_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("system", SYSTEM_PROMPT),
        ("human", "{sentence}"),
    ])


def classify_error(exc: BaseException) -> TranslationError:
    """Map a client/library exception onto the retryable vs. final split."""
    if isinstance(exc, TranslationError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TransientServiceError(FailureReason.timeout, str(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code >= 500 or code in (408, 429):
            return TransientServiceError(FailureReason.service_unavailable, str(exc))
        return PermanentServiceError(FailureReason.rejected, str(exc))
    if isinstance(exc, httpx.TransportError):
        return TransientServiceError(FailureReason.service_unavailable, str(exc))
    if isinstance(exc, (OutputParserException, ValueError, KeyError, TypeError)):
        return PermanentServiceError(FailureReason.malformed_response, str(exc))
    return PermanentServiceError(FailureReason.unexpected, repr(exc))


class MistralTranslationClient:
    def __init__(
        self,
        source_language: str | None = None,
        target_language: str | None = None,
    ) -> None:
        self.source_language = source_language or settings.AI_SOURCE_LANGUAGE
        self.target_language = target_language or settings.AI_TARGET_LANGUAGE
        self._chain = _build_prompt() | _build_llm() | JsonOutputParser()

    async def translate(self, sentence: str) -> str:
        try:
            result = await self._chain.ainvoke({
                "sentence": sentence,
                "source_language": self.source_language,
                "target_language": self.target_language,
            })
        except Exception as exc:
            raise classify_error(exc) from exc

        translation = result.get("translation") if isinstance(result, dict) else None
        if not isinstance(translation, str):
            raise PermanentServiceError(
                FailureReason.malformed_response,
                f"Unexpected payload type: {type(result).__name__}",
            )
        return translation
