import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from app.config import settings
from app.models.flashcard import FlashcardSource
from app.models.generation_session import GenerationStatus


class GenerateFlashcardsRequest(BaseModel):
    # Count and length rules apply after normalization, in the service layer.
    sentences: list[str] = Field(max_length=settings.GENERATION_MAX_RAW_SENTENCES)


class FlashcardResponse(BaseModel):
    id: uuid.UUID
    sentence_en: str
    translation_pl: str
    source: FlashcardSource
    is_edited: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GenerateFlashcardsResponse(BaseModel):
    session_id: uuid.UUID
    status: GenerationStatus
    flashcards: list[FlashcardResponse] = []
    generated_count: int
    failed_count: int
    duration_ms: int


class GenerationSessionResponse(BaseModel):
    id: uuid.UUID
    status: GenerationStatus
    input_count: int
    generated_count: int
    failed_count: int
    error_message: str | None
    duration_ms: int | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaginatedGenerationSessionResponse(BaseModel):
    items: list[GenerationSessionResponse]
    total: int
    skip: int
    limit: int


class GenerationUsageResponse(BaseModel):
    sentences_used: int
    daily_limit: int
    remaining: int
    window_start: datetime
    window_end: datetime
