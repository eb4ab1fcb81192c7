from app.models.user import User
from app.models.flashcard import Flashcard, FlashcardSource
from app.models.generation_session import GenerationSession, GenerationStatus

__all__ = [
    "User",
    "Flashcard",
    "FlashcardSource",
    "GenerationSession",
    "GenerationStatus",
]
