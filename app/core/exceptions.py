import enum

from fastapi import status


class FailureReason(str, enum.Enum):
    timeout = "timeout"
    service_unavailable = "service_unavailable"
    rejected = "rejected"
    malformed_response = "malformed_response"
    unexpected = "unexpected"
    deadline_exceeded = "deadline_exceeded"
    invalid_output = "invalid_output"
    persistence_error = "persistence_error"

    @property
    def is_unavailability(self) -> bool:
        """True when the failure says the service was unreachable, not that it refused."""
        return self in _UNAVAILABILITY_REASONS


_UNAVAILABILITY_REASONS = frozenset({
    FailureReason.timeout,
    FailureReason.service_unavailable,
    FailureReason.deadline_exceeded,
})


# --- Request-level errors (mapped to HTTP responses in app.main) ---

class GenerationError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(GenerationError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class QuotaExceededError(GenerationError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Daily sentence limit reached. Please try again tomorrow."


class RateLimitExceededError(GenerationError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Generation rate limit exceeded. Please try again later."


class PersistenceError(GenerationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Could not save generation results"


class ServiceUnavailableError(GenerationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Translation service is currently unavailable. Please try again later."


# --- Per-sentence errors raised by the translation client ---

class TranslationError(Exception):
    transient: bool = False

    def __init__(self, reason: FailureReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or reason.value)


class TransientServiceError(TranslationError):
    transient = True


class PermanentServiceError(TranslationError):
    transient = False


class InvalidStatusTransitionError(Exception):
    pass
