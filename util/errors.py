# util/errors.py
from fastapi import HTTPException, status
from util.enums import ErrorMessage


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)

    @classmethod
    def of(cls, error: ErrorMessage) -> "AppError":
        return cls(error.value.message, error.value.http_status)


class GenerationError(Exception):
    """Base failure of the external generation service."""


class GenerationUnavailable(GenerationError):
    """Not configured, unreachable, or returned nothing usable."""


class GenerationQuotaError(GenerationError):
    """Rate limit / quota / overload signal from the provider."""
