from __future__ import annotations

from typing import Literal

import httpx


ErrorCategory = Literal[
    "validation",
    "conflict",
    "transient_remote",
    "permanent_remote",
    "not_found",
    "access_denied",
    "internal",
]

TRANSIENT_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}

_CATEGORY_MESSAGES: dict[str, str] = {
    "validation": "The content is invalid. Please check the input and try again.",
    "conflict": "This action is not allowed in the current state.",
    "transient_remote": "The service is temporarily unavailable. Please retry later.",
    "permanent_remote": "The request could not be completed by the AI service.",
    "not_found": "The requested item was not found.",
    "access_denied": "You do not have access to this item.",
    "internal": "Something went wrong. Please try again later.",
}


class CoachError(Exception):
    category: ErrorCategory = "internal"
    user_message: str = _CATEGORY_MESSAGES["internal"]


class InvalidInputError(CoachError):
    category = "validation"
    user_message = _CATEGORY_MESSAGES["validation"]


class NoContentError(InvalidInputError):
    user_message = "There are no candidate responses to analyze yet."


class ContentValidationError(InvalidInputError):
    user_message = "The file content is invalid or could not be read."


class ExtractionError(InvalidInputError):
    user_message = "Could not extract text from the file. It may be corrupted or unreadable."


class ConflictError(CoachError):
    category = "conflict"
    user_message = _CATEGORY_MESSAGES["conflict"]


class IllegalTransitionError(ConflictError):
    def __init__(self, entity: str, source: str, target: str) -> None:
        self.entity = entity
        self.source = source
        self.target = target
        super().__init__(f"Illegal {entity} transition: {source} -> {target}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"Cannot move {self.entity} from '{self.source}' to '{self.target}'."


class StaleWriteError(ConflictError):
    user_message = "The item was modified concurrently. Please retry."


class AlreadyExistsError(ConflictError):
    user_message = "This item already exists."


class NotFoundError(CoachError):
    category = "not_found"
    user_message = _CATEGORY_MESSAGES["not_found"]


class ExpiredError(NotFoundError):
    user_message = "This item has expired and is no longer available."


class AccessDeniedError(CoachError):
    category = "access_denied"
    user_message = _CATEGORY_MESSAGES["access_denied"]


class RemoteServiceError(CoachError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteServiceError):
    category = "transient_remote"
    user_message = _CATEGORY_MESSAGES["transient_remote"]


class RateLimitError(TransientRemoteError):
    user_message = "Rate limited by the AI service. Please wait a moment and retry later."


class PermanentRemoteError(RemoteServiceError):
    category = "permanent_remote"
    user_message = _CATEGORY_MESSAGES["permanent_remote"]


class RetryExhaustedError(CoachError):
    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")

    @property
    def category(self) -> ErrorCategory:  # type: ignore[override]
        return classify_error(self.last_error)

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return user_message(self.last_error)


def classify_error(error: BaseException) -> ErrorCategory:
    if isinstance(error, CoachError):
        return error.category
    if isinstance(error, httpx.HTTPStatusError):
        code = error.response.status_code
        return "transient_remote" if code in TRANSIENT_STATUS_CODES else "permanent_remote"
    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return "transient_remote"
    return "internal"


def is_transient(error: BaseException) -> bool:
    return classify_error(error) == "transient_remote"


def is_retryable(error: BaseException) -> bool:
    """Transient and unclassified failures are worth another immediate attempt."""
    return classify_error(error) in {"transient_remote", "internal"}


def user_message(error: BaseException) -> str:
    if isinstance(error, CoachError):
        return error.user_message
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429:
        return RateLimitError.user_message
    return _CATEGORY_MESSAGES[classify_error(error)]
