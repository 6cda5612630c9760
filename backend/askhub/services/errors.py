"""
Domain errors raised by services and translated to HTTP at the app edge.

Three kinds reach the user:
- validation errors, found before any write, carrying per-field messages;
- rejections by the data layer or business rules (each with a stable code);
- unexpected failures, logged and shown as a generic retry message.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from askhub.config import sanitize_error

logger = logging.getLogger(__name__)


class AskHubError(Exception):
    """Base class for errors that map to a user-facing response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FormValidationError(AskHubError):
    """One or more fields failed local validation."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"

    def __init__(self, errors: dict[str, str], message: str = "Please fix the highlighted fields."):
        super().__init__(message)
        self.errors = errors


class NotFoundError(AskHubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class AuthenticationError(AskHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"


class PermissionDeniedError(AskHubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class ConflictError(AskHubError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class SelfChatError(AskHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "self_chat"


class InsufficientTokensError(AskHubError):
    """The initiator cannot afford the stake."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_tokens"


class DuplicateConversationError(ConflictError):
    code = "duplicate_conversation"


class ActionFailedError(AskHubError):
    """A primary mutation failed for an unexpected reason."""

    code = "action_failed"


def error_body(exc: AskHubError) -> dict:
    detail: dict = {"code": exc.code, "message": exc.message}
    if isinstance(exc, FormValidationError):
        detail["errors"] = exc.errors
    return {"detail": detail}


async def askhub_error_handler(request: Request, exc: AskHubError) -> JSONResponse:
    """Translate a domain error into a JSON response."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message
        )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for errors no service anticipated."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = sanitize_error(exc, generic_message="Something went wrong. Please try again.")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "internal_error", "message": message}},
    )
