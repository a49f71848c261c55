"""
Domain Errors and the DRF Exception Handler

The service layer raises the domain errors below; read paths return None
for "not found" instead of raising. The handler translates everything into
a consistent {"error": ..., "details": ...} body.
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework.exceptions import ValidationError
from django.db import IntegrityError
from django.db.models import ProtectedError
import logging

logger = logging.getLogger(__name__)


class StackItError(Exception):
    """Base class for domain-level outcomes other than success."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(StackItError):
    """A write path referenced an entity that does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(StackItError):
    """A unique constraint rejected the write (duplicate user, vote, like)."""
    status_code = status.HTTP_409_CONFLICT


class InvalidInputError(StackItError):
    """Input rejected before it reached the database."""
    status_code = status.HTTP_400_BAD_REQUEST


class AssistantUnavailableError(StackItError):
    """The generative-AI service could not produce a reply."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Logs unexpected exceptions
    2. Converts domain and database errors to DRF responses
    3. Provides consistent error format
    """

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        if not isinstance(response.data, dict) or 'error' not in response.data:
            message = 'Invalid input' if isinstance(exc, ValidationError) else str(exc)
            response.data = {
                'error': message,
                'details': response.data
            }
        return response

    if isinstance(exc, StackItError):
        if isinstance(exc, AssistantUnavailableError):
            logger.error(f"Assistant unavailable: {exc.message}")
        return Response(
            {'error': exc.message, 'details': exc.details},
            status=exc.status_code
        )

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            {'error': 'Data integrity error. This may be a duplicate entry.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ProtectedError):
        logger.warning(f"ProtectedError: {exc}")
        return Response(
            {'error': 'Entity is still referenced by other records.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ValueError):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        {'error': 'An unexpected error occurred.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
