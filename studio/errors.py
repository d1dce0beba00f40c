"""
Studio error types.

All errors inherit from StudioError so the convergence loop can catch them at
its boundary. Each carries the HTTP status the API reports it with.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class StudioError(Exception):
    """Base exception for all studio failures."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConfigurationError(StudioError):
    """Raised when a credential or secret needed by the call is not configured."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ValidationError(StudioError):
    """Raised when required input is missing or invalid, before any state change."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(StudioError):
    """Raised for an unknown job, document or agent session."""
    status_code = status.HTTP_404_NOT_FOUND


class ExternalServiceError(StudioError):
    """Raised on a non-success response from the agent or render provider."""
    status_code = status.HTTP_502_BAD_GATEWAY


class ParseError(StudioError):
    """Raised when agent output cannot be resolved to the expected structure."""
    status_code = status.HTTP_502_BAD_GATEWAY


class PreconditionError(StudioError):
    """Raised when attempting an illegal stage transition."""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, *, current_stage: str = "", target_stage: str = ""):
        self.current_stage = current_stage
        self.target_stage = target_stage
        super().__init__(message)


class Unauthorized(StudioError):
    """Raised when the render webhook secret is missing or does not match."""
    status_code = status.HTTP_401_UNAUTHORIZED


def exception_handler(exc, context):
    """DRF exception handler that also renders StudioError subclasses."""
    if isinstance(exc, StudioError):
        if exc.status_code >= 500:
            logger.error("request failed: %s", exc)
        return Response({"detail": str(exc)}, status=exc.status_code)
    return drf_exception_handler(exc, context)
