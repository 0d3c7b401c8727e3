"""
Service layer custom exceptions.

This module defines service-specific exceptions that provide better error handling
and debugging capabilities compared to generic exceptions.
"""

from typing import Any, Dict, Optional


class ServiceException(Exception):
    """Base exception for all service layer errors."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        if self.service and self.operation:
            return f"[{self.service}.{self.operation}] {self.message}"
        return self.message


class DatabaseError(ServiceException):
    """Exception raised for database-related errors in services."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Database error: {message}",
            service=service,
            operation=operation,
            context=context,
            original_error=original_error,
        )


class ExternalServiceError(ServiceException):
    """Exception raised for errors in external collaborators (parser, relay)."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        external_service: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        external_context = context or {}
        if external_service:
            external_context["external_service"] = external_service
        if status_code:
            external_context["status_code"] = status_code

        super().__init__(
            message=f"External service error: {message}",
            service=service,
            operation=operation,
            context=external_context,
            original_error=original_error,
        )


class ReplayParseError(ExternalServiceError):
    """Raised when the replay parser cannot read an uploaded file."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service="ReplayParser",
            operation="parse",
            external_service="parser",
            context=context,
            original_error=original_error,
        )


class RelayError(ExternalServiceError):
    """Raised when the upload relay rejects or cannot receive a replay."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service="RelayGateway",
            operation="upload",
            external_service="relay",
            status_code=status_code,
            context=context,
            original_error=original_error,
        )


class StorageError(ServiceException):
    """Raised when a replay file cannot be written to or removed from storage."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Storage error: {message}",
            service="ReplayStorage",
            operation=operation,
            context=context,
            original_error=original_error,
        )


class ReplayNotFoundError(ServiceException):
    """Raised when a replay lookup by id has no match."""

    def __init__(self, replay_id: int):
        super().__init__(
            message=f"Replay not found: {replay_id}",
            service="ReplayService",
            operation="get_replay",
            context={"replay_id": replay_id},
        )
        self.replay_id = replay_id
