"""Error taxonomy shared by the configuration, request and bridge layers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from cedarling_bridge.schemas.primitives import AuthorizeErrorType


class CedarlingError(Exception):
    """Base class for bridge errors."""


class ConfigurationError(CedarlingError):
    """Raised when a bootstrap configuration is incomplete or rejected by the engine."""


class RequestValidationError(CedarlingError):
    """Raised by request builders before anything crosses the boundary."""


class MissingRequiredField(RequestValidationError):
    """Raised when a required field has not been provided."""

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required")


class AuthorizationError(CedarlingError):
    """Raised when the engine cannot complete an authorization call."""

    def __init__(
        self,
        message: str,
        *,
        error_type: Optional["AuthorizeErrorType"] = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type


def ensure_not_none(value: Any, field: str) -> Any:
    """Return ``value`` or raise :class:`MissingRequiredField` when it is ``None``."""

    if value is None:
        raise MissingRequiredField(field)
    return value
