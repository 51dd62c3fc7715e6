"""Cedarling authorization bridge package."""

from cedarling_bridge.core.errors import (  # noqa: F401
    AuthorizationError,
    CedarlingError,
    ConfigurationError,
    MissingRequiredField,
    RequestValidationError,
)
from cedarling_bridge.services.bridge import Cedarling, open_cedarling  # noqa: F401
