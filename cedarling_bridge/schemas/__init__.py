"""Pydantic models for requests, configuration and decisions."""

from cedarling_bridge.schemas.bootstrap import (
    AuthorizationConfiguration,
    BootstrapConfiguration,
    BootstrapConfigurationBuilder,
    EntityBuilderConfiguration,
    EntityNames,
    JwtConfiguration,
    LockServiceConfiguration,
    LogConfiguration,
    MemoryLogConfiguration,
    PolicyStoreConfiguration,
)
from cedarling_bridge.schemas.entity import Context, EntityData
from cedarling_bridge.schemas.primitives import (
    AuthorizeErrorType,
    Decision,
    IdTokenTrustMode,
    JsonRule,
    JwtAlgorithm,
    LogLevel,
    LogType,
    PolicyId,
    PolicyStoreSource,
)
from cedarling_bridge.schemas.request import (
    AuthorizeRequest,
    AuthorizeRequestBuilder,
    AuthorizeRequestUnsigned,
    AuthorizeRequestUnsignedBuilder,
)
from cedarling_bridge.schemas.result import AuthorizeResult, AuthzError, Diagnostics, PolicyResponse

__all__ = [
    "AuthorizationConfiguration",
    "AuthorizeErrorType",
    "AuthorizeRequest",
    "AuthorizeRequestBuilder",
    "AuthorizeRequestUnsigned",
    "AuthorizeRequestUnsignedBuilder",
    "AuthorizeResult",
    "AuthzError",
    "BootstrapConfiguration",
    "BootstrapConfigurationBuilder",
    "Context",
    "Decision",
    "Diagnostics",
    "EntityBuilderConfiguration",
    "EntityData",
    "EntityNames",
    "IdTokenTrustMode",
    "JsonRule",
    "JwtAlgorithm",
    "JwtConfiguration",
    "LockServiceConfiguration",
    "LogConfiguration",
    "LogLevel",
    "LogType",
    "MemoryLogConfiguration",
    "PolicyId",
    "PolicyResponse",
    "PolicyStoreConfiguration",
    "PolicyStoreSource",
]
