"""Translation of bridge values to and from boundary payloads."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from cedarling_bridge.core.errors import (
    AuthorizationError,
    ConfigurationError,
    MissingRequiredField,
    ensure_not_none,
)
from cedarling_bridge.schemas.bootstrap import (
    AuthorizationConfiguration,
    BootstrapConfiguration,
    EntityBuilderConfiguration,
    JwtConfiguration,
    LockServiceConfiguration,
    LogConfiguration,
    PolicyStoreConfiguration,
)
from cedarling_bridge.schemas.entity import Context, EntityData
from cedarling_bridge.schemas.primitives import AuthorizeErrorType, JwtAlgorithm
from cedarling_bridge.schemas.request import AuthorizeRequest, AuthorizeRequestUnsigned
from cedarling_bridge.schemas.result import AuthorizeResult


def bootstrap_payload(config: Optional[BootstrapConfiguration]) -> Dict[str, Any]:
    """Validate ``config`` and convert it to the engine's bootstrap payload.

    Raises:
        ConfigurationError: if a required component is missing or malformed.
    """

    try:
        ensure_not_none(config, "bootstrap_config")
        config.ensure_complete()
        return {
            "application_name": config.application_name,
            "log_config": _log_payload(config.log_config),
            "policy_store_config": _policy_store_payload(config.policy_store_config),
            "jwt_config": _jwt_payload(config.jwt_config),
            "authorization_config": _authorization_payload(config.authorization_config),
            "entity_builder_config": _entity_builder_payload(config.entity_builder_config),
            "lock_config": _lock_payload(config.lock_config) if config.lock_config is not None else None,
        }
    except MissingRequiredField as exc:
        raise ConfigurationError(f"Bootstrap configuration is incomplete: {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Bootstrap configuration is invalid: {exc}") from exc


def _log_payload(config: LogConfiguration) -> Dict[str, Any]:
    memory = None
    if config.memory_config is not None:
        memory = config.memory_config.model_dump(mode="json")
    return {
        "log_type": config.log_type.value,
        "log_level": config.log_level.value,
        "memory": memory,
    }


def _policy_store_payload(config: PolicyStoreConfiguration) -> Dict[str, Any]:
    return {
        "source": config.source.value,
        "data": config.data,
        "path": str(config.path.resolve()) if config.path is not None else None,
    }


def _jwt_payload(config: JwtConfiguration) -> Dict[str, Any]:
    order = list(JwtAlgorithm)
    return {
        "jwks": config.jwks,
        "jwt_sig_validation": config.jwt_sig_validation,
        "jwt_status_validation": config.jwt_status_validation,
        "signature_algorithms": [alg.value for alg in sorted(config.signature_algorithms, key=order.index)],
    }


def _authorization_payload(config: AuthorizationConfiguration) -> Dict[str, Any]:
    try:
        operator = config.principal_bool_operator.as_dict()
    except ValueError as exc:
        raise ValueError(f"principal_bool_operator is not a JSON object: {exc}") from exc
    return {
        "use_user_principal": config.use_user_principal,
        "use_workload_principal": config.use_workload_principal,
        "principal_bool_operator": operator,
        "decision_log_user_claims": list(config.decision_log_user_claims),
        "decision_log_workload_claims": list(config.decision_log_workload_claims),
        "decision_log_default_jwt_id": config.decision_log_default_jwt_id,
        "id_token_trust_mode": config.id_token_trust_mode.value,
    }


def _entity_builder_payload(config: EntityBuilderConfiguration) -> Dict[str, Any]:
    return {
        "build_workload": config.build_workload,
        "build_user": config.build_user,
        "entity_names": config.entity_names.model_dump(),
        "unsigned_role_id_src": config.unsigned_role_id_src,
    }


def _lock_payload(config: LockServiceConfiguration) -> Dict[str, Any]:
    ensure_not_none(config.log_level, "lock_config.log_level")
    ensure_not_none(config.config_uri, "lock_config.config_uri")
    return {
        "log_level": config.log_level.value,
        "config_uri": config.config_uri,
        "dynamic_config": config.dynamic_config,
        "ssa_jwt": config.ssa_jwt,
        "log_interval": _seconds(config.log_interval),
        "health_interval": _seconds(config.health_interval),
        "telemetry_interval": _seconds(config.telemetry_interval),
        "listen_sse": config.listen_sse,
        "accept_invalid_certs": config.accept_invalid_certs,
    }


def _seconds(value: Any) -> Optional[float]:
    if value is None:
        return None
    return value.total_seconds()


def entity_payload(
    entity: Optional[EntityData],
    field: str,
    error_type: AuthorizeErrorType = AuthorizeErrorType.ENTITIES,
) -> Dict[str, Any]:
    """Convert an entity; its attributes must parse to a JSON object."""

    ensure_not_none(entity, field)
    try:
        attributes = entity.attributes_dict()
    except ValueError as exc:
        raise AuthorizationError(
            f"{field} attributes are not a valid JSON object: {exc}",
            error_type=error_type,
        ) from exc
    return {"type": entity.type, "id": entity.id, "attributes": attributes}


def _context_payload(context: Optional[Context]) -> Dict[str, Any]:
    ensure_not_none(context, "context")
    try:
        parsed = json.loads(context.data)
    except ValueError as exc:
        raise AuthorizationError(
            f"context is not valid JSON: {exc}",
            error_type=AuthorizeErrorType.CREATE_CONTEXT,
        ) from exc
    if not isinstance(parsed, dict):
        raise AuthorizationError("context must be a JSON object", error_type=AuthorizeErrorType.CREATE_CONTEXT)
    return parsed


def request_payload(request: Optional[AuthorizeRequest]) -> Dict[str, Any]:
    """Convert a signed request; raises :class:`AuthorizationError` when it is malformed."""

    try:
        ensure_not_none(request, "request")
        return {
            "tokens": dict(request.tokens),
            "action": ensure_not_none(request.action, "action"),
            "resource": entity_payload(request.resource, "resource", AuthorizeErrorType.RESOURCE_ENTITY),
            "context": _context_payload(request.context),
        }
    except MissingRequiredField as exc:
        raise AuthorizationError(f"Authorization request is incomplete: {exc}") from exc


def unsigned_request_payload(request: Optional[AuthorizeRequestUnsigned]) -> Dict[str, Any]:
    """Convert an unsigned request; raises :class:`AuthorizationError` when it is malformed."""

    try:
        ensure_not_none(request, "request")
        return {
            "principals": [
                entity_payload(principal, f"principals[{index}]")
                for index, principal in enumerate(request.principals)
            ],
            "action": ensure_not_none(request.action, "action"),
            "resource": entity_payload(request.resource, "resource", AuthorizeErrorType.RESOURCE_ENTITY),
            "context": _context_payload(request.context),
        }
    except MissingRequiredField as exc:
        raise AuthorizationError(f"Unsigned authorization request is incomplete: {exc}") from exc


def result_from_payload(payload: Mapping[str, Any]) -> AuthorizeResult:
    """Deserialize the engine's decision payload."""

    try:
        return AuthorizeResult.from_payload(payload)
    except ValidationError as exc:
        raise AuthorizationError(f"Engine returned a malformed decision payload: {exc}") from exc
