"""Bootstrap configuration model and its builder."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cedarling_bridge.core.errors import ConfigurationError, MissingRequiredField, ensure_not_none
from cedarling_bridge.schemas.primitives import (
    IdTokenTrustMode,
    JsonRule,
    JwtAlgorithm,
    LogLevel,
    LogType,
    PolicyStoreSource,
)

if TYPE_CHECKING:
    from cedarling_bridge.core.config import BridgeSettings

DEFAULT_DECISION_LOG_JWT_ID = "jti"
DEFAULT_UNSIGNED_ROLE_ID_SRC = "role"


class _MutableConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class MemoryLogConfiguration(_MutableConfig):
    """Bounds of the in-memory decision log store."""

    log_ttl: int = Field(default=0, ge=0, description="Seconds an entry is kept; 0 keeps entries forever.")
    max_items: Optional[int] = Field(default=None, ge=1)
    max_item_size: Optional[int] = Field(default=None, ge=1)


class LogConfiguration(_MutableConfig):
    log_type: LogType = LogType.OFF
    log_level: LogLevel = LogLevel.INFO
    memory_config: Optional[MemoryLogConfiguration] = None

    @classmethod
    def no_logging(cls) -> "LogConfiguration":
        return cls(log_type=LogType.OFF, log_level=LogLevel.INFO)

    @classmethod
    def memory(cls, memory_config: MemoryLogConfiguration, log_level: LogLevel = LogLevel.INFO) -> "LogConfiguration":
        return cls(log_type=LogType.MEMORY, log_level=log_level, memory_config=memory_config)

    @classmethod
    def std_out(cls, log_level: LogLevel = LogLevel.INFO) -> "LogConfiguration":
        return cls(log_type=LogType.STDOUT, log_level=log_level)

    @classmethod
    def lock(cls, log_level: LogLevel = LogLevel.INFO) -> "LogConfiguration":
        return cls(log_type=LogType.LOCK, log_level=log_level)


def _require_source(value: Any, field: str) -> Any:
    try:
        return ensure_not_none(value, field)
    except MissingRequiredField as exc:
        raise ConfigurationError(f"Policy store configuration failed: {exc}") from exc


class PolicyStoreConfiguration(BaseModel):
    """Tagged policy store source; carries either inline data or a file path, never both."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: PolicyStoreSource
    data: Optional[str] = None
    path: Optional[Path] = None

    @model_validator(mode="after")
    def check_payload_matches_source(self) -> "PolicyStoreConfiguration":
        if self.data is not None and self.path is not None:
            raise ValueError("policy store data and path are mutually exclusive")
        if self.source.is_file and self.path is None:
            raise ValueError(f"policy store source {self.source.value!r} requires a path")
        if not self.source.is_file and self.data is None:
            raise ValueError(f"policy store source {self.source.value!r} requires data")
        return self

    @classmethod
    def from_json_string(cls, json_data: Optional[str]) -> "PolicyStoreConfiguration":
        _require_source(json_data, "json_data")
        return cls(source=PolicyStoreSource.JSON_STRING, data=json_data)

    @classmethod
    def from_yaml_string(cls, yaml_data: Optional[str]) -> "PolicyStoreConfiguration":
        _require_source(yaml_data, "yaml_data")
        return cls(source=PolicyStoreSource.YAML_STRING, data=yaml_data)

    @classmethod
    def from_json_file(cls, path: Optional[Union[str, Path]]) -> "PolicyStoreConfiguration":
        _require_source(path, "json_file")
        return cls(source=PolicyStoreSource.JSON_FILE, path=Path(path))

    @classmethod
    def from_yaml_file(cls, path: Optional[Union[str, Path]]) -> "PolicyStoreConfiguration":
        _require_source(path, "yaml_file")
        return cls(source=PolicyStoreSource.YAML_FILE, path=Path(path))

    @classmethod
    def from_external_store(cls, store_id: Optional[str]) -> "PolicyStoreConfiguration":
        _require_source(store_id, "store_id")
        return cls(source=PolicyStoreSource.EXTERNAL_STORE_REF, data=store_id)


class JwtConfiguration(_MutableConfig):
    jwks: Optional[str] = Field(default=None, description="JSON Web Key Set used to verify token signatures.")
    jwt_sig_validation: bool = True
    jwt_status_validation: bool = True
    signature_algorithms: Set[JwtAlgorithm] = Field(default_factory=set)

    @classmethod
    def without_validation(cls) -> "JwtConfiguration":
        config = cls(jwt_sig_validation=False, jwt_status_validation=False)
        return config.allow_all_algorithms()

    def allow_all_algorithms(self) -> "JwtConfiguration":
        self.signature_algorithms = set(JwtAlgorithm)
        return self

    def add_signature_algorithm(self, algorithm: JwtAlgorithm) -> "JwtConfiguration":
        self.signature_algorithms = self.signature_algorithms | {algorithm}
        return self


class AuthorizationConfiguration(_MutableConfig):
    use_user_principal: bool = True
    use_workload_principal: bool = True
    principal_bool_operator: JsonRule = Field(default_factory=JsonRule)
    decision_log_user_claims: List[str] = Field(default_factory=list)
    decision_log_workload_claims: List[str] = Field(default_factory=list)
    decision_log_default_jwt_id: str = DEFAULT_DECISION_LOG_JWT_ID
    id_token_trust_mode: IdTokenTrustMode = IdTokenTrustMode.STRICT


class EntityNames(_MutableConfig):
    """Cedar entity type names used when the engine builds entities."""

    user: str = "Jans::User"
    workload: str = "Jans::Workload"
    role: str = "Jans::Role"
    iss: str = "Jans::TrustedIssuer"


class EntityBuilderConfiguration(_MutableConfig):
    build_workload: bool = False
    build_user: bool = False
    entity_names: EntityNames = Field(default_factory=EntityNames)
    unsigned_role_id_src: str = Field(
        default=DEFAULT_UNSIGNED_ROLE_ID_SRC,
        description="Principal attribute holding Role entity ids on the unsigned path.",
    )


class LockServiceConfiguration(_MutableConfig):
    """Lock server integration settings; every field is optional here."""

    log_level: Optional[LogLevel] = None
    config_uri: Optional[str] = None
    dynamic_config: bool = False
    ssa_jwt: Optional[str] = None
    log_interval: Optional[timedelta] = None
    health_interval: Optional[timedelta] = None
    telemetry_interval: Optional[timedelta] = None
    listen_sse: bool = False
    accept_invalid_certs: bool = Field(default=False, description="Testing only.")


_REQUIRED_COMPONENTS: Tuple[str, ...] = (
    "application_name",
    "log_config",
    "policy_store_config",
    "jwt_config",
    "authorization_config",
    "entity_builder_config",
)


class BootstrapConfiguration(_MutableConfig):
    """Everything the engine needs to start.

    Instances stay mutable after building; the bridge re-checks the required
    components when it opens a handle.
    """

    application_name: Optional[str] = None
    log_config: Optional[LogConfiguration] = None
    policy_store_config: Optional[PolicyStoreConfiguration] = None
    jwt_config: Optional[JwtConfiguration] = None
    authorization_config: Optional[AuthorizationConfiguration] = None
    entity_builder_config: Optional[EntityBuilderConfiguration] = None
    lock_config: Optional[LockServiceConfiguration] = None

    @staticmethod
    def builder() -> "BootstrapConfigurationBuilder":
        return BootstrapConfigurationBuilder()

    def missing_field(self) -> Optional[str]:
        for name in _REQUIRED_COMPONENTS:
            if getattr(self, name) is None:
                return name
        return None

    def ensure_complete(self) -> "BootstrapConfiguration":
        """Raise :class:`MissingRequiredField` for the first absent required component."""

        missing = self.missing_field()
        if missing is not None:
            raise MissingRequiredField(missing)
        return self

    @classmethod
    def from_settings(cls, settings: "BridgeSettings") -> "BootstrapConfiguration":
        """Build a configuration from ``CEDARLING_*`` environment settings."""

        if settings.policy_store_local_fn:
            if settings.policy_store_local_fn.endswith((".yaml", ".yml")):
                policy_store = PolicyStoreConfiguration.from_yaml_file(settings.policy_store_local_fn)
            else:
                policy_store = PolicyStoreConfiguration.from_json_file(settings.policy_store_local_fn)
        elif settings.policy_store_local is not None:
            if settings.policy_store_format == "yaml":
                policy_store = PolicyStoreConfiguration.from_yaml_string(settings.policy_store_local)
            else:
                policy_store = PolicyStoreConfiguration.from_json_string(settings.policy_store_local)
        else:
            policy_store = None

        memory_config = None
        if settings.log_type == LogType.MEMORY.value:
            memory_config = MemoryLogConfiguration(
                log_ttl=settings.log_ttl,
                max_items=settings.log_max_items,
                max_item_size=settings.log_max_item_size,
            )

        jwks = None
        if settings.local_jwks:
            try:
                jwks = Path(settings.local_jwks).read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(f"Could not read local JWKS {settings.local_jwks}: {exc}") from exc

        entity_names = EntityNames()
        if settings.mapping_user:
            entity_names.user = settings.mapping_user
        if settings.mapping_workload:
            entity_names.workload = settings.mapping_workload
        if settings.mapping_role:
            entity_names.role = settings.mapping_role

        lock_config = None
        if settings.lock_server_configuration_uri:
            lock_config = LockServiceConfiguration(
                log_level=settings.lock_log_level or settings.log_level,
                config_uri=settings.lock_server_configuration_uri,
                dynamic_config=settings.lock_dynamic_configuration,
                ssa_jwt=settings.lock_ssa_jwt,
                log_interval=_seconds(settings.lock_log_interval),
                health_interval=_seconds(settings.lock_health_interval),
                telemetry_interval=_seconds(settings.lock_telemetry_interval),
                listen_sse=settings.lock_listen_sse,
                accept_invalid_certs=settings.lock_accept_invalid_certs,
            )

        return (
            cls.builder()
            .application_name(settings.application_name)
            .log_config(
                LogConfiguration(
                    log_type=settings.log_type,
                    log_level=settings.log_level,
                    memory_config=memory_config,
                )
            )
            .policy_store_config(policy_store)
            .jwt_config(
                JwtConfiguration(
                    jwks=jwks,
                    jwt_sig_validation=settings.jwt_sig_validation,
                    jwt_status_validation=settings.jwt_status_validation,
                    signature_algorithms=set(settings.jwt_signature_algorithms_supported),
                )
            )
            .authorization_config(
                AuthorizationConfiguration(
                    use_user_principal=settings.user_authz,
                    use_workload_principal=settings.workload_authz,
                    principal_bool_operator=JsonRule(settings.principal_boolean_operation),
                    decision_log_user_claims=settings.decision_log_user_claims,
                    decision_log_workload_claims=settings.decision_log_workload_claims,
                    decision_log_default_jwt_id=settings.decision_log_default_jwt_id,
                    id_token_trust_mode=settings.id_token_trust_mode,
                )
            )
            .entity_builder_config(
                EntityBuilderConfiguration(
                    build_user=settings.build_user,
                    build_workload=settings.build_workload,
                    entity_names=entity_names,
                    unsigned_role_id_src=settings.unsigned_role_id_src,
                )
            )
            .lock_config(lock_config)
            .build()
        )


def _seconds(value: Optional[int]) -> Optional[timedelta]:
    if value is None:
        return None
    return timedelta(seconds=value)


class BootstrapConfigurationBuilder:
    """Mutable accumulator for :class:`BootstrapConfiguration`."""

    def __init__(self) -> None:
        self._application_name: Optional[str] = None
        self._log_config: Optional[LogConfiguration] = None
        self._policy_store_config: Optional[PolicyStoreConfiguration] = None
        self._jwt_config: Optional[JwtConfiguration] = None
        self._authorization_config: Optional[AuthorizationConfiguration] = None
        self._entity_builder_config: Optional[EntityBuilderConfiguration] = None
        self._lock_config: Optional[LockServiceConfiguration] = None

    def application_name(self, name: Optional[str]) -> "BootstrapConfigurationBuilder":
        self._application_name = name
        return self

    def log_config(self, config: Optional[LogConfiguration]) -> "BootstrapConfigurationBuilder":
        self._log_config = config
        return self

    def policy_store_config(self, config: Optional[PolicyStoreConfiguration]) -> "BootstrapConfigurationBuilder":
        self._policy_store_config = config
        return self

    def jwt_config(self, config: Optional[JwtConfiguration]) -> "BootstrapConfigurationBuilder":
        self._jwt_config = config
        return self

    def authorization_config(self, config: Optional[AuthorizationConfiguration]) -> "BootstrapConfigurationBuilder":
        self._authorization_config = config
        return self

    def entity_builder_config(self, config: Optional[EntityBuilderConfiguration]) -> "BootstrapConfigurationBuilder":
        self._entity_builder_config = config
        return self

    def lock_config(self, config: Optional[LockServiceConfiguration]) -> "BootstrapConfigurationBuilder":
        self._lock_config = config
        return self

    def build(self) -> BootstrapConfiguration:
        config = BootstrapConfiguration(
            application_name=self._application_name,
            log_config=self._log_config,
            policy_store_config=self._policy_store_config,
            jwt_config=self._jwt_config,
            authorization_config=self._authorization_config,
            entity_builder_config=self._entity_builder_config,
            lock_config=self._lock_config,
        )
        try:
            return config.ensure_complete()
        except MissingRequiredField as exc:
            raise ConfigurationError(f"Bootstrap configuration build failed: {exc}") from exc
