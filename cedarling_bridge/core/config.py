"""Bridge configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TOGGLE_VALUES = {"enabled": True, "disabled": False}


class BridgeSettings(BaseSettings):
    """Bridge and bootstrap properties loaded from ``CEDARLING_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CEDARLING_",
        extra="ignore",
    )

    service_name: str = Field(default="cedarling-bridge")
    bridge_log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    application_name: Optional[str] = Field(default=None)
    policy_store_local: Optional[str] = Field(default=None)
    policy_store_local_fn: Optional[str] = Field(default=None)
    policy_store_format: str = Field(default="json")

    log_type: str = Field(default="off")
    log_level: str = Field(default="INFO")
    log_ttl: int = Field(default=0)
    log_max_items: Optional[int] = Field(default=None)
    log_max_item_size: Optional[int] = Field(default=None)

    local_jwks: Optional[str] = Field(default=None)
    jwt_sig_validation: bool = Field(default=True)
    jwt_status_validation: bool = Field(default=True)
    jwt_signature_algorithms_supported: List[str] | str = Field(default_factory=list)

    id_token_trust_mode: str = Field(default="strict")
    user_authz: bool = Field(default=True)
    workload_authz: bool = Field(default=True)
    principal_boolean_operation: str = Field(default="{}")
    decision_log_user_claims: List[str] | str = Field(default_factory=list)
    decision_log_workload_claims: List[str] | str = Field(default_factory=list)
    decision_log_default_jwt_id: str = Field(default="jti")

    build_user: bool = Field(default=False)
    build_workload: bool = Field(default=False)
    mapping_user: Optional[str] = Field(default=None)
    mapping_workload: Optional[str] = Field(default=None)
    mapping_role: Optional[str] = Field(default=None)
    unsigned_role_id_src: str = Field(default="role")

    lock_server_configuration_uri: Optional[str] = Field(default=None)
    lock_log_level: Optional[str] = Field(default=None)
    lock_log_interval: Optional[int] = Field(default=None)
    lock_health_interval: Optional[int] = Field(default=None)
    lock_telemetry_interval: Optional[int] = Field(default=None)
    lock_listen_sse: bool = Field(default=False)
    lock_dynamic_configuration: bool = Field(default=False)
    lock_ssa_jwt: Optional[str] = Field(default=None)
    lock_accept_invalid_certs: bool = Field(default=False)

    @field_validator("bridge_log_level", "log_level", "lock_log_level")
    @classmethod
    def normalize_log_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return value.upper()

    @field_validator("log_type", "policy_store_format", "id_token_trust_mode")
    @classmethod
    def normalize_lowercase(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator(
        "jwt_sig_validation",
        "jwt_status_validation",
        "user_authz",
        "workload_authz",
        "build_user",
        "build_workload",
        "lock_listen_sse",
        "lock_dynamic_configuration",
        "lock_accept_invalid_certs",
        mode="before",
    )
    @classmethod
    def parse_toggle(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in _TOGGLE_VALUES:
            return _TOGGLE_VALUES[value.strip().lower()]
        return value

    @field_validator(
        "jwt_signature_algorithms_supported",
        "decision_log_user_claims",
        "decision_log_workload_claims",
    )
    @classmethod
    def parse_csv(cls, value: str | List[str] | None) -> List[str]:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator(
        "application_name",
        "policy_store_local",
        "policy_store_local_fn",
        "local_jwks",
        "mapping_user",
        "mapping_workload",
        "mapping_role",
        "lock_server_configuration_uri",
        "lock_log_level",
        "lock_ssa_jwt",
        mode="before",
    )
    @classmethod
    def empty_string_to_none(cls, value: str | None) -> str | None:
        if value == "":
            return None
        return value

    @field_validator(
        "log_max_items",
        "log_max_item_size",
        "lock_log_interval",
        "lock_health_interval",
        "lock_telemetry_interval",
        mode="before",
    )
    @classmethod
    def empty_int_to_none(cls, value: int | str | None) -> int | str | None:
        if value in (None, ""):
            return None
        return value


@lru_cache
def get_settings() -> BridgeSettings:
    """Return cached bridge settings instance."""

    return BridgeSettings()
