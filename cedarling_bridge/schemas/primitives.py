"""Closed enumerations and small value objects shared across the bridge.

Every enumeration is a ``str`` enum whose *value* is the exact string the
engine boundary expects, so the member list doubles as the mapping table.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Decision(str, Enum):
    """Per-principal policy decision.

    ======== =========
    member   wire
    ======== =========
    ALLOW    ``Allow``
    DENY     ``Deny``
    ======== =========
    """

    ALLOW = "Allow"
    DENY = "Deny"


class LogLevel(str, Enum):
    """Engine log severity, ordered FATAL < ERROR < WARN < INFO < DEBUG < TRACE.

    The wire value is the member name.
    """

    FATAL = "FATAL"
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"

    @property
    def rank(self) -> int:
        return _LOG_LEVEL_ORDER.index(self)

    def allows(self, other: "LogLevel") -> bool:
        """Return True when an entry at ``other`` passes a threshold of ``self``."""

        return other.rank <= self.rank


_LOG_LEVEL_ORDER = (
    LogLevel.FATAL,
    LogLevel.ERROR,
    LogLevel.WARN,
    LogLevel.INFO,
    LogLevel.DEBUG,
    LogLevel.TRACE,
)


class LogType(str, Enum):
    """Destination of engine decision logs.

    ======== ===========
    member   wire
    ======== ===========
    OFF      ``off``
    MEMORY   ``memory``
    STDOUT   ``std_out``
    LOCK     ``lock``
    ======== ===========
    """

    OFF = "off"
    MEMORY = "memory"
    STDOUT = "std_out"
    LOCK = "lock"


class JwtAlgorithm(str, Enum):
    """JOSE signature algorithm identifiers; the wire value is the JOSE name."""

    HS256 = "HS256"
    HS384 = "HS384"
    HS512 = "HS512"
    ES256 = "ES256"
    ES384 = "ES384"
    RS256 = "RS256"
    RS384 = "RS384"
    RS512 = "RS512"
    PS256 = "PS256"
    PS384 = "PS384"
    PS512 = "PS512"
    EdDSA = "EdDSA"


class IdTokenTrustMode(str, Enum):
    """Cross-token claim consistency policy applied to signed requests.

    ``NONE`` (wire ``none``) performs no cross-token checks.

    ``STRICT`` (wire ``strict``) requires the id token ``aud`` to contain the
    access token ``client_id``. When a userinfo token is supplied its ``sub``
    must equal the id token ``sub`` and its ``aud`` must equal the id token
    ``aud``.
    """

    NONE = "none"
    STRICT = "strict"


class PolicyStoreSource(str, Enum):
    """Where the engine reads its policy store from.

    ===================  ===============
    member               wire
    ===================  ===============
    JSON_STRING          ``json``
    YAML_STRING          ``yaml``
    JSON_FILE            ``file_json``
    YAML_FILE            ``file_yaml``
    EXTERNAL_STORE_REF   ``lock_server``
    ===================  ===============
    """

    JSON_STRING = "json"
    YAML_STRING = "yaml"
    JSON_FILE = "file_json"
    YAML_FILE = "file_yaml"
    EXTERNAL_STORE_REF = "lock_server"

    @property
    def is_file(self) -> bool:
        return self in (PolicyStoreSource.JSON_FILE, PolicyStoreSource.YAML_FILE)


class AuthorizeErrorType(str, Enum):
    """Stage of an authorization call at which the engine failed."""

    PROCESS_TOKENS = "ProcessTokens"
    ACCESS_TOKEN_ENTITIES = "AccessTokenEntities"
    CREATE_ID_TOKEN_ENTITY = "CreateIdTokenEntity"
    CREATE_USERINFO_TOKEN_ENTITY = "CreateUserinfoTokenEntity"
    CREATE_USER_ENTITY = "CreateUserEntity"
    RESOURCE_ENTITY = "ResourceEntity"
    ROLE_ENTITY = "RoleEntity"
    ACTION = "Action"
    CREATE_CONTEXT = "CreateContext"
    CREATE_REQUEST_WORKLOAD_ENTITY = "CreateRequestWorkloadEntity"
    CREATE_REQUEST_USER_ENTITY = "CreateRequestUserEntity"
    ENTITIES = "Entities"
    POLICY_EVALUATION = "PolicyEvaluation"


class JsonRule(BaseModel):
    """JSON-logic rule kept as text until it reaches the engine."""

    model_config = ConfigDict(validate_assignment=True)

    value: str = Field(default="{}")

    def __init__(self, value: Any = "{}", **data: Any) -> None:
        super().__init__(value=value, **data)

    @field_validator("value", mode="before")
    @classmethod
    def serialize_mapping(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return json.dumps(value)
        return value

    def as_dict(self) -> Dict[str, Any]:
        parsed = json.loads(self.value)
        if not isinstance(parsed, dict):
            raise ValueError("JSON rule must be a JSON object")
        return parsed


class PolicyId(BaseModel):
    """Identifier of a policy that contributed to a decision."""

    model_config = ConfigDict(frozen=True)

    value: str

    @model_validator(mode="before")
    @classmethod
    def from_bare_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"value": data}
        return data

    def __str__(self) -> str:
        return self.value
