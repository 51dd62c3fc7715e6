"""PARC authorization requests and their builders."""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from cedarling_bridge.core.errors import MissingRequiredField
from cedarling_bridge.schemas.entity import Context, EntityData

ACCESS_TOKEN_KEY = "access_token"
ID_TOKEN_KEY = "id_token"
USERINFO_TOKEN_KEY = "userinfo_token"


class AuthorizeRequest(BaseModel):
    """Request whose principals are derived from signed JWTs.

    ``tokens`` maps a token name to its encoded JWT. The three standard names
    are mandatory, further token kinds may be added freely.
    """

    model_config = ConfigDict(frozen=True)

    tokens: Mapping[str, str]
    action: str
    resource: EntityData
    context: Context

    @field_validator("tokens", mode="after")
    @classmethod
    def freeze_tokens(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("tokens")
    def serialize_tokens(self, value: Mapping[str, str]) -> Dict[str, str]:
        return dict(value)

    @staticmethod
    def builder() -> "AuthorizeRequestBuilder":
        return AuthorizeRequestBuilder()

    def get_token(self, name: str) -> Optional[str]:
        return self.tokens.get(name)

    def token_names(self) -> List[str]:
        return list(self.tokens)


class AuthorizeRequestBuilder:
    """Mutable accumulator for :class:`AuthorizeRequest`.

    ``build`` validates the current state every time it is called and never
    consumes the builder.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, Optional[str]] = {}
        self._action: Optional[str] = None
        self._resource: Optional[EntityData] = None
        self._context: Optional[Context] = None

    def token(self, name: str, value: Optional[str]) -> "AuthorizeRequestBuilder":
        self._tokens[name] = value
        return self

    def tokens(self, tokens: Mapping[str, Optional[str]]) -> "AuthorizeRequestBuilder":
        self._tokens = dict(tokens)
        return self

    def access_token(self, value: Optional[str]) -> "AuthorizeRequestBuilder":
        return self.token(ACCESS_TOKEN_KEY, value)

    def id_token(self, value: Optional[str]) -> "AuthorizeRequestBuilder":
        return self.token(ID_TOKEN_KEY, value)

    def userinfo_token(self, value: Optional[str]) -> "AuthorizeRequestBuilder":
        return self.token(USERINFO_TOKEN_KEY, value)

    def action(self, action: Optional[str]) -> "AuthorizeRequestBuilder":
        self._action = action
        return self

    def resource(self, resource: Optional[EntityData]) -> "AuthorizeRequestBuilder":
        self._resource = resource
        return self

    def context(self, context: Optional[Context]) -> "AuthorizeRequestBuilder":
        self._context = context
        return self

    def missing_field(self) -> Optional[str]:
        """Return the first required field that is not set, or None."""

        checks: Tuple[Tuple[str, object], ...] = (
            (ACCESS_TOKEN_KEY, self._tokens.get(ACCESS_TOKEN_KEY)),
            (ID_TOKEN_KEY, self._tokens.get(ID_TOKEN_KEY)),
            (USERINFO_TOKEN_KEY, self._tokens.get(USERINFO_TOKEN_KEY)),
            ("action", self._action),
            ("resource", self._resource),
            ("context", self._context),
        )
        for name, value in checks:
            if value is None:
                return name
        return None

    def build(self) -> AuthorizeRequest:
        missing = self.missing_field()
        if missing is not None:
            raise MissingRequiredField(missing)

        extra_nulls = [name for name, value in self._tokens.items() if value is None]
        if extra_nulls:
            raise MissingRequiredField(extra_nulls[0], f"token {extra_nulls[0]!r} has no value")

        return AuthorizeRequest(
            tokens=dict(self._tokens),
            action=self._action,
            resource=self._resource,
            context=self._context,
        )


class AuthorizeRequestUnsigned(BaseModel):
    """Request naming its principals explicitly instead of deriving them from tokens.

    Nothing is required locally; the engine validates the request.
    """

    model_config = ConfigDict(frozen=True)

    principals: Tuple[EntityData, ...] = Field(default_factory=tuple)
    action: Optional[str] = None
    resource: Optional[EntityData] = None
    context: Optional[Context] = None

    @staticmethod
    def builder() -> "AuthorizeRequestUnsignedBuilder":
        return AuthorizeRequestUnsignedBuilder()


class AuthorizeRequestUnsignedBuilder:
    """Mutable accumulator for :class:`AuthorizeRequestUnsigned`."""

    def __init__(self) -> None:
        self._principals: List[EntityData] = []
        self._action: Optional[str] = None
        self._resource: Optional[EntityData] = None
        self._context: Optional[Context] = None

    def principal(self, principal: EntityData) -> "AuthorizeRequestUnsignedBuilder":
        self._principals.append(principal)
        return self

    def principals(self, principals: Iterable[EntityData]) -> "AuthorizeRequestUnsignedBuilder":
        self._principals = list(principals)
        return self

    def action(self, action: Optional[str]) -> "AuthorizeRequestUnsignedBuilder":
        self._action = action
        return self

    def resource(self, resource: Optional[EntityData]) -> "AuthorizeRequestUnsignedBuilder":
        self._resource = resource
        return self

    def context(self, context: Optional[Context]) -> "AuthorizeRequestUnsignedBuilder":
        self._context = context
        return self

    def build(self) -> AuthorizeRequestUnsigned:
        return AuthorizeRequestUnsigned(
            principals=tuple(self._principals),
            action=self._action,
            resource=self._resource,
            context=self._context,
        )
