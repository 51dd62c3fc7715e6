"""Decision payloads returned by the engine."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from cedarling_bridge.schemas.primitives import Decision, PolicyId


class AuthzError(BaseModel):
    """An error raised while evaluating one policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    policy_id: str = Field(..., alias="id")
    description: str = Field(..., alias="error")


class Diagnostics(BaseModel):
    """Why a decision was reached: contributing policy ids and evaluation errors."""

    model_config = ConfigDict(frozen=True)

    reason: FrozenSet[PolicyId] = Field(default_factory=frozenset)
    errors: Tuple[AuthzError, ...] = Field(default_factory=tuple)

    def policy_ids(self) -> List[str]:
        return sorted(policy_id.value for policy_id in self.reason)


class PolicyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    decision: Decision
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    def is_allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class AuthorizeResult(BaseModel):
    """Outcome of one authorization call.

    ``workload`` and ``person`` are the fixed roles of the signed path;
    ``principals`` holds every evaluated principal by key.
    """

    model_config = ConfigDict(frozen=True)

    workload: Optional[PolicyResponse] = None
    person: Optional[PolicyResponse] = None
    principals: Mapping[str, PolicyResponse] = Field(default_factory=dict, validate_default=True)
    decision: bool = False
    request_id: str = ""

    @field_validator("principals", mode="after")
    @classmethod
    def freeze_principals(cls, value: Mapping[str, PolicyResponse]) -> Mapping[str, PolicyResponse]:
        return MappingProxyType(dict(value))

    @field_serializer("principals")
    def serialize_principals(self, value: Mapping[str, PolicyResponse]) -> Dict[str, PolicyResponse]:
        return dict(value)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AuthorizeResult":
        return cls.model_validate(payload)

    def is_allowed(self) -> bool:
        return self.decision

    def get_workload(self) -> Optional[PolicyResponse]:
        return self.workload

    def get_person(self) -> Optional[PolicyResponse]:
        return self.person

    def get_principal(self, key: str) -> Optional[PolicyResponse]:
        return self.principals.get(key)
