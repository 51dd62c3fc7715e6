"""Loading and validation of policy store documents for the local engine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cedarling_bridge.schemas.primitives import PolicyStoreSource

LOGGER = logging.getLogger("cedarling_bridge.services.policy_store")


class PolicyStoreError(Exception):
    """Raised when a policy store cannot be resolved or contains no usable policies."""


class EntityMatcher(BaseModel):
    """Scope constraint on a principal or resource; unset keys match anything."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Optional[str] = None
    id: Optional[str] = None
    role: Optional[str] = Field(default=None, description="Role entity id the principal must hold.")


class PolicyDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    description: str = ""
    effect: Literal["permit", "forbid"]
    principal: Optional[EntityMatcher] = None
    action: Optional[Union[str, List[str]]] = None
    resource: Optional[EntityMatcher] = None
    when: Optional[Dict[str, Any]] = None
    unless: Optional[Dict[str, Any]] = None

    @property
    def actions(self) -> Optional[List[str]]:
        if self.action is None:
            return None
        if isinstance(self.action, str):
            return [self.action]
        return list(self.action)


class PolicyStore(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    description: str = ""
    policies: Dict[str, PolicyDefinition] = Field(..., min_length=1)
    trusted_issuers: Dict[str, Any] = Field(default_factory=dict)


class PolicyStoreDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    cedar_version: Optional[str] = None
    policy_stores: Dict[str, PolicyStore] = Field(..., min_length=1)

    @field_validator("policy_stores")
    @classmethod
    def single_store(cls, value: Dict[str, PolicyStore]) -> Dict[str, PolicyStore]:
        if len(value) != 1:
            raise ValueError(f"expected exactly one policy store, found {len(value)}")
        return value

    @property
    def store_id(self) -> str:
        return next(iter(self.policy_stores))

    @property
    def store(self) -> PolicyStore:
        return self.policy_stores[self.store_id]


def _read_text(path: Optional[str]) -> str:
    if not path:
        raise PolicyStoreError("policy store file path is missing")
    file_path = Path(path)
    if not file_path.is_file():
        raise PolicyStoreError(f"policy store file {file_path} does not exist")
    try:
        return file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyStoreError(f"could not read policy store file {file_path}: {exc}") from exc


def _parse(text: Optional[str], fmt: str) -> Any:
    if text is None or not text.strip():
        raise PolicyStoreError("policy store is empty")
    try:
        if fmt == "yaml":
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, ValueError) as exc:
        raise PolicyStoreError(f"policy store is not valid {fmt.upper()}: {exc}") from exc


def load_policy_store(config: Mapping[str, Any]) -> PolicyStoreDocument:
    """Resolve the ``policy_store_config`` bootstrap payload into a validated document."""

    try:
        source = PolicyStoreSource(config.get("source"))
    except ValueError as exc:
        raise PolicyStoreError(f"unknown policy store source {config.get('source')!r}") from exc

    if source is PolicyStoreSource.EXTERNAL_STORE_REF:
        raise PolicyStoreError(
            f"policy store {config.get('data')!r} lives on a lock server, which the local engine cannot reach"
        )

    if source is PolicyStoreSource.JSON_STRING:
        raw = _parse(config.get("data"), "json")
    elif source is PolicyStoreSource.YAML_STRING:
        raw = _parse(config.get("data"), "yaml")
    elif source is PolicyStoreSource.JSON_FILE:
        raw = _parse(_read_text(config.get("path")), "json")
    else:
        raw = _parse(_read_text(config.get("path")), "yaml")

    if not raw:
        raise PolicyStoreError("policy store is empty")
    if not isinstance(raw, dict):
        raise PolicyStoreError("policy store must be a mapping")

    try:
        document = PolicyStoreDocument.model_validate(raw)
    except ValidationError as exc:
        raise PolicyStoreError(f"policy store is invalid: {exc}") from exc

    LOGGER.debug(
        "policy_store_loaded",
        extra={
            "source": source.value,
            "store_id": document.store_id,
            "policy_count": len(document.store.policies),
        },
    )
    return document
