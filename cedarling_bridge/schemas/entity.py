"""Entity and context value objects used by authorization requests."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMPTY_JSON_OBJECT = "{}"


class EntityData(BaseModel):
    """A Cedar-style entity: namespaced type, id unique within the type, attribute blob.

    Attributes stay as JSON text at this layer. Passing ``None`` or omitting
    them yields ``"{}"`` and a mapping is serialized for the caller.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    attributes: str = Field(default=EMPTY_JSON_OBJECT)

    @field_validator("attributes", mode="before")
    @classmethod
    def normalize_attributes(cls, value: Any) -> Any:
        if value is None:
            return EMPTY_JSON_OBJECT
        if isinstance(value, Mapping):
            return json.dumps(dict(value))
        return value

    @property
    def uid(self) -> str:
        return f'{self.type}::"{self.id}"'

    def attributes_dict(self) -> Dict[str, Any]:
        parsed = json.loads(self.attributes)
        if not isinstance(parsed, dict):
            raise ValueError(f"attributes of {self.uid} must be a JSON object")
        return parsed


class Context(BaseModel):
    """ABAC context for a single decision, kept as opaque JSON text."""

    model_config = ConfigDict(frozen=True)

    data: str

    def __init__(self, data: str, **kwargs: Any) -> None:
        super().__init__(data=data, **kwargs)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "Context":
        return cls(json.dumps(dict(values)))

    @classmethod
    def empty(cls) -> "Context":
        return cls(EMPTY_JSON_OBJECT)
