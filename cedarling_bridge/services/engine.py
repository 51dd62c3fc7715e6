"""Contract between the bridge and a policy-decision engine."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from cedarling_bridge.schemas.primitives import AuthorizeErrorType

EngineHandle = Any
"""Opaque value an engine returns from ``create``; only that engine can interpret it."""


class EngineError(Exception):
    """Base class for failures reported by an engine."""


class EngineConfigurationError(EngineError):
    """Raised by ``create`` when the engine cannot start from the given bootstrap payload."""


class EngineAuthorizationError(EngineError):
    """Raised when an authorization call cannot be completed."""

    def __init__(self, message: str, *, error_type: Optional[AuthorizeErrorType] = None) -> None:
        super().__init__(message)
        self.error_type = error_type


class PolicyEngine(Protocol):
    """Boundary operations; every payload is a JSON-compatible mapping."""

    def create(self, bootstrap: Dict[str, Any]) -> EngineHandle:
        ...

    def authorize(self, handle: EngineHandle, request: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def authorize_unsigned(self, handle: EngineHandle, request: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def pop_logs(self, handle: EngineHandle) -> List[Dict[str, Any]]:
        ...

    def release(self, handle: EngineHandle) -> None:
        ...


_shared_engine: Optional[PolicyEngine] = None


def get_policy_engine() -> PolicyEngine:
    """Return the process-wide engine, creating the local engine on first use."""

    global _shared_engine
    if _shared_engine is not None:
        return _shared_engine

    from cedarling_bridge.services.local_engine import LocalPolicyEngine

    _shared_engine = LocalPolicyEngine()
    return _shared_engine


def set_policy_engine(engine: Optional[PolicyEngine]) -> None:
    """Override the process-wide engine; ``None`` restores the default."""

    global _shared_engine
    _shared_engine = engine
