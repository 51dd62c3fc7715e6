"""Lifecycle of an engine handle and the authorization entry points."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from cedarling_bridge.core.errors import AuthorizationError, ConfigurationError
from cedarling_bridge.schemas.bootstrap import BootstrapConfiguration
from cedarling_bridge.schemas.request import AuthorizeRequest, AuthorizeRequestUnsigned
from cedarling_bridge.schemas.result import AuthorizeResult
from cedarling_bridge.services.engine import (
    EngineAuthorizationError,
    EngineError,
    EngineHandle,
    PolicyEngine,
    get_policy_engine,
)
from cedarling_bridge.services.marshalling import (
    bootstrap_payload,
    request_payload,
    result_from_payload,
    unsigned_request_payload,
)

_UNSET = object()


class Cedarling:
    """Owns one engine handle for its whole life.

    Constructing an instance opens the handle; :meth:`close` releases it
    exactly once. Calls on one instance are serialized. Instances cannot be
    copied or pickled, since a copy would release the same handle twice.
    """

    def __init__(self, config: BootstrapConfiguration, engine: Optional[PolicyEngine] = None) -> None:
        self._engine = engine or get_policy_engine()
        self._logger = logging.getLogger("cedarling_bridge.services.bridge")
        self._lock = threading.Lock()
        self._handle: Any = _UNSET

        payload = bootstrap_payload(config)
        try:
            handle = self._engine.create(payload)
        except EngineError as exc:
            self._logger.warning(
                "cedarling_open_failed",
                extra={"application_name": payload["application_name"], "error": str(exc)},
            )
            raise ConfigurationError(f"Could not create cedarling instance. {exc}") from exc

        self._handle = handle
        self._application_name: str = payload["application_name"]
        self._logger.info("cedarling_opened", extra={"application_name": self._application_name})

    @property
    def closed(self) -> bool:
        return self._handle is _UNSET

    def authorize(self, request: AuthorizeRequest) -> AuthorizeResult:
        """Evaluate a request whose principals come from signed tokens."""

        payload = request_payload(request)
        with self._lock:
            handle = self._require_handle()
            raw = self._call(self._engine.authorize, handle, payload, "authorization")
        result = result_from_payload(raw)
        self._log_result("authorization_completed", payload, result)
        return result

    def authorize_unsigned(self, request: AuthorizeRequestUnsigned) -> AuthorizeResult:
        """Evaluate a request whose principals are given explicitly."""

        payload = unsigned_request_payload(request)
        with self._lock:
            handle = self._require_handle()
            raw = self._call(self._engine.authorize_unsigned, handle, payload, "unsigned authorization")
        result = result_from_payload(raw)
        self._log_result("unsigned_authorization_completed", payload, result)
        return result

    def pop_logs(self) -> List[Dict[str, Any]]:
        """Drain decision log entries kept by the engine in memory."""

        with self._lock:
            handle = self._require_handle()
            return self._engine.pop_logs(handle)

    def close(self) -> None:
        with self._lock:
            if self._handle is _UNSET:
                return
            handle, self._handle = self._handle, _UNSET
            try:
                self._engine.release(handle)
            finally:
                self._logger.info("cedarling_closed", extra={"application_name": self._application_name})

    def __enter__(self) -> "Cedarling":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __copy__(self) -> "Cedarling":
        raise TypeError("Cedarling instances own an engine handle and cannot be copied")

    def __deepcopy__(self, memo: Dict[int, Any]) -> "Cedarling":
        raise TypeError("Cedarling instances own an engine handle and cannot be copied")

    def __reduce__(self) -> Any:
        raise TypeError("Cedarling instances own an engine handle and cannot be pickled")

    def _require_handle(self) -> EngineHandle:
        if self._handle is _UNSET:
            raise AuthorizationError("Cedarling instance is closed")
        return self._handle

    def _call(self, operation, handle: EngineHandle, payload: Dict[str, Any], label: str) -> Dict[str, Any]:
        try:
            return operation(handle, payload)
        except EngineAuthorizationError as exc:
            self._logger.warning(
                "authorization_failed",
                extra={"action": payload.get("action"), "error": str(exc), "error_type": exc.error_type},
            )
            raise AuthorizationError(
                f"Cedarling {label} failed. {exc}",
                error_type=exc.error_type,
            ) from exc
        except EngineError as exc:
            self._logger.warning("authorization_failed", extra={"action": payload.get("action"), "error": str(exc)})
            raise AuthorizationError(f"Cedarling {label} failed. {exc}") from exc

    def _log_result(self, event: str, payload: Dict[str, Any], result: AuthorizeResult) -> None:
        self._logger.debug(
            event,
            extra={
                "request_id": result.request_id,
                "action": payload.get("action"),
                "decision": result.decision,
            },
        )


@contextmanager
def open_cedarling(
    config: BootstrapConfiguration,
    engine: Optional[PolicyEngine] = None,
) -> Iterator[Cedarling]:
    """Provide a Cedarling instance that is released on every exit path."""

    cedarling = Cedarling(config, engine=engine)
    try:
        yield cedarling
    finally:
        cedarling.close()
