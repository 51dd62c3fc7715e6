"""In-process policy engine backing the bridge when no native engine is installed."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from cedarling_bridge.schemas.primitives import AuthorizeErrorType, Decision
from cedarling_bridge.services.decision_log import DecisionLogger, build_decision_logger
from cedarling_bridge.services.engine import EngineAuthorizationError, EngineConfigurationError, EngineError
from cedarling_bridge.services.evaluator import Entity, PolicyEvaluator, roles_from_attribute
from cedarling_bridge.services.json_logic import JsonLogic, JsonLogicError
from cedarling_bridge.services.policy_store import PolicyStoreDocument, PolicyStoreError, load_policy_store
from cedarling_bridge.services.tokens import TokenProcessor, TokenSettings

USER_ROLE_CLAIM = "role"


@dataclass
class LocalEngineHandle:
    """Everything a created engine instance needs to answer requests."""

    application_name: str
    document: PolicyStoreDocument
    evaluator: PolicyEvaluator
    tokens: TokenProcessor
    decision_log: DecisionLogger
    authorization: Dict[str, Any]
    entity_builder: Dict[str, Any]
    released: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def entity_names(self) -> Dict[str, str]:
        return self.entity_builder["entity_names"]


class LocalPolicyEngine:
    """Evaluates structured policy stores locally."""

    def __init__(self) -> None:
        self._logger = logging.getLogger("cedarling_bridge.services.local_engine")
        self._logic = JsonLogic()

    def create(self, bootstrap: Dict[str, Any]) -> LocalEngineHandle:
        application_name = bootstrap.get("application_name") or ""
        try:
            authorization = dict(bootstrap["authorization_config"])
            entity_builder = dict(bootstrap["entity_builder_config"])
            log_config = bootstrap["log_config"]
            policy_store_config = bootstrap["policy_store_config"]
            jwt_config = bootstrap["jwt_config"]
        except (KeyError, TypeError) as exc:
            raise EngineConfigurationError(f"bootstrap payload is missing {exc}") from exc

        try:
            document = load_policy_store(policy_store_config)
        except PolicyStoreError as exc:
            raise EngineConfigurationError(f"could not load policy store: {exc}") from exc

        try:
            token_settings = TokenSettings.from_payload(jwt_config, authorization["id_token_trust_mode"])
        except ValueError as exc:
            raise EngineConfigurationError(f"invalid JWT configuration: {exc}") from exc

        if not isinstance(authorization.get("principal_bool_operator"), dict):
            raise EngineConfigurationError("principal_bool_operator must be a JSON object")

        # Created last; the stdout sink installs a handler that release() removes.
        try:
            decision_log = build_decision_logger(application_name, log_config)
        except ValueError as exc:
            raise EngineConfigurationError(str(exc)) from exc

        if bootstrap.get("lock_config") is not None:
            self._logger.warning(
                "lock_config_ignored",
                extra={"application_name": application_name, "config_uri": bootstrap["lock_config"].get("config_uri")},
            )

        handle = LocalEngineHandle(
            application_name=application_name,
            document=document,
            evaluator=PolicyEvaluator(document.store),
            tokens=TokenProcessor(token_settings),
            decision_log=decision_log,
            authorization=authorization,
            entity_builder=entity_builder,
        )
        self._logger.debug(
            "local_engine_created",
            extra={"application_name": application_name, "store_id": document.store_id},
        )
        return handle

    def authorize(self, handle: LocalEngineHandle, request: Dict[str, Any]) -> Dict[str, Any]:
        with self._active(handle):
            claims = handle.tokens.decode_all(request.get("tokens") or {})
            action = request["action"]
            resource = _entity(request["resource"])
            context = request.get("context") or {}
            names = handle.entity_names

            workload_response: Optional[Dict[str, Any]] = None
            person_response: Optional[Dict[str, Any]] = None
            principals: Dict[str, Dict[str, Any]] = {}
            by_type: Dict[str, List[str]] = {}
            entities: Dict[str, Entity] = {}

            if handle.authorization.get("use_workload_principal") and handle.entity_builder.get("build_workload"):
                workload = handle.tokens.workload_entity(claims, names["workload"])
                workload_response = handle.evaluator.evaluate(workload, action, resource, context)
                principals[workload.uid] = workload_response
                by_type.setdefault(workload.type, []).append(workload_response["decision"])
                entities["workload"] = workload

            if handle.authorization.get("use_user_principal") and handle.entity_builder.get("build_user"):
                user = handle.tokens.user_entity(claims, names["user"], USER_ROLE_CLAIM)
                person_response = handle.evaluator.evaluate(user, action, resource, context)
                principals[user.uid] = person_response
                by_type.setdefault(user.type, []).append(person_response["decision"])
                entities["user"] = user

            if not principals:
                raise EngineAuthorizationError(
                    "no principal is enabled for signed authorization",
                    error_type=AuthorizeErrorType.ENTITIES,
                )

            decision = self._combine(handle, by_type)
            result = {
                "workload": workload_response,
                "person": person_response,
                "principals": principals,
                "decision": decision,
                "request_id": str(uuid.uuid4()),
            }
            handle.decision_log.record(
                self._log_entry(handle, result, action, resource, claims=claims, entities=entities)
            )
            return result

    def authorize_unsigned(self, handle: LocalEngineHandle, request: Dict[str, Any]) -> Dict[str, Any]:
        with self._active(handle):
            action = request["action"]
            resource = _entity(request["resource"])
            context = request.get("context") or {}
            role_attribute = handle.entity_builder.get("unsigned_role_id_src") or USER_ROLE_CLAIM

            principals: Dict[str, Dict[str, Any]] = {}
            by_type: Dict[str, List[str]] = {}
            for payload in request.get("principals") or []:
                principal = _entity(payload, role_attribute)
                response = handle.evaluator.evaluate(principal, action, resource, context)
                principals[principal.uid] = response
                by_type.setdefault(principal.type, []).append(response["decision"])

            decision = self._combine(handle, by_type) if principals else False
            result = {
                "workload": None,
                "person": None,
                "principals": principals,
                "decision": decision,
                "request_id": str(uuid.uuid4()),
            }
            handle.decision_log.record(self._log_entry(handle, result, action, resource))
            return result

    def pop_logs(self, handle: LocalEngineHandle) -> List[Dict[str, Any]]:
        with self._active(handle):
            return handle.decision_log.pop()

    def release(self, handle: LocalEngineHandle) -> None:
        with handle.lock:
            if handle.released:
                return
            handle.released = True
            close = getattr(handle.decision_log, "close", None)
            if close is not None:
                close()
        self._logger.debug("local_engine_released", extra={"application_name": handle.application_name})

    def _active(self, handle: LocalEngineHandle) -> threading.Lock:
        if not isinstance(handle, LocalEngineHandle):
            raise EngineError("handle was not created by the local engine")
        if handle.released:
            raise EngineError("engine handle has been released")
        return handle.lock

    def _combine(self, handle: LocalEngineHandle, by_type: Mapping[str, List[str]]) -> bool:
        """Fold per-principal decisions into the overall decision.

        A type counts as ``ALLOW`` only when every principal of that type was
        allowed. An empty operator requires every type to allow.
        """

        outcomes = {
            type_name: "ALLOW" if all(d == Decision.ALLOW.value for d in decisions) else "DENY"
            for type_name, decisions in by_type.items()
        }
        rule = handle.authorization["principal_bool_operator"]
        if not rule:
            return bool(outcomes) and all(value == "ALLOW" for value in outcomes.values())
        try:
            return bool(self._logic.apply(rule, outcomes))
        except JsonLogicError as exc:
            raise EngineAuthorizationError(
                f"principal_bool_operator could not be evaluated: {exc}",
                error_type=AuthorizeErrorType.POLICY_EVALUATION,
            ) from exc

    def _log_entry(
        self,
        handle: LocalEngineHandle,
        result: Mapping[str, Any],
        action: str,
        resource: Entity,
        *,
        claims: Optional[Mapping[str, Dict[str, Any]]] = None,
        entities: Optional[Mapping[str, Entity]] = None,
    ) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "request_id": result["request_id"],
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "application_id": handle.application_name,
            "policystore_id": handle.document.store_id,
            "action": action,
            "resource": resource.uid,
            "decision": "ALLOW" if result["decision"] else "DENY",
            "principals": {key: response["decision"] for key, response in result["principals"].items()},
        }
        if claims is None or entities is None:
            return entry

        jwt_id_claim = handle.authorization.get("decision_log_default_jwt_id")
        token_ids = {name: values.get(jwt_id_claim) for name, values in claims.items() if jwt_id_claim in values}
        if token_ids:
            entry["tokens"] = token_ids
        if "user" in entities:
            entry["user"] = _pick(entities["user"].attributes, handle.authorization.get("decision_log_user_claims"))
        if "workload" in entities:
            entry["workload"] = _pick(
                entities["workload"].attributes, handle.authorization.get("decision_log_workload_claims")
            )
        return entry


def _entity(payload: Mapping[str, Any], role_attribute: Optional[str] = None) -> Entity:
    attributes = dict(payload.get("attributes") or {})
    roles = roles_from_attribute(attributes, role_attribute) if role_attribute else []
    return Entity(type=payload["type"], id=payload["id"], attributes=attributes, roles=tuple(roles))


def _pick(attributes: Mapping[str, Any], claims: Optional[List[str]]) -> Dict[str, Any]:
    return {claim: attributes[claim] for claim in claims or [] if claim in attributes}
