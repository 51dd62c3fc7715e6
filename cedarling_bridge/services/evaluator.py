"""Policy evaluation for a single principal."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cedarling_bridge.schemas.primitives import Decision
from cedarling_bridge.services.json_logic import JsonLogic, JsonLogicError
from cedarling_bridge.services.policy_store import EntityMatcher, PolicyDefinition, PolicyStore


@dataclass(frozen=True)
class Entity:
    type: str
    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    roles: Sequence[str] = ()

    @property
    def uid(self) -> str:
        return f'{self.type}::"{self.id}"'


def roles_from_attribute(attributes: Dict[str, Any], attribute: str) -> List[str]:
    """Collect role ids held in ``attributes[attribute]`` (string or list of strings)."""

    value = attributes.get(attribute)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


class PolicyEvaluator:
    """Decides per principal: allow when a permit applies and no forbid applies.

    Policies whose conditions fail to evaluate are skipped and reported as
    errors in the diagnostics.
    """

    def __init__(self, store: PolicyStore) -> None:
        self._store = store
        self._logic = JsonLogic(strict=True)

    def evaluate(
        self,
        principal: Entity,
        action: str,
        resource: Entity,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        data = {
            "principal": principal.attributes,
            "resource": resource.attributes,
            "context": context,
            "action": action,
        }

        permits: List[str] = []
        forbids: List[str] = []
        errors: List[Dict[str, str]] = []

        for policy_id, policy in self._store.policies.items():
            if not self._in_scope(policy, principal, action, resource):
                continue
            try:
                applies = self._conditions_hold(policy, data)
            except JsonLogicError as exc:
                errors.append({"id": policy_id, "error": f"while evaluating policy `{policy_id}`: {exc}"})
                continue
            if not applies:
                continue
            if policy.effect == "forbid":
                forbids.append(policy_id)
            else:
                permits.append(policy_id)

        if forbids:
            decision, reason = Decision.DENY, forbids
        elif permits:
            decision, reason = Decision.ALLOW, permits
        else:
            decision, reason = Decision.DENY, []

        return {
            "decision": decision.value,
            "diagnostics": {"reason": reason, "errors": errors},
        }

    def _in_scope(self, policy: PolicyDefinition, principal: Entity, action: str, resource: Entity) -> bool:
        actions = policy.actions
        if actions is not None and action not in actions:
            return False
        return _matches(policy.principal, principal) and _matches(policy.resource, resource)

    def _conditions_hold(self, policy: PolicyDefinition, data: Dict[str, Any]) -> bool:
        if policy.when is not None and not bool(self._logic.apply(policy.when, data)):
            return False
        if policy.unless is not None and bool(self._logic.apply(policy.unless, data)):
            return False
        return True


def _matches(matcher: Optional[EntityMatcher], entity: Entity) -> bool:
    if matcher is None:
        return True
    if matcher.type is not None and matcher.type != entity.type:
        return False
    if matcher.id is not None and matcher.id != entity.id:
        return False
    if matcher.role is not None and matcher.role not in entity.roles:
        return False
    return True
