from __future__ import annotations

import pytest
from pydantic import ValidationError

from cedarling_bridge.schemas.entity import Context, EntityData
from cedarling_bridge.schemas.primitives import Decision, JsonRule, PolicyId
from cedarling_bridge.schemas.result import AuthorizeResult


def test_entity_attributes_default_to_empty_object() -> None:
    assert EntityData(id="random_id", type="Jans::Issue").attributes == "{}"
    assert EntityData(id="random_id", type="Jans::Issue", attributes=None).attributes == "{}"


def test_entity_serializes_mapping_attributes() -> None:
    entity = EntityData(id="some_user", type="Jans::User", attributes={"role": "SuperUser"})

    assert entity.attributes_dict() == {"role": "SuperUser"}
    assert entity.uid == 'Jans::User::"some_user"'


@pytest.mark.parametrize("field", ["id", "type"])
def test_entity_requires_non_empty_identity(field: str) -> None:
    values = {"id": "x", "type": "Jans::User", field: ""}

    with pytest.raises(ValidationError):
        EntityData(**values)


def test_entity_rejects_non_object_attributes_on_read() -> None:
    entity = EntityData(id="x", type="Jans::User", attributes="[1]")

    with pytest.raises(ValueError):
        entity.attributes_dict()


def test_context_helpers() -> None:
    assert Context.empty().data == "{}"
    assert Context.from_dict({"a": 1}).data == '{"a": 1}'
    assert Context("{}") == Context.empty()


def test_json_rule_accepts_text_and_mappings() -> None:
    rule = JsonRule({"and": [True]})

    assert rule.as_dict() == {"and": [True]}
    assert JsonRule().as_dict() == {}

    rule.value = '{"or": [false]}'
    assert rule.as_dict() == {"or": [False]}


def test_policy_id_accepts_bare_strings() -> None:
    assert PolicyId.model_validate("policy-1") == PolicyId(value="policy-1")
    assert str(PolicyId(value="policy-1")) == "policy-1"


def test_result_deduplicates_reason_and_keeps_errors() -> None:
    result = AuthorizeResult.from_payload(
        {
            "workload": None,
            "person": {
                "decision": "Allow",
                "diagnostics": {
                    "reason": ["policy-1", "policy-1", "policy-2"],
                    "errors": [{"id": "policy-3", "error": "attribute missing"}],
                },
            },
            "principals": {},
            "decision": True,
            "request_id": "req-1",
        }
    )

    person = result.get_person()
    assert person is not None
    assert person.decision is Decision.ALLOW
    assert person.is_allowed()
    assert person.diagnostics.policy_ids() == ["policy-1", "policy-2"]
    assert person.diagnostics.errors[0].policy_id == "policy-3"
    assert person.diagnostics.errors[0].description == "attribute missing"
    assert result.get_workload() is None
    assert result.is_allowed()
    assert result.request_id == "req-1"


def test_result_principal_lookup() -> None:
    result = AuthorizeResult.from_payload(
        {
            "principals": {'Jans::User::"u1"': {"decision": "Deny"}},
            "decision": False,
            "request_id": "req-2",
        }
    )

    principal = result.get_principal('Jans::User::"u1"')
    assert principal is not None
    assert principal.decision is Decision.DENY
    assert principal.diagnostics.policy_ids() == []
    assert result.get_principal('Jans::User::"u2"') is None
    assert not result.is_allowed()


def test_result_principals_are_read_only() -> None:
    result = AuthorizeResult.from_payload({"principals": {'Jans::User::"u1"': {"decision": "Allow"}}, "decision": True})

    with pytest.raises(TypeError):
        result.principals['Jans::User::"u2"'] = result.principals['Jans::User::"u1"']  # type: ignore[index]
    with pytest.raises(TypeError):
        AuthorizeResult().principals["x"] = None  # type: ignore[index]

    assert list(result.model_dump()["principals"]) == ['Jans::User::"u1"']
