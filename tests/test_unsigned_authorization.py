from __future__ import annotations

import pytest

from cedarling_bridge.core.errors import AuthorizationError
from cedarling_bridge.schemas.bootstrap import PolicyStoreConfiguration
from cedarling_bridge.schemas.entity import Context, EntityData
from cedarling_bridge.schemas.primitives import Decision
from cedarling_bridge.schemas.request import AuthorizeRequestUnsigned
from cedarling_bridge.services.bridge import Cedarling, open_cedarling

from conftest import (
    JANS_USER_ALLOW_RULE,
    POLICY_STORE_OK_YAML_FILE,
    UPDATE_ACTION,
    base_authz_configuration,
    base_builder,
)


@pytest.fixture()
def cedarling():
    authz = base_authz_configuration(JANS_USER_ALLOW_RULE)
    authz.decision_log_user_claims = ["client_id", "org_id"]
    authz.decision_log_workload_claims = ["org_id"]
    config = (
        base_builder(PolicyStoreConfiguration.from_yaml_file(POLICY_STORE_OK_YAML_FILE))
        .authorization_config(authz)
        .build()
    )
    with open_cedarling(config) as instance:
        yield instance


def user(role: str, **attributes) -> EntityData:
    values = {
        "sub": "some_sub",
        "email": "email@email.com",
        "username": "some_username",
        "country": "US",
        "role": role,
    }
    values.update(attributes)
    return EntityData(id="some_user", type="Jans::User", attributes=values)


def issue(**attributes) -> EntityData:
    values = {"org_id": "some_long_id", "country": "US"}
    values.update(attributes)
    return EntityData(id="random_id", type="Jans::Issue", attributes=values)


def unsigned_request(*principals: EntityData, resource: EntityData | None = None, action: str = UPDATE_ACTION):
    builder = AuthorizeRequestUnsigned.builder().action(action).resource(resource or issue()).context(Context.empty())
    for principal in principals:
        builder.principal(principal)
    return builder.build()


def test_authz_succeeds_when_action_is_permitted(cedarling: Cedarling) -> None:
    result = cedarling.authorize_unsigned(unsigned_request(user("SuperUser")))

    assert result.is_allowed()
    response = result.get_principal('Jans::User::"some_user"')
    assert response is not None
    assert response.decision is Decision.ALLOW
    assert response.diagnostics.policy_ids() == ["super-user-can-update-issues"]
    assert result.get_workload() is None
    assert result.get_person() is None
    assert result.request_id


def test_authz_fails_when_action_is_not_permitted(cedarling: Cedarling) -> None:
    result = cedarling.authorize_unsigned(unsigned_request(user("HyperUser")))

    assert not result.is_allowed()
    response = result.get_principal('Jans::User::"some_user"')
    assert response is not None
    assert response.decision is Decision.DENY
    assert response.diagnostics.policy_ids() == []


def test_forbid_overrides_permit(cedarling: Cedarling) -> None:
    result = cedarling.authorize_unsigned(unsigned_request(user("SuperUser"), resource=issue(status="archived")))

    assert not result.is_allowed()
    response = result.get_principal('Jans::User::"some_user"')
    assert response.diagnostics.policy_ids() == ["nobody-updates-archived-issues"]


def test_condition_on_missing_attribute_is_reported(cedarling: Cedarling) -> None:
    principal = EntityData(id="some_user", type="Jans::User", attributes={"role": "SuperUser"})

    result = cedarling.authorize_unsigned(unsigned_request(principal))

    assert not result.is_allowed()
    errors = result.get_principal('Jans::User::"some_user"').diagnostics.errors
    assert [error.policy_id for error in errors] == ["super-user-can-update-issues"]
    assert "principal.country" in errors[0].description


def test_unknown_action_is_denied(cedarling: Cedarling) -> None:
    result = cedarling.authorize_unsigned(unsigned_request(user("SuperUser"), action='Jans::Action::"Delete"'))

    assert not result.is_allowed()


def test_every_user_principal_must_be_allowed(cedarling: Cedarling) -> None:
    other = EntityData(id="other_user", type="Jans::User", attributes={"country": "US", "role": "HyperUser"})

    result = cedarling.authorize_unsigned(unsigned_request(user("SuperUser"), other))

    assert result.get_principal('Jans::User::"some_user"').is_allowed()
    assert not result.get_principal('Jans::User::"other_user"').is_allowed()
    assert not result.is_allowed()


def test_request_without_principals_is_denied(cedarling: Cedarling) -> None:
    result = cedarling.authorize_unsigned(unsigned_request())

    assert not result.is_allowed()
    assert result.principals == {}


def test_request_errors_leave_the_instance_usable(cedarling: Cedarling) -> None:
    incomplete = AuthorizeRequestUnsigned.builder().principal(user("SuperUser")).build()

    with pytest.raises(AuthorizationError):
        cedarling.authorize_unsigned(incomplete)

    assert cedarling.authorize_unsigned(unsigned_request(user("SuperUser"))).is_allowed()


def test_roles_come_from_configured_attribute() -> None:
    config = base_builder().authorization_config(base_authz_configuration(JANS_USER_ALLOW_RULE)).build()
    config.entity_builder_config.unsigned_role_id_src = "groups"
    principal = EntityData(
        id="some_user",
        type="Jans::User",
        attributes={"country": "US", "role": "HyperUser", "groups": ["Reader", "SuperUser"]},
    )

    with open_cedarling(config) as instance:
        assert instance.authorize_unsigned(unsigned_request(principal)).is_allowed()
        assert not instance.authorize_unsigned(unsigned_request(user("SuperUser"))).is_allowed()


ADMIN_LEVEL_STORE = """
policy_stores:
  admin-levels:
    policies:
      admins-by-level:
        effect: permit
        principal:
          type: 'Jans::User'
        action: 'Jans::Action::"Update"'
        when:
          in:
            - admin
            - var: principal.level
"""


def test_condition_type_mismatch_is_reported_as_policy_error() -> None:
    config = (
        base_builder(PolicyStoreConfiguration.from_yaml_string(ADMIN_LEVEL_STORE))
        .authorization_config(base_authz_configuration(JANS_USER_ALLOW_RULE))
        .build()
    )
    principal = EntityData(id="some_user", type="Jans::User", attributes={"level": 5})

    with open_cedarling(config) as instance:
        result = instance.authorize_unsigned(unsigned_request(principal))

    assert not result.is_allowed()
    response = result.get_principal('Jans::User::"some_user"')
    assert response.decision is Decision.DENY
    assert [error.policy_id for error in response.diagnostics.errors] == ["admins-by-level"]
