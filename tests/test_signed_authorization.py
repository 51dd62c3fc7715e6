from __future__ import annotations

import pytest

from cedarling_bridge.core.errors import AuthorizationError
from cedarling_bridge.schemas.bootstrap import JwtConfiguration
from cedarling_bridge.schemas.entity import Context, EntityData
from cedarling_bridge.schemas.primitives import AuthorizeErrorType, Decision, IdTokenTrustMode, JwtAlgorithm
from cedarling_bridge.schemas.request import AuthorizeRequest
from cedarling_bridge.services.bridge import open_cedarling

from conftest import (
    JANS_USER_ALLOW_RULE,
    UPDATE_ACTION,
    base_authz_configuration,
    base_builder,
    hmac_jwks,
    mint_token,
)

CLIENT_ID = "5b4487c4-8db1-409d-a653-f907b8094039"


def access_claims(**overrides) -> dict:
    claims = {
        "sub": "boG8dfc5MKTn37o7gsdCeyqL8LpWQtgoO41m1KZwdq0",
        "iss": "https://admin-ui-test.gluu.org",
        "client_id": CLIENT_ID,
        "aud": CLIENT_ID,
        "jti": "uZUh1hDUQo6PFkBPnwpGzg",
        "org_id": "some_long_id",
    }
    claims.update(overrides)
    return claims


def id_claims(**overrides) -> dict:
    claims = {
        "sub": "boG8dfc5MKTn37o7gsdCeyqL8LpWQtgoO41m1KZwdq0",
        "iss": "https://admin-ui-test.gluu.org",
        "aud": CLIENT_ID,
        "jti": "ijLZO1ooRyWrgIn7cIdNyA",
        "role": "SuperUser",
    }
    claims.update(overrides)
    return claims


def userinfo_claims(**overrides) -> dict:
    claims = {
        "sub": "boG8dfc5MKTn37o7gsdCeyqL8LpWQtgoO41m1KZwdq0",
        "iss": "https://admin-ui-test.gluu.org",
        "aud": CLIENT_ID,
        "jti": "OIn3g1SPSDSKAYDzENVoug",
        "country": "US",
        "email": "user@example.com",
        "username": "admin",
    }
    claims.update(overrides)
    return claims


def signed_request(access=None, id_token=None, userinfo=None, secret=None) -> AuthorizeRequest:
    mint = (lambda claims: mint_token(claims, secret)) if secret is not None else mint_token
    return (
        AuthorizeRequest.builder()
        .access_token(mint(access or access_claims()))
        .id_token(mint(id_token or id_claims()))
        .userinfo_token(mint(userinfo or userinfo_claims()))
        .action(UPDATE_ACTION)
        .resource(EntityData(id="random_id", type="Jans::Issue", attributes={"org_id": "some_long_id", "country": "US"}))
        .context(Context.empty())
        .build()
    )


def test_authz_succeeds_when_action_is_permitted(bootstrap_config) -> None:
    with open_cedarling(bootstrap_config) as cedarling:
        result = cedarling.authorize(signed_request())

    assert result.is_allowed()
    assert result.get_workload().decision is Decision.ALLOW
    assert result.get_person().decision is Decision.ALLOW
    assert result.get_person().diagnostics.policy_ids() == ["super-user-can-update-issues"]
    assert result.get_principal(f'Jans::Workload::"{CLIENT_ID}"') is not None


def test_authz_fails_when_action_is_not_permitted(bootstrap_config) -> None:
    with open_cedarling(bootstrap_config) as cedarling:
        result = cedarling.authorize(signed_request(id_token=id_claims(role="HyperUser")))

    assert not result.is_allowed()
    assert result.get_person().decision is Decision.DENY
    assert result.get_workload().decision is Decision.ALLOW


def test_user_rule_ignores_workload_outcome(bootstrap_builder) -> None:
    config = bootstrap_builder.authorization_config(base_authz_configuration(JANS_USER_ALLOW_RULE)).build()

    with open_cedarling(config) as cedarling:
        result = cedarling.authorize(signed_request(access=access_claims(org_id="other_org")))

    assert result.get_workload().decision is Decision.DENY
    assert result.is_allowed()


def test_empty_rule_requires_every_principal(bootstrap_builder) -> None:
    config = bootstrap_builder.authorization_config(base_authz_configuration({})).build()

    with open_cedarling(config) as cedarling:
        assert cedarling.authorize(signed_request()).is_allowed()
        assert not cedarling.authorize(signed_request(access=access_claims(org_id="other_org"))).is_allowed()


def test_disabled_principals_are_not_evaluated(bootstrap_builder) -> None:
    authz = base_authz_configuration(JANS_USER_ALLOW_RULE)
    authz.use_workload_principal = False
    config = bootstrap_builder.authorization_config(authz).build()

    with open_cedarling(config) as cedarling:
        result = cedarling.authorize(signed_request())

    assert result.get_workload() is None
    assert result.is_allowed()


def test_malformed_token_is_a_token_processing_error(bootstrap_config) -> None:
    request = signed_request().model_copy(update={"tokens": {"access_token": "x", "id_token": "y", "userinfo_token": "z"}})

    with open_cedarling(bootstrap_config) as cedarling:
        with pytest.raises(AuthorizationError) as excinfo:
            cedarling.authorize(request)

    assert excinfo.value.error_type is AuthorizeErrorType.PROCESS_TOKENS


class TestStrictTrustMode:
    @pytest.fixture()
    def config(self, bootstrap_builder):
        authz = base_authz_configuration()
        authz.id_token_trust_mode = IdTokenTrustMode.STRICT
        return bootstrap_builder.authorization_config(authz).build()

    def test_consistent_tokens_pass(self, config) -> None:
        with open_cedarling(config) as cedarling:
            assert cedarling.authorize(signed_request()).is_allowed()

    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"id_token": id_claims(aud="another-client")},
            {"userinfo": userinfo_claims(sub="someone-else")},
            {"userinfo": userinfo_claims(aud="another-client")},
        ],
    )
    def test_inconsistent_tokens_are_rejected(self, config, request_kwargs) -> None:
        with open_cedarling(config) as cedarling:
            with pytest.raises(AuthorizationError) as excinfo:
                cedarling.authorize(signed_request(**request_kwargs))

        assert excinfo.value.error_type is AuthorizeErrorType.PROCESS_TOKENS


class TestSignatureValidation:
    @pytest.fixture()
    def config(self, bootstrap_builder):
        jwt_config = JwtConfiguration(jwks=hmac_jwks(), jwt_sig_validation=True, jwt_status_validation=False)
        jwt_config.add_signature_algorithm(JwtAlgorithm.HS256)
        return bootstrap_builder.jwt_config(jwt_config).build()

    def test_tokens_signed_with_known_key_are_accepted(self, config) -> None:
        with open_cedarling(config) as cedarling:
            assert cedarling.authorize(signed_request()).is_allowed()

    def test_tokens_signed_with_unknown_key_are_rejected(self, config) -> None:
        with open_cedarling(config) as cedarling:
            with pytest.raises(AuthorizationError) as excinfo:
                cedarling.authorize(signed_request(secret=b"another-secret-that-is-also-long-enough-0123456789"))

        assert excinfo.value.error_type is AuthorizeErrorType.PROCESS_TOKENS

    def test_disallowed_algorithm_is_rejected(self, bootstrap_builder) -> None:
        jwt_config = JwtConfiguration(jwks=hmac_jwks(), jwt_sig_validation=True, jwt_status_validation=False)
        jwt_config.add_signature_algorithm(JwtAlgorithm.RS256)
        config = bootstrap_builder.jwt_config(jwt_config).build()

        with open_cedarling(config) as cedarling:
            with pytest.raises(AuthorizationError):
                cedarling.authorize(signed_request())
