import base64
import json
import os
import sys
from pathlib import Path

import jwt
import pytest

os.environ.setdefault("CEDARLING_LOG_JSON", "true")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from cedarling_bridge.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from cedarling_bridge.schemas.bootstrap import (  # noqa: E402
    AuthorizationConfiguration,
    BootstrapConfiguration,
    BootstrapConfigurationBuilder,
    EntityBuilderConfiguration,
    JwtConfiguration,
    LogConfiguration,
    PolicyStoreConfiguration,
)
from cedarling_bridge.schemas.primitives import IdTokenTrustMode, JsonRule  # noqa: E402
from cedarling_bridge.services.engine import set_policy_engine  # noqa: E402

POLICY_STORES_DIR = Path(__file__).resolve().parent / "policy-stores"
POLICY_STORE_OK_YAML_FILE = POLICY_STORES_DIR / "policy-store_ok.yaml"
POLICY_STORE_OK_JSON_FILE = POLICY_STORES_DIR / "policy-store_ok.json"

APPLICATION_NAME = "test-application"
UPDATE_ACTION = 'Jans::Action::"Update"'

JANS_WORKLOAD_ALLOW_RULE = {"===": [{"var": "Jans::Workload"}, "ALLOW"]}
JANS_USER_ALLOW_RULE = {"===": [{"var": "Jans::User"}, "ALLOW"]}
DEFAULT_JSON_RULE = {"and": [JANS_USER_ALLOW_RULE, JANS_WORKLOAD_ALLOW_RULE]}

HMAC_SECRET = b"cedarling-bridge-test-secret-with-enough-entropy-0123456789"
HMAC_KID = "test-hmac-key"


@pytest.fixture(autouse=True)
def reset_state():
    get_settings.cache_clear()
    set_policy_engine(None)
    yield
    set_policy_engine(None)
    get_settings.cache_clear()


def base_authz_configuration(rule=None) -> AuthorizationConfiguration:
    return AuthorizationConfiguration(
        use_user_principal=True,
        use_workload_principal=True,
        principal_bool_operator=JsonRule(rule if rule is not None else DEFAULT_JSON_RULE),
        id_token_trust_mode=IdTokenTrustMode.NONE,
    )


def base_entity_builder_configuration() -> EntityBuilderConfiguration:
    return EntityBuilderConfiguration(build_user=True, build_workload=True)


def base_builder(policy_store: PolicyStoreConfiguration | None = None) -> BootstrapConfigurationBuilder:
    return (
        BootstrapConfiguration.builder()
        .application_name(APPLICATION_NAME)
        .log_config(LogConfiguration.no_logging())
        .policy_store_config(policy_store or PolicyStoreConfiguration.from_yaml_file(POLICY_STORE_OK_YAML_FILE))
        .jwt_config(JwtConfiguration.without_validation())
        .authorization_config(base_authz_configuration())
        .entity_builder_config(base_entity_builder_configuration())
    )


@pytest.fixture()
def bootstrap_builder() -> BootstrapConfigurationBuilder:
    return base_builder()


@pytest.fixture()
def bootstrap_config() -> BootstrapConfiguration:
    return base_builder().build()


def mint_token(claims: dict, secret: bytes = HMAC_SECRET, kid: str = HMAC_KID) -> str:
    return jwt.encode(claims, secret, algorithm="HS256", headers={"kid": kid})


def hmac_jwks(secret: bytes = HMAC_SECRET, kid: str = HMAC_KID) -> str:
    encoded = base64.urlsafe_b64encode(secret).rstrip(b"=").decode("ascii")
    return json.dumps({"keys": [{"kty": "oct", "kid": kid, "alg": "HS256", "k": encoded}]})


class RecordingEngine:
    """Engine stub that records every boundary call."""

    def __init__(self, decision: dict | None = None, fail_create: Exception | None = None) -> None:
        self.created = []
        self.released = []
        self.calls = []
        self.decision = decision or {
            "workload": None,
            "person": None,
            "principals": {},
            "decision": True,
            "request_id": "recorded",
        }
        self.fail_create = fail_create
        self.fail_authorize: Exception | None = None

    def create(self, bootstrap):
        if self.fail_create is not None:
            raise self.fail_create
        handle = object()
        self.created.append((handle, bootstrap))
        return handle

    def authorize(self, handle, request):
        self.calls.append(("authorize", handle, request))
        if self.fail_authorize is not None:
            raise self.fail_authorize
        return self.decision

    def authorize_unsigned(self, handle, request):
        self.calls.append(("authorize_unsigned", handle, request))
        if self.fail_authorize is not None:
            raise self.fail_authorize
        return self.decision

    def pop_logs(self, handle):
        self.calls.append(("pop_logs", handle, None))
        return []

    def release(self, handle):
        self.released.append(handle)


@pytest.fixture()
def recording_engine() -> RecordingEngine:
    return RecordingEngine()
