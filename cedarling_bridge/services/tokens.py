"""Token decoding, trust-mode checks and token-derived principals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import jwt

from cedarling_bridge.schemas.primitives import AuthorizeErrorType, IdTokenTrustMode
from cedarling_bridge.services.engine import EngineAuthorizationError, EngineConfigurationError
from cedarling_bridge.services.evaluator import Entity, roles_from_attribute

LOGGER = logging.getLogger("cedarling_bridge.services.tokens")

ACCESS_TOKEN = "access_token"
ID_TOKEN = "id_token"
USERINFO_TOKEN = "userinfo_token"


@dataclass(frozen=True)
class TokenSettings:
    sig_validation: bool
    status_validation: bool
    algorithms: Sequence[str]
    jwks: Optional[jwt.PyJWKSet]
    trust_mode: IdTokenTrustMode

    @classmethod
    def from_payload(cls, jwt_config: Mapping[str, Any], trust_mode: str) -> "TokenSettings":
        jwks = None
        if jwt_config.get("jwks"):
            try:
                jwks = jwt.PyJWKSet.from_json(jwt_config["jwks"])
            except (jwt.PyJWKSetError, jwt.InvalidKeyError, ValueError) as exc:
                raise EngineConfigurationError(f"JWKS could not be parsed: {exc}") from exc

        sig_validation = bool(jwt_config.get("jwt_sig_validation"))
        if sig_validation and jwks is None:
            raise EngineConfigurationError(
                "signature validation is enabled but no local JWKS was supplied"
            )
        algorithms = list(jwt_config.get("signature_algorithms") or [])
        if sig_validation and not algorithms:
            raise EngineConfigurationError("signature validation is enabled but no algorithm is allowed")

        status_validation = bool(jwt_config.get("jwt_status_validation"))
        if status_validation:
            LOGGER.warning("jwt_status_validation_unsupported", extra={"reason": "requires network access"})

        return cls(
            sig_validation=sig_validation,
            status_validation=status_validation,
            algorithms=algorithms,
            jwks=jwks,
            trust_mode=IdTokenTrustMode(trust_mode),
        )


class TokenProcessor:
    """Decodes request tokens and derives workload and user principals from them."""

    def __init__(self, settings: TokenSettings) -> None:
        self._settings = settings

    def decode_all(self, tokens: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
        claims: Dict[str, Dict[str, Any]] = {}
        for name, token in tokens.items():
            claims[name] = self.decode(name, token)
        self.check_trust(claims)
        return claims

    def decode(self, name: str, token: str) -> Dict[str, Any]:
        try:
            if not self._settings.sig_validation:
                return jwt.decode(token, options={"verify_signature": False})
            header = jwt.get_unverified_header(token)
            key = self._signing_key(header.get("kid"))
            return jwt.decode(
                token,
                key=key.key,
                algorithms=list(self._settings.algorithms),
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as exc:
            raise EngineAuthorizationError(
                f"could not decode {name}: {exc}",
                error_type=AuthorizeErrorType.PROCESS_TOKENS,
            ) from exc

    def _signing_key(self, kid: Optional[str]) -> jwt.PyJWK:
        keys = self._settings.jwks.keys if self._settings.jwks is not None else []
        for key in keys:
            if kid is None or key.key_id == kid:
                return key
        raise jwt.InvalidTokenError(f"no JWKS key matches kid {kid!r}")

    def check_trust(self, claims: Mapping[str, Dict[str, Any]]) -> None:
        """Apply the id token trust mode across the decoded tokens."""

        if self._settings.trust_mode is IdTokenTrustMode.NONE:
            return
        access = claims.get(ACCESS_TOKEN)
        id_token = claims.get(ID_TOKEN)
        if access is None or id_token is None:
            return

        client_id = access.get("client_id")
        if client_id is None or client_id not in _audiences(id_token.get("aud")):
            raise EngineAuthorizationError(
                "id_token aud does not match access_token client_id",
                error_type=AuthorizeErrorType.PROCESS_TOKENS,
            )

        userinfo = claims.get(USERINFO_TOKEN)
        if userinfo is None:
            return
        if userinfo.get("sub") != id_token.get("sub"):
            raise EngineAuthorizationError(
                "userinfo_token sub does not match id_token sub",
                error_type=AuthorizeErrorType.PROCESS_TOKENS,
            )
        if _audiences(userinfo.get("aud")) != _audiences(id_token.get("aud")):
            raise EngineAuthorizationError(
                "userinfo_token aud does not match id_token aud",
                error_type=AuthorizeErrorType.PROCESS_TOKENS,
            )

    def workload_entity(self, claims: Mapping[str, Dict[str, Any]], entity_type: str) -> Entity:
        access = claims.get(ACCESS_TOKEN)
        if access is None:
            raise EngineAuthorizationError(
                "an access_token is required to build the workload",
                error_type=AuthorizeErrorType.CREATE_REQUEST_WORKLOAD_ENTITY,
            )
        workload_id = access.get("client_id") or access.get("aud")
        if isinstance(workload_id, list):
            workload_id = workload_id[0] if workload_id else None
        if not workload_id:
            raise EngineAuthorizationError(
                "access_token has no client_id to identify the workload",
                error_type=AuthorizeErrorType.CREATE_REQUEST_WORKLOAD_ENTITY,
            )
        return Entity(type=entity_type, id=str(workload_id), attributes=dict(access))

    def user_entity(
        self,
        claims: Mapping[str, Dict[str, Any]],
        entity_type: str,
        role_claim: str,
    ) -> Entity:
        attributes: Dict[str, Any] = {}
        for name in (ID_TOKEN, USERINFO_TOKEN):
            attributes.update(claims.get(name) or {})
        user_id = attributes.get("sub")
        if not user_id:
            raise EngineAuthorizationError(
                "id_token and userinfo_token carry no sub to identify the user",
                error_type=AuthorizeErrorType.CREATE_REQUEST_USER_ENTITY,
            )
        roles = roles_from_attribute(attributes, role_claim)
        return Entity(type=entity_type, id=str(user_id), attributes=attributes, roles=tuple(roles))


def _audiences(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return sorted(str(item) for item in value)
