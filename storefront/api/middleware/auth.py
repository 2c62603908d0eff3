"""Verification of Supabase-issued admin JWTs."""

import json
from enum import Enum
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWK, PyJWKSet

from storefront.core.config import get_settings
from storefront.schemas.auth import TokenPayload

ALGORITHMS = ["ES256"]


class AuthErrorCode(str, Enum):
    """Why a token was refused."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Raised when JWT validation fails for any reason."""

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


@lru_cache
def load_signing_keys() -> dict[str | None, Any]:
    """Parse SUPABASE_SIGNING_KEY_JWK into public keys by ``kid``.

    Accepts a single JWK or a JWKS document (``{"keys": [...]}``) so keys can
    be rotated without a deploy. A single JWK without ``kid`` is stored under
    ``None`` and verifies every token.
    """
    raw = get_settings().supabase_signing_key_jwk
    if not raw:
        raise AuthError("Signing key not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AuthError(f"Invalid signing key JWK format: {e}", AuthErrorCode.INVALID_TOKEN) from e

    try:
        if "keys" in data:
            return {key.key_id: key.key for key in PyJWKSet.from_dict(data).keys}
        jwk = PyJWK.from_dict(data)
    except jwt.PyJWTError as e:
        raise AuthError(f"Invalid signing key JWK format: {e}", AuthErrorCode.INVALID_TOKEN) from e
    return {jwk.key_id: jwk.key}


def signing_key_for(token: str) -> Any:
    """Pick the verification key named by the token's ``kid`` header."""
    keys = load_signing_keys()
    if len(keys) == 1:
        return next(iter(keys.values()))

    kid = jwt.get_unverified_header(token).get("kid")
    if kid not in keys:
        raise AuthError("Token signed with an unknown key", AuthErrorCode.INVALID_SIGNATURE)
    return keys[kid]


def expected_issuer() -> str | None:
    """Supabase Auth issuer for the configured project, if one is configured."""
    url = get_settings().supabase_url
    return f"{url.rstrip('/')}/auth/v1" if url else None


def decode_jwt(token: str) -> TokenPayload:
    """Decode and validate a Supabase-issued ES256 JWT.

    Args:
        token: The JWT token string to decode.

    Returns:
        TokenPayload: Validated token payload.

    Raises:
        AuthError: If the token is malformed, expired, from another project
            or signed with a key we do not trust.
    """
    issuer = expected_issuer()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            signing_key_for(token),
            algorithms=ALGORITHMS,
            issuer=issuer,
            options={
                "verify_aud": False,
                "verify_iss": issuer is not None,
                "require": ["exp", "iat", "sub"],
            },
        )
    except AuthError:
        raise
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED) from e
    except jwt.InvalidSignatureError as e:
        raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE) from e
    except jwt.MissingRequiredClaimError as e:
        raise AuthError(f"Token missing required claim: {e}", AuthErrorCode.INVALID_TOKEN) from e
    except jwt.InvalidIssuerError as e:
        raise AuthError("Token was issued for another project", AuthErrorCode.INVALID_TOKEN) from e
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}", AuthErrorCode.INVALID_TOKEN) from e

    aud = payload.get("aud")
    return TokenPayload(
        sub=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role"),
        app_metadata=payload.get("app_metadata") or {},
        exp=payload["exp"],
        iat=payload["iat"],
        aud=aud if isinstance(aud, str) else None,
        iss=payload.get("iss"),
    )
