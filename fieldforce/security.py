from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from fieldforce.errors import ApiError
from fieldforce.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class CurrentIdentity:
    user_id: int
    role: str


def decode_token(token: str, *, expected_type: str = "access") -> dict[str, Any]:
    """Verify a token minted by the auth service and return its claims."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    token_type = payload.get("typ")
    if token_type is not None and token_type != expected_type:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    return payload


def identity_from_claims(claims: dict[str, Any]) -> CurrentIdentity:
    subject = claims.get("sub")
    try:
        user_id = int(str(subject))
    except (TypeError, ValueError):
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.") from None
    if user_id <= 0:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    role = str(claims.get("role") or "executive").strip().lower()
    return CurrentIdentity(user_id=user_id, role=role)


def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentIdentity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    identity = identity_from_claims(decode_token(credentials.credentials))

    request.state.actor = identity.role
    request.state.actor_id = str(identity.user_id)
    return identity
