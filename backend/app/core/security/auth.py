from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import jwt
from jwt import PyJWKClient
from sqlalchemy import select
from starlette.requests import Request

from app.core.config import settings
from app.core.db.models import User
from app.core.db.session import get_session_local
from app.shared.enums import Env, Role


@dataclass(frozen=True)
class Actor:
    actor_id: str
    roles: tuple[Role, ...]
    is_admin: bool = False


def _parse_dev_actor_header(raw: str) -> Actor:
    """
    DEV ONLY: X-DEV-ACTOR header payload as JSON.

    Example:
      {"actor_id":"dev-user","roles":["ADMIN"]}
    """
    payload = json.loads(raw)
    actor_id = str(payload["actor_id"])
    roles = tuple(Role(r) for r in payload.get("roles", []))
    return Actor(actor_id=actor_id, roles=roles, is_admin=Role.ADMIN in roles)


def _get_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if not auth:
        return None
    if not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip()


def _verify_jwt(token: str) -> dict[str, Any]:
    if not settings.oidc_jwks_url:
        raise NotImplementedError("OIDC JWKS URL is not configured")
    jwk_client = PyJWKClient(str(settings.oidc_jwks_url))
    signing_key = jwk_client.get_signing_key_from_jwt(token)

    options = {"verify_aud": bool(settings.oidc_audience), "verify_iss": bool(settings.oidc_issuer)}
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        audience=settings.oidc_audience,
        issuer=settings.oidc_issuer,
        options=options,
    )


def _extract_claim_roles(claims: dict[str, Any]) -> set[Role]:
    out: set[Role] = set()
    for value in claims.get("roles") or []:
        try:
            out.add(Role(str(value).upper()))
        except ValueError:
            continue
    return out


def _load_user_roles(actor_id: str, email: str | None) -> set[Role]:
    session = get_session_local()()
    try:
        user = session.execute(
            select(User).where(User.external_id == actor_id, User.is_active.is_(True))
        ).scalar_one_or_none()
        if user is None and email:
            user = session.execute(
                select(User).where(User.email == email, User.is_active.is_(True))
            ).scalar_one_or_none()
        if user is None:
            return set()
        try:
            return {Role(user.role.upper())}
        except ValueError:
            return set()
    finally:
        session.close()


def actor_from_request(request: Request) -> Actor:
    if settings.env == Env.dev:
        raw = request.headers.get(settings.dev_actor_header)
        if raw:
            return _parse_dev_actor_header(raw)

    token = _get_bearer_token(request)
    if not token:
        raise PermissionError("Missing bearer token")

    claims = _verify_jwt(token)

    actor_id = str(claims.get("oid") or claims.get("sub") or "unknown")
    email = claims.get("email") or claims.get("preferred_username")

    roles = _extract_claim_roles(claims) | _load_user_roles(actor_id, str(email) if email else None)
    if not roles:
        roles = {Role.CUSTOMER}

    return Actor(
        actor_id=actor_id,
        roles=tuple(sorted(roles, key=lambda value: value.value)),
        is_admin=Role.ADMIN in roles,
    )
