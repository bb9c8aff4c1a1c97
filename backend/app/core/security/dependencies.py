from __future__ import annotations

from collections.abc import Callable, Iterable

import jwt
from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.core.middleware.audit import set_actor
from app.core.security.auth import Actor, actor_from_request
from app.shared.enums import Role


STAFF_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.OPERATIONS, Role.SALE})


def get_actor(request: Request) -> Actor:
    try:
        actor = actor_from_request(request)
    except (NotImplementedError, PermissionError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    except (ValueError, KeyError, jwt.PyJWTError):
        # Malformed dev header, unknown role name or bad token.
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    set_actor(actor.actor_id, [r.value for r in actor.roles])
    return actor


def require_roles(required: Iterable[Role]) -> Callable[[Actor], Actor]:
    required_set = set(required)

    def _dep(actor: Actor = Depends(get_actor)) -> Actor:
        if settings.authz_bypass_enabled:
            return actor
        actor_roles = set(actor.roles)
        if Role.ADMIN in actor_roles:
            return actor
        if not actor_roles.intersection(required_set):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor

    return _dep


def require_staff() -> Callable[[Actor], Actor]:
    return require_roles(STAFF_ROLES)
