import logging

import requests
from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer
from jose import jwt
from jose.exceptions import JWTError

from lesson_scheduling.core.config import settings
from lesson_scheduling.core.rbac import Actor, Role, role_from_payload
from lesson_scheduling.utils.keycloak_client import find_jwk

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def verify_token(credentials=Depends(security)):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = credentials.credentials

    try:
        headers = jwt.get_unverified_header(token)

        jwk = find_jwk(headers["kid"])
        if not jwk:
            raise HTTPException(status_code=401, detail="Invalid token: unknown KID")

        payload = jwt.decode(
            token,
            jwk,
            algorithms=[jwk["alg"]],
            issuer=settings.KEYCLOAK_ISSUER,
            options={"verify_aud": False}
        )

        return payload

    except (JWTError, KeyError) as e:
        logger.warning("JWT decode error: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")
    except requests.RequestException as e:
        logger.error("Could not load realm signing keys: %s", e)
        raise HTTPException(status_code=503, detail="Identity provider unavailable")


def get_actor(request: Request, credentials=Depends(security)) -> Actor:
    """
    Resolve the acting user once per request.

    With AUTH_DISABLED (local development) the identity comes from the
    X-User-Id / X-User-Role headers instead of a verified token.
    """
    if settings.AUTH_DISABLED:
        user_id = request.headers.get("X-User-Id")
        raw_role = request.headers.get("X-User-Role")
        if not user_id or not raw_role:
            raise HTTPException(status_code=401, detail="Missing X-User-Id / X-User-Role headers")
        try:
            return Actor(user_id=user_id, role=Role(raw_role))
        except ValueError:
            raise HTTPException(status_code=403, detail=f"Unknown role '{raw_role}'")

    payload = verify_token(credentials)
    role = role_from_payload(payload)
    if role is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing subject")
    return Actor(user_id=user_id, role=role)


def require_roles(allowed_roles):
    """
    FastAPI dependency: requires the acting user to hold one of `allowed_roles`.
    Administrators are always allowed.

    Returns the resolved Actor.
    """

    allowed = {Role(r) for r in allowed_roles}
    if not allowed:
        raise ValueError("require_roles() called with empty allowed_roles")

    def _dep(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role == Role.ADMINISTRATOR or actor.role in allowed:
            return actor
        raise HTTPException(status_code=403, detail="Forbidden")

    return _dep
