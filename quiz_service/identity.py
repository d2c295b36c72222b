import logging
from typing import Any
from uuid import UUID

import httpx
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import AUTH_SERVICE_URL, AUTH_TIMEOUT_SECONDS
from .crud import get_app_user_id
from .errors import AuthenticationError, AuthUnavailableError, NoAppUserError, QuizError

logger = logging.getLogger("quiz-service")

# Public paths that don't require auth
PUBLIC_PATHS = {
    "/health",
    "/docs",
    "/openapi.json",
}


def _is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS


async def verify_token(token: str) -> dict[str, Any]:
    """
    Verify a bearer token with the identity service and normalize its payload.
    REQUIRED: sub
    """
    try:
        async with httpx.AsyncClient(timeout=AUTH_TIMEOUT_SECONDS) as client:
            r = await client.post(f"{AUTH_SERVICE_URL}/auth/verify", json={"token": token})
    except httpx.RequestError as e:
        logger.error("Auth service error: %s", e)
        raise AuthUnavailableError()

    if r.status_code != 200:
        raise AuthenticationError("Invalid or expired token.")

    try:
        payload: Any = r.json()
    except ValueError:
        raise AuthenticationError("Invalid token payload.")

    if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
        payload = payload["user"]
    if not isinstance(payload, dict) or not payload.get("sub"):
        raise AuthenticationError("Invalid token payload.")

    return {"sub": str(payload["sub"]), "email": str(payload.get("email") or "")}


async def auth_middleware(request: Request, call_next):
    # CORS preflight carries no credentials
    if request.method == "OPTIONS" or _is_public_path(request.url.path):
        return await call_next(request)

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return JSONResponse(status_code=401, content=AuthenticationError().to_body())

    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return JSONResponse(status_code=401, content=AuthenticationError().to_body())

    verifier = getattr(request.app.state, "verify_token", verify_token)
    try:
        request.state.user = await verifier(token)
    except QuizError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_body())

    return await call_next(request)


def current_subject(request: Request) -> str:
    user = getattr(request.state, "user", None)
    sub = user.get("sub") if isinstance(user, dict) else None
    if not sub:
        raise AuthenticationError()
    return str(sub)


def build_current_user_id(get_db):
    def current_user_id(request: Request, db: Session = Depends(get_db)) -> UUID:
        uid = get_app_user_id(db, current_subject(request))
        if uid is None:
            raise NoAppUserError()
        return uid

    return current_user_id
