from typing import NamedTuple

from fastapi import HTTPException, Request

from cmms.services.auth_service import verify_token

DEFAULT_ROLE = "MANAGER"


class AuthContext(NamedTuple):
    user_id: int
    company_id: int
    role: str


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return token.strip()


def _header_company_id(request: Request) -> int:
    raw = request.headers.get("X-Company-Id")
    if raw is None:
        raise HTTPException(status_code=403, detail="Missing X-Company-Id header")
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid X-Company-Id header") from exc


def require_auth(request: Request) -> AuthContext:
    """Authenticate the caller and pin the request to one company.

    The bearer token must be a session token (meter override tokens are
    refused by ``verify_token``) and its ``company_id`` claim must match the
    ``X-Company-Id`` header. The resulting context is cached on
    ``request.state.auth`` for the role check and the routers.
    """
    cached = getattr(request.state, "auth", None)
    if cached is not None:
        return cached

    token = _parse_bearer_token(request)
    try:
        claims = verify_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    try:
        user_id = int(claims.get("sub"))
        token_company_id = int(claims.get("company_id"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token claims") from exc

    if _header_company_id(request) != token_company_id:
        raise HTTPException(status_code=403, detail="Company mismatch")

    context = AuthContext(
        user_id=user_id,
        company_id=token_company_id,
        role=str(claims.get("role") or DEFAULT_ROLE).upper(),
    )
    request.state.auth = context
    return context


def company_scope(request: Request) -> int:
    """Company every query in this request is restricted to."""
    return require_auth(request).company_id


def actor_id(request: Request) -> int:
    """User recorded as the actor on ledger entries, events and audit rows."""
    return require_auth(request).user_id
