from datetime import datetime, timedelta, timezone
import os
from typing import Optional

import jwt

JWT_ALGORITHM = "HS256"
JWT_EXP_HOURS = 8

METER_OVERRIDE_SCOPE = "meter_override"


def _get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise ValueError("JWT_SECRET is required")
    if len(secret) < 32:
        raise ValueError("JWT_SECRET must be at least 32 characters")
    return secret


def override_ttl_minutes() -> int:
    return int(os.getenv("METER_OVERRIDE_TTL_MINUTES", "15"))


def create_access_token(user_id: int, company_id: int, role: str = "MANAGER") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "company_id": int(company_id),
        "role": str(role).upper(),
        "exp": now + timedelta(hours=JWT_EXP_HOURS),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except Exception as exc:
        raise ValueError("Invalid or expired token") from exc

    if "sub" not in payload or "company_id" not in payload:
        raise ValueError("Invalid token claims")

    if payload.get("scope") == METER_OVERRIDE_SCOPE:
        # Override tokens authorize rollbacks on one asset, never a session.
        raise ValueError("Invalid token claims")

    return payload


def create_meter_override_token(
    supervisor_id: int,
    company_id: int,
    asset_id: int,
    ttl_minutes: Optional[int] = None,
) -> str:
    """
    Short-lived elevated-permission token that lets meter rollbacks on one
    asset be accepted. It is not single-use: any rollback on that asset is
    accepted until the token expires, so the TTL bounds the exposure.
    Callers must check the supervisor's role before minting.
    """
    now = datetime.now(timezone.utc)
    ttl = override_ttl_minutes() if ttl_minutes is None else int(ttl_minutes)
    payload = {
        "sub": str(supervisor_id),
        "company_id": int(company_id),
        "asset_id": int(asset_id),
        "scope": METER_OVERRIDE_SCOPE,
        "exp": now + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_meter_override_token(token: str, company_id: int, asset_id: int) -> int:
    """Returns the supervisor id the override was issued to."""
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except Exception as exc:
        raise ValueError("Invalid or expired override token") from exc

    if payload.get("scope") != METER_OVERRIDE_SCOPE:
        raise ValueError("Token is not a meter override")
    if int(payload.get("company_id", -1)) != int(company_id):
        raise ValueError("Override token issued for another company")
    if int(payload.get("asset_id", -1)) != int(asset_id):
        raise ValueError("Override token issued for another asset")

    return int(payload["sub"])
