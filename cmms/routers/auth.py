import os

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from cmms.services.auth_service import JWT_EXP_HOURS, create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_ENDPOINT_ENVS = {"dev", "local", "test"}


class TokenRequest(BaseModel):
    user_id: int = Field(gt=0)
    company_id: int = Field(gt=0)
    role: str = "MANAGER"


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


@router.post("/token", response_model=TokenResponse)
def issue_token(payload: TokenRequest):
    """Mint a session token for local development and the test suite.

    Production deployments front the engine with their own identity provider;
    outside dev/local/test this route does not exist. The role is copied into
    the token as given and only checked when a route requires one.
    """
    if os.getenv("ENV", "dev").lower() not in TOKEN_ENDPOINT_ENVS:
        raise HTTPException(status_code=404, detail="Not Found")

    try:
        token = create_access_token(payload.user_id, payload.company_id, role=payload.role)
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return TokenResponse(access_token=token, expires_in=JWT_EXP_HOURS * 3600)
