from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status, Request
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db_session
from .rate_limit import rate_limit_check


ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass(frozen=True)
class Caller:
    """Authenticated principal handed explicitly to every service call."""

    role: str
    token: str

    @property
    def actor(self) -> str:
        return self.role

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def get_db() -> Session:
    yield from get_db_session()


def _role_for_token(token: str) -> Optional[str]:
    settings = get_settings()
    if hmac.compare_digest(token, settings.api_token):
        return ROLE_ADMIN
    if hmac.compare_digest(token, settings.scanner_token):
        return ROLE_USER
    return None


def require_token(request: Request, authorization: Optional[str] = Header(default=None)) -> Caller:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    role = _role_for_token(token)
    if role is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    # Rate limit per token + IP (if enabled)
    rate_limit_check(request, token)
    return Caller(role=role, token=token)


def require_admin(caller: Caller = Depends(require_token)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return caller
