"""
api/identity.py: caller identity handed over by the upstream auth provider

Credentials are checked before requests reach this service; the gateway
forwards the verified candidate id and role as headers, which are trusted
as-is.
"""

from typing import Optional

from fastapi import HTTPException, Request
from pydantic import BaseModel

CANDIDATE_HEADER = "X-Candidate-Id"
ROLE_HEADER = "X-Role"

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


class Identity(BaseModel):
    candidate_id: str
    role: str = ROLE_STUDENT


def read_identity(request: Request) -> Optional[Identity]:
    """Identity from the request headers, or None when the caller is anonymous."""
    candidate_id = (request.headers.get(CANDIDATE_HEADER) or "").strip()
    if not candidate_id:
        return None
    role = (request.headers.get(ROLE_HEADER) or ROLE_STUDENT).strip().lower()
    return Identity(candidate_id=candidate_id, role=role)


def require_identity(request: Request) -> Identity:
    identity: Optional[Identity] = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


def require_admin(request: Request) -> Identity:
    identity = require_identity(request)
    if identity.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")
    return identity
