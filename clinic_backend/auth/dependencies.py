from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from clinic_backend.auth import jwt_handler

security = HTTPBearer()


class AuthenticatedUser(BaseModel):
    """Identity claims carried by the bearer token issued by the auth service."""
    sub: str
    role: str
    clinic_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == 'admin'

    @property
    def is_patient(self) -> bool:
        return self.role.lower() == 'patient'


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = payload.get("role")
    if not role:
        raise HTTPException(status_code=401, detail="Invalid token role")

    return AuthenticatedUser(sub=subject, role=role, clinic_id=payload.get("clinic_id"))


def require_admin(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Only admins can perform this action.")
    return user
