"""Request-scoped dependencies shared by the routers.

Authentication is owned by the hosting application, which forwards the
resolved caller through the ``X-User-Id`` and ``X-User-Role`` headers.
"""

from fastapi import Depends, Header, HTTPException

from motocare.core.config import Settings, get_settings
from motocare.core.enums import UserRole
from motocare.services.appointment_status import Caller


def get_caller(
    x_user_id: int | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Caller:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing caller identity.")
    role = (x_user_role or UserRole.CUSTOMER.value).strip().upper()
    if role not in {member.value for member in UserRole}:
        raise HTTPException(status_code=400, detail="Unknown caller role.")
    return Caller(user_id=x_user_id, role=UserRole(role))


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return caller


def get_app_settings() -> Settings:
    return get_settings()
