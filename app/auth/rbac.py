from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser

FINANCE_ROLES = ("SUPER_ADMIN", "ADMIN", "MANAGER")


def require_roles(*roles: str):
    """
    Dependency factory: allow only the given roles.

    Example:
        Depends(require_roles(*FINANCE_ROLES))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
