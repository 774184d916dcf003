"""
Security guards for role-based and ownership-based access control.
"""

from typing import Iterable, List, Optional
from fastapi import Depends
from parcelmatch.app.core.dependencies import get_current_user
from parcelmatch.app.core.exceptions import InsufficientPermissionsError
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.user import User


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/parcels")
        async def create_parcel(current_user: User = Depends(require_role([UserRole.SENDER]))):
            ...

    Admins pass every role check.
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role == UserRole.ADMIN or current_user.role in allowed_roles:
            return current_user

        raise InsufficientPermissionsError(
            f"Access denied. Required role: {', '.join(r.value for r in allowed_roles)}"
        )

    return role_checker


def verify_ownership(resource_owner_ids: Iterable[Optional[int]], current_user: User) -> bool:
    """Admins may access everything; others only resources they own or carry."""
    if current_user.role == UserRole.ADMIN:
        return True
    return current_user.id in {owner_id for owner_id in resource_owner_ids if owner_id is not None}


class OwnershipGuard:
    """
    Ownership guard for read endpoints.

    Usage:
        ownership_guard.enforce([parcel.sender_id], current_user, "parcel")
    """

    def enforce(
        self,
        resource_owner_ids: Iterable[Optional[int]],
        current_user: User,
        resource_name: str = "resource"
    ):
        if not verify_ownership(resource_owner_ids, current_user):
            raise InsufficientPermissionsError(
                f"Access denied. You do not have permission to access this {resource_name}."
            )


ownership_guard = OwnershipGuard()
