from typing import Iterable, Optional

from .security import UserRole


def has_role(caller_role, allowed_roles: Iterable[UserRole]) -> bool:
    """Check a role against an allow-list. Accepts enum members or raw values."""
    if caller_role is None:
        return False
    try:
        role = UserRole(caller_role)
    except ValueError:
        return False
    return role in set(allowed_roles)


def owns_resource(caller_id: Optional[int], owner_id: Optional[int]) -> bool:
    """Check that the caller is the owner of a resource."""
    return caller_id is not None and owner_id is not None and caller_id == owner_id


def is_permitted(
    caller_id: Optional[int],
    caller_role,
    allowed_roles: Iterable[UserRole],
    owner_id: Optional[int] = None,
) -> bool:
    """
    Permit or deny an action from plain inputs.

    The caller must hold one of ``allowed_roles``; when ``owner_id`` is given
    the caller must also own the resource.
    """
    if not has_role(caller_role, allowed_roles):
        return False
    if owner_id is not None:
        return owns_resource(caller_id, owner_id)
    return True
