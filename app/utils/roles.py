"""
Role helpers: name normalisation and the approval authority order
"""
from typing import Optional

from app.models.employee import Role

# Total order of approval authority: super_admin > hr > manager.
# Roles missing from this map cannot decide leave.
AUTHORITY_RANK = {
    Role.MANAGER.value: 1,
    Role.HR.value: 2,
    Role.SUPER_ADMIN.value: 3,
}

APPROVER_ROLES = frozenset(AUTHORITY_RANK)


def role_name(role):
    """
    Safely extract role name from either enum or string

    Args:
        role: Either a Role enum instance or a string

    Returns:
        str: The role name as string
    """
    return role.value if hasattr(role, "value") else str(role)


def authority_rank(role) -> int:
    """Rank of a role in the approval order; 0 for roles that cannot approve."""
    if role is None:
        return 0
    return AUTHORITY_RANK.get(role_name(role), 0)


def is_approver(role) -> bool:
    return role_name(role) in APPROVER_ROLES


def can_override(acting_role, last_updated_by_role: Optional[str]) -> bool:
    """
    True if acting_role may decide a request last touched by last_updated_by_role.

    An untouched request (None) can be decided by any approver; otherwise the acting
    role must rank at least as high as the previous decider.
    """
    if not is_approver(acting_role):
        return False
    if not last_updated_by_role:
        return True
    return authority_rank(acting_role) >= authority_rank(last_updated_by_role)
