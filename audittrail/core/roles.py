"""
Role Constants Module

This module defines the user roles known to the platform. The audit subsystem
only cares about one of them: audit queries are restricted to ADMIN.

Usage:
    from audittrail.core.roles import UserRole, normalize_role

    if user.role == UserRole.ADMIN:
        ...

Rules:
- All roles are lowercase (no uppercase variants)
"""
from enum import Enum


class UserRole(str, Enum):
    """
    Enumeration of valid user roles.

    The roles are:
    - STUDENT: Verified student redeeming offers
    - MERCHANT_CORPORATE: Merchant head-office account
    - MERCHANT_BRANCH: Individual merchant branch account
    - ADMIN: Platform administrator (the only role allowed to read audit logs)
    """
    STUDENT = "student"
    MERCHANT_CORPORATE = "merchant_corporate"
    MERCHANT_BRANCH = "merchant_branch"
    ADMIN = "admin"


# Set of all valid roles (lowercase)
VALID_ROLES: set[str] = {role.value for role in UserRole}


def normalize_role(role: str) -> str:
    """
    Normalize a role string to lowercase.

    Tokens issued by older clients sometimes carry uppercase role claims
    ("ADMIN"); those must still compare equal to UserRole values.

    Args:
        role: The role string to normalize

    Returns:
        The lowercase role string

    Raises:
        ValueError: If the normalized role is not valid
    """
    normalized = role.lower().strip()
    if normalized not in VALID_ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of: {', '.join(sorted(VALID_ROLES))}")
    return normalized
