from enum import Enum
from typing import Dict, Set

class StaffRole(str, Enum):
    """Staff role enumeration"""
    ADMIN = "ADMIN"
    REGISTRATION_STAFF = "REGISTRATION_STAFF"
    ACCOUNTANT = "ACCOUNTANT"
    FOLLOW_UP_STAFF = "FOLLOW_UP_STAFF"

class Permission(str, Enum):
    MANAGE_USERS = "MANAGE_USERS"
    CREATE_APPLICANTS = "CREATE_APPLICANTS"
    VIEW_APPLICANTS = "VIEW_APPLICANTS"
    EDIT_APPLICANTS = "EDIT_APPLICANTS"
    VIEW_ACCOUNTING = "VIEW_ACCOUNTING"
    MANAGE_TRANSACTIONS = "MANAGE_TRANSACTIONS"
    MANAGE_PRICING = "MANAGE_PRICING"

ROLE_PERMISSIONS: Dict[Permission, Set[StaffRole]] = {
    Permission.MANAGE_USERS: {StaffRole.ADMIN},
    Permission.CREATE_APPLICANTS: {StaffRole.ADMIN, StaffRole.REGISTRATION_STAFF},
    Permission.VIEW_APPLICANTS: {
        StaffRole.ADMIN, StaffRole.REGISTRATION_STAFF, StaffRole.ACCOUNTANT, StaffRole.FOLLOW_UP_STAFF
    },
    Permission.EDIT_APPLICANTS: {StaffRole.ADMIN, StaffRole.REGISTRATION_STAFF, StaffRole.FOLLOW_UP_STAFF},
    Permission.VIEW_ACCOUNTING: {StaffRole.ADMIN, StaffRole.ACCOUNTANT},
    Permission.MANAGE_TRANSACTIONS: {StaffRole.ADMIN, StaffRole.ACCOUNTANT},
    Permission.MANAGE_PRICING: {StaffRole.ADMIN},
}

def has_permission(role: str, permission: Permission) -> bool:
    """Check if a staff role grants a permission"""
    try:
        return StaffRole(role) in ROLE_PERMISSIONS[Permission(permission)]
    except ValueError:
        return False

def permissions_for(role: str):
    return sorted(p.value for p in Permission if has_permission(role, p))
