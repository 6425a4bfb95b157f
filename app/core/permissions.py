# =====================================================
# FILE: app/core/permissions.py
# Participant Role Permission Definitions
# =====================================================

from enum import Enum
from typing import Dict, Iterable, List, Set


class Permission(str, Enum):
    PACKAGE_VIEW = "package.view"
    PACKAGE_DOWNLOAD = "package.download"
    PACKAGE_REJECT = "package.reject"

    FIELD_SUBMIT = "field.submit"
    SIGNATURE_SIGN = "signature.sign"

    PARTICIPANT_REASSIGN = "participant.reassign"
    RECEIVER_ADD = "receiver.add"


# Role to Permissions Mapping
ROLE_PERMISSIONS: Dict[str, Set[Permission]] = {
    "Signer": {
        Permission.PACKAGE_VIEW, Permission.PACKAGE_DOWNLOAD,
        Permission.PACKAGE_REJECT,
        Permission.FIELD_SUBMIT, Permission.SIGNATURE_SIGN,
        Permission.PARTICIPANT_REASSIGN, Permission.RECEIVER_ADD,
    },

    "Approver": {
        Permission.PACKAGE_VIEW, Permission.PACKAGE_DOWNLOAD,
        Permission.PACKAGE_REJECT,
        Permission.FIELD_SUBMIT,
        Permission.PARTICIPANT_REASSIGN, Permission.RECEIVER_ADD,
    },

    "FormFiller": {
        Permission.PACKAGE_VIEW, Permission.PACKAGE_DOWNLOAD,
        Permission.PACKAGE_REJECT,
        Permission.FIELD_SUBMIT,
        Permission.PARTICIPANT_REASSIGN, Permission.RECEIVER_ADD,
    },

    # Record only, but may copy in further receivers
    "Receiver": {
        Permission.PACKAGE_VIEW, Permission.PACKAGE_DOWNLOAD,
        Permission.RECEIVER_ADD,
    },
}


def get_permissions_for_role(role_name: str) -> Set[Permission]:
    """Get all permissions for a role"""
    return ROLE_PERMISSIONS.get(role_name, set())


def has_permission(roles: Iterable[str], permission: Permission) -> bool:
    """Check if a participant holding these roles has a specific permission"""
    for role in roles:
        if permission in get_permissions_for_role(role):
            return True
    return False


def get_all_permissions(roles: Iterable[str]) -> List[str]:
    """All permissions of a participant, sorted for stable output"""
    permissions = set()
    for role in roles:
        permissions.update(get_permissions_for_role(role))
    return sorted(p.value for p in permissions)
