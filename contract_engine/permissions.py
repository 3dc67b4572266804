"""
Contract Permission Policy

Decides who may do what on a contract, from:
- the role of the acting user (ADMIN, MANAGER, COLLABORATOR, USER)
- the stored status of the contract
- whether the contract is soft-deleted

The rules live in a single table keyed by status. Every status has an
entry; anything not in the table (unknown strings) is denied.
"""

from dataclasses import dataclass

from .models import STAFF_ROLES, ContractStatus, Permission, PermissionSet, Role

ADMIN_ONLY = frozenset({Role.ADMIN})
ADMIN_MANAGER = frozenset({Role.ADMIN, Role.MANAGER})
ALL_STAFF = STAFF_ROLES
NOBODY: frozenset = frozenset()

# Only meaningful on a deleted contract
REACTIVATE_ROLES = ADMIN_MANAGER


@dataclass(frozen=True)
class StatusRule:
    """Roles granted each permission while a contract sits in one status."""

    generate_pdf: frozenset = NOBODY
    edit: frozenset = NOBODY
    soft_delete: frozenset = NOBODY
    send_signature: frozenset = NOBODY
    upload_signed: frozenset = NOBODY
    view_signed: bool = True


DENY_ALL = StatusRule()

PERMISSION_TABLE: dict[ContractStatus, StatusRule] = {
    ContractStatus.DRAFT: StatusRule(
        generate_pdf=ALL_STAFF,
        edit=ALL_STAFF,
        soft_delete=ALL_STAFF,
        send_signature=ALL_STAFF,
    ),
    # Waiting for the manually signed PDF
    ContractStatus.PENDING: StatusRule(
        edit=ADMIN_MANAGER,
        soft_delete=ADMIN_MANAGER,
        upload_signed=ADMIN_MANAGER,
    ),
    # Signature link already sent
    ContractStatus.PENDING_SIGNATURE: StatusRule(
        edit=ADMIN_MANAGER,
        soft_delete=ADMIN_MANAGER,
    ),
    ContractStatus.SIGNED: StatusRule(
        edit=ADMIN_ONLY,
        soft_delete=ADMIN_MANAGER,
        upload_signed=ADMIN_ONLY,
    ),
    ContractStatus.SIGNED_ELECTRONICALLY: StatusRule(
        edit=ADMIN_ONLY,
        soft_delete=ADMIN_MANAGER,
        upload_signed=ADMIN_ONLY,
    ),
    ContractStatus.COMPLETED: DENY_ALL,
    ContractStatus.CANCELLED: DENY_ALL,
    # Stored DISABLED without deleted_at: nothing to act on
    ContractStatus.DISABLED: DENY_ALL,
}


class PermissionPolicy:
    """Pure lookup: (role, status, deleted flag) → PermissionSet."""

    def check(self, role, status, is_deleted: bool) -> PermissionSet:
        """
        Return the permissions of a role on a contract.

        Total: any role/status input, including unknown strings, yields a
        complete PermissionSet.
        """
        role = Role.parse(role)

        if is_deleted:
            return PermissionSet(can_reactivate=role in REACTIVATE_ROLES)

        known = ContractStatus.parse(status)
        rule = PERMISSION_TABLE.get(known, DENY_ALL)

        return PermissionSet(
            can_generate_pdf=role in rule.generate_pdf,
            can_edit=role in rule.edit,
            can_soft_delete=role in rule.soft_delete,
            can_reactivate=False,
            can_send_signature=role in rule.send_signature,
            can_upload_signed=role in rule.upload_signed,
            can_view_signed=rule.view_signed,
        )

    def check_contract(self, role, contract) -> PermissionSet:
        return self.check(role, contract.status, contract.is_deleted)


def check_permissions(role, status, is_deleted: bool) -> PermissionSet:
    """Standalone entry point for presentation layers."""
    return PermissionPolicy().check(role, status, is_deleted)


# =============================================================================
# USER-FACING MESSAGES
# =============================================================================

PERMISSION_LABELS = {
    Permission.GENERATE_PDF: "generate the PDF of",
    Permission.EDIT: "edit",
    Permission.SOFT_DELETE: "disable",
    Permission.REACTIVATE: "reactivate",
    Permission.SEND_SIGNATURE: "send the electronic signature link for",
    Permission.UPLOAD_SIGNED: "upload the signed copy of",
    Permission.VIEW_SIGNED: "view the signed copy of",
}

ROLE_LABELS = {
    Role.ADMIN: "Administrator",
    Role.MANAGER: "Manager",
    Role.COLLABORATOR: "Collaborator",
    Role.USER: "User",
}

STATUS_LABELS = {
    ContractStatus.DRAFT: "Draft",
    ContractStatus.PENDING: "Pending",
    ContractStatus.PENDING_SIGNATURE: "Awaiting signature",
    ContractStatus.SIGNED: "Signed",
    ContractStatus.SIGNED_ELECTRONICALLY: "Signed electronically",
    ContractStatus.COMPLETED: "Completed",
    ContractStatus.DISABLED: "Disabled",
    ContractStatus.CANCELLED: "Cancelled",
}


def status_label(status) -> str:
    known = ContractStatus.parse(status)
    if known is None:
        return str(status) if status else "N/A"
    return STATUS_LABELS[known]


def permission_error_message(permission: Permission, role, status) -> str:
    """Explain a denied permission, e.g. for a notification toast."""
    role = Role.parse(role)
    return (
        f"As {ROLE_LABELS[role]}, you cannot {PERMISSION_LABELS[permission]} "
        f"a contract with status \"{status_label(status)}\"."
    )
