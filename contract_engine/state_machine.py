"""
Contract State Machine

The only allowed lifecycle transitions for a contract, gated by the
permission policy. Operations never raise on a refusal and never mutate
their input: each returns a TransitionResult carrying either a new record
or the original record plus a Rejection.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from .models import (
    STAFF_ROLES,
    Action,
    ContractRecord,
    ContractStatus,
    Permission,
    Rejection,
    RejectionReason,
    Role,
    TransitionResult,
)
from .permissions import PermissionPolicy, permission_error_message, status_label

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = frozenset(s for s in ContractStatus if not s.is_terminal)


@dataclass(frozen=True)
class Transition:
    """Source → target statuses of an action, and the permission it needs.

    A None permission means the action is not gated by the policy table.
    """

    moves: dict
    permission: Permission | None = None


TRANSITIONS: dict[Action, Transition] = {
    Action.GENERATE_PDF: Transition(
        moves={ContractStatus.DRAFT: ContractStatus.PENDING},
        permission=Permission.GENERATE_PDF,
    ),
    Action.REQUEST_ELECTRONIC_SIGNATURE: Transition(
        moves={ContractStatus.DRAFT: ContractStatus.PENDING_SIGNATURE},
        permission=Permission.SEND_SIGNATURE,
    ),
    # Editing a pending contract sends it back to draft: the PDF must be regenerated
    Action.EDIT_WHILE_PENDING: Transition(
        moves={ContractStatus.PENDING: ContractStatus.DRAFT},
        permission=Permission.EDIT,
    ),
    # Signed contracts keep their status when an admin replaces the signed copy
    Action.UPLOAD_SIGNED_COPY: Transition(
        moves={
            ContractStatus.PENDING: ContractStatus.SIGNED,
            ContractStatus.SIGNED: ContractStatus.SIGNED,
            ContractStatus.SIGNED_ELECTRONICALLY: ContractStatus.SIGNED_ELECTRONICALLY,
        },
        permission=Permission.UPLOAD_SIGNED,
    ),
    Action.CLIENT_SIGNS: Transition(
        moves={ContractStatus.PENDING_SIGNATURE: ContractStatus.SIGNED_ELECTRONICALLY},
    ),
    Action.END_OF_RENTAL: Transition(
        moves={
            ContractStatus.SIGNED: ContractStatus.COMPLETED,
            ContractStatus.SIGNED_ELECTRONICALLY: ContractStatus.COMPLETED,
        },
    ),
    Action.CANCEL: Transition(
        moves={status: ContractStatus.CANCELLED for status in NON_TERMINAL_STATUSES},
    ),
}


def new_sign_link_token() -> str:
    return secrets.token_urlsafe(32)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContractStateMachine:
    """Validates and applies contract lifecycle transitions."""

    def __init__(self, policy=None, token_factory=None, clock=None):
        self.policy = policy or PermissionPolicy()
        self.token_factory = token_factory or new_sign_link_token
        self.clock = clock or utc_now

    # -------------------------------------------------------------------------
    # Staff actions
    # -------------------------------------------------------------------------

    def generate_pdf(self, contract: ContractRecord, role) -> TransitionResult:
        """DRAFT → PENDING."""
        return self._transition(Action.GENERATE_PDF, contract, Role.parse(role))

    def request_electronic_signature(self, contract: ContractRecord, role) -> TransitionResult:
        """DRAFT → PENDING_SIGNATURE, stamping a fresh single-use sign-link token."""
        return self._transition(
            Action.REQUEST_ELECTRONIC_SIGNATURE,
            contract,
            Role.parse(role),
            sign_link_token=self.token_factory(),
        )

    def edit_while_pending(self, contract: ContractRecord, role) -> TransitionResult:
        """PENDING → DRAFT."""
        return self._transition(Action.EDIT_WHILE_PENDING, contract, Role.parse(role))

    def upload_signed_copy(self, contract: ContractRecord, role, document: str | None) -> TransitionResult:
        """PENDING → SIGNED, attaching the reference of the uploaded document."""
        role = Role.parse(role)
        result = self._check(Action.UPLOAD_SIGNED_COPY, contract, role)
        if result is not None:
            return result

        if not document or not str(document).strip():
            return self._reject(
                Action.UPLOAD_SIGNED_COPY,
                contract,
                role,
                RejectionReason.MISSING_DOCUMENT,
                "A signed document reference is required.",
            )

        return self._apply(
            Action.UPLOAD_SIGNED_COPY,
            contract,
            signed_document=str(document).strip(),
            signed_at=self.clock(),
        )

    def cancel(self, contract: ContractRecord, role) -> TransitionResult:
        """Any non-terminal status → CANCELLED. Open to every staff role."""
        role = Role.parse(role)
        if role not in STAFF_ROLES:
            return self._reject(
                Action.CANCEL,
                contract,
                role,
                RejectionReason.PERMISSION_DENIED,
                f"Only staff members can cancel a contract (role: {role.value}).",
            )
        # A cancelled contract has no live sign link
        return self._transition(
            Action.CANCEL,
            contract,
            role,
            cancelled_at=self.clock(),
            sign_link_token=None,
        )

    # -------------------------------------------------------------------------
    # External triggers
    # -------------------------------------------------------------------------

    def client_signs(self, contract: ContractRecord, token: str | None, role=Role.USER) -> TransitionResult:
        """
        PENDING_SIGNATURE → SIGNED_ELECTRONICALLY, triggered by the signing party.

        The token must match the record's sign-link token. It is consumed
        (cleared) on success so the same link cannot sign twice.
        """
        role = Role.parse(role)

        if contract.is_deleted:
            return self._reject_disabled(Action.CLIENT_SIGNS, contract, role)

        expected = contract.sign_link_token
        if not token or not expected or not hmac.compare_digest(str(token).encode(), expected.encode()):
            return self._reject(
                Action.CLIENT_SIGNS,
                contract,
                role,
                RejectionReason.INVALID_TOKEN,
                "This signature link is invalid or has already been used.",
            )

        return self._transition(
            Action.CLIENT_SIGNS,
            contract,
            role,
            sign_link_token=None,
            signed_at=self.clock(),
        )

    def end_of_rental(self, contract: ContractRecord, now: datetime | None = None, role=Role.USER) -> TransitionResult:
        """SIGNED / SIGNED_ELECTRONICALLY → COMPLETED, from the day after the rental ends."""
        role = Role.parse(role)
        now = now or self.clock()

        if contract.is_deleted:
            return self._reject_disabled(Action.END_OF_RENTAL, contract, role)

        invalid = self._check(Action.END_OF_RENTAL, contract, role)
        if invalid is not None:
            return invalid

        if contract.end_datetime is None or not self._is_past_end_day(contract.end_datetime, now):
            return self._reject(
                Action.END_OF_RENTAL,
                contract,
                role,
                RejectionReason.NOT_YET_DUE,
                "The rental period has not ended yet.",
            )

        return self._apply(Action.END_OF_RENTAL, contract, completed_at=now)

    # -------------------------------------------------------------------------
    # Soft delete
    # -------------------------------------------------------------------------

    def soft_delete(
        self,
        contract: ContractRecord,
        role,
        actor: str | None = None,
        action: Action = Action.SOFT_DELETE,
    ) -> TransitionResult:
        """Stamp deleted_at / deleted_by. The stored status is left untouched."""
        role = Role.parse(role)
        permissions = self.policy.check_contract(role, contract)
        if not permissions.can_soft_delete:
            return self._deny(action, Permission.SOFT_DELETE, contract, role)

        logger.info(f"Contract {contract.id} disabled by {actor or role.value}")
        return TransitionResult(
            contract=replace(contract, deleted_at=self.clock(), deleted_by=actor or role.value)
        )

    def reactivate(self, contract: ContractRecord, role, action: Action = Action.REACTIVATE) -> TransitionResult:
        """Clear deleted_at / deleted_by."""
        role = Role.parse(role)
        permissions = self.policy.check_contract(role, contract)
        if not permissions.can_reactivate:
            return self._deny(action, Permission.REACTIVATE, contract, role)

        logger.info(f"Contract {contract.id} reactivated by {role.value}")
        return TransitionResult(contract=replace(contract, deleted_at=None, deleted_by=None))

    def toggle_disabled(self, contract: ContractRecord, role, actor: str | None = None) -> TransitionResult:
        """Reactivate a deleted contract, soft-delete an active one."""
        if contract.is_deleted:
            return self.reactivate(contract, role, action=Action.TOGGLE_DISABLED)
        return self.soft_delete(contract, role, actor, action=Action.TOGGLE_DISABLED)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def can_transition(self, action: Action, status) -> bool:
        """Whether the transition table has a move for action from status."""
        transition = TRANSITIONS.get(action)
        known = ContractStatus.parse(status)
        return transition is not None and known in transition.moves

    def available_actions(self, contract: ContractRecord, role) -> list[Action]:
        """Actions the role could attempt right now, for pre-disabling controls."""
        role = Role.parse(role)
        permissions = self.policy.check_contract(role, contract)

        if contract.is_deleted:
            return [Action.REACTIVATE] if permissions.can_reactivate else []

        actions = []
        for action, transition in TRANSITIONS.items():
            if transition.permission is None:
                continue
            if self.can_transition(action, contract.status) and permissions.allows(transition.permission):
                actions.append(action)

        if permissions.can_edit:
            actions.append(Action.UPDATE_TERMS)
        if permissions.can_soft_delete:
            actions.append(Action.SOFT_DELETE)
        if role in STAFF_ROLES and self.can_transition(Action.CANCEL, contract.status):
            actions.append(Action.CANCEL)
        return actions

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _transition(self, action: Action, contract: ContractRecord, role: Role, **changes) -> TransitionResult:
        result = self._check(action, contract, role)
        if result is not None:
            return result
        return self._apply(action, contract, **changes)

    def _check(self, action: Action, contract: ContractRecord, role: Role) -> TransitionResult | None:
        """Permission first, then the transition table. None means allowed."""
        transition = TRANSITIONS[action]

        if transition.permission is not None:
            permissions = self.policy.check_contract(role, contract)
            if not permissions.allows(transition.permission):
                return self._deny(action, transition.permission, contract, role)

        if not self.can_transition(action, contract.status):
            return self._reject(
                action,
                contract,
                role,
                RejectionReason.INVALID_TRANSITION,
                f"Cannot {action.value.replace('_', ' ')} a contract with status "
                f"\"{status_label(contract.status)}\".",
            )
        return None

    def _apply(self, action: Action, contract: ContractRecord, **changes) -> TransitionResult:
        source = ContractStatus.parse(contract.status)
        target = TRANSITIONS[action].moves[source]
        logger.info(f"Contract {contract.id}: {action.value} {source.value} -> {target.value}")
        return TransitionResult(contract=replace(contract, status=target, **changes))

    def _deny(self, action: Action, permission: Permission, contract: ContractRecord, role: Role) -> TransitionResult:
        return self._reject(
            action,
            contract,
            role,
            RejectionReason.PERMISSION_DENIED,
            permission_error_message(permission, role, contract.effective_status),
        )

    def _reject_disabled(self, action: Action, contract: ContractRecord, role: Role) -> TransitionResult:
        return self._reject(
            action,
            contract,
            role,
            RejectionReason.CONTRACT_DISABLED,
            "This contract is disabled.",
        )

    @staticmethod
    def _reject(
        action: Action,
        contract: ContractRecord,
        role: Role,
        reason: RejectionReason,
        message: str,
    ) -> TransitionResult:
        rejection = Rejection(
            action=action,
            role=role,
            status=contract.effective_status,
            reason=reason,
            message=message,
        )
        logger.info(f"Contract {contract.id}: {action.value} rejected ({reason.value}) for {role.value}")
        return TransitionResult(contract=contract, rejection=rejection)

    @staticmethod
    def _is_past_end_day(end: datetime, now: datetime) -> bool:
        """True from the calendar day after the end date, in the end date's timezone."""
        if end.tzinfo is not None and now.tzinfo is not None:
            now = now.astimezone(end.tzinfo)
        elif end.tzinfo is not None:
            now = now.replace(tzinfo=end.tzinfo)
        elif now.tzinfo is not None:
            now = now.replace(tzinfo=None)
        return now.date() > end.date()
