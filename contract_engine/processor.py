"""
Contract Processor - Main Orchestrator

Maps an action request onto the permission policy, the state machine and
the pricing engine, and builds the response.
"""

import logging
from dataclasses import replace
from typing import Any, Dict

from .models import (
    STAFF_ROLES,
    Action,
    ActionRequest,
    ContractRecord,
    ContractTerms,
    Permission,
    PermissionSet,
    Rejection,
    RejectionReason,
    Role,
    TransitionResult,
    parse_flag,
)
from .output import DEFAULT_SIGN_LINK_BASE, OutputBuilder
from .permissions import PermissionPolicy, permission_error_message
from .pricing import PricingEngine
from .state_machine import ContractStateMachine
from .validators import InputValidator

logger = logging.getLogger(__name__)


class ContractProcessor:
    """
    Main orchestrator for contract actions.

    Implements a clear pipeline pattern:
    1. Validate Input
    2. Parse Request
    3. Dispatch Action (permission check, then transition or recompute)
    4. Build Output
    """

    def __init__(self, sign_link_base: str = DEFAULT_SIGN_LINK_BASE, token_factory=None, clock=None):
        self.validator = InputValidator()
        self.policy = PermissionPolicy()
        self.state_machine = ContractStateMachine(self.policy, token_factory=token_factory, clock=clock)
        self.pricing = PricingEngine()
        self.output_builder = OutputBuilder(sign_link_base)

    def perform(self, request: ActionRequest) -> TransitionResult:
        """
        Perform a single action on a contract.

        Args:
            request: Parsed ActionRequest

        Returns:
            TransitionResult with the updated contract, or the original
            contract and a Rejection
        """
        self.validator.validate(request)

        contract = request.contract
        role = request.role
        action = request.action
        machine = self.state_machine

        if action == Action.GENERATE_PDF:
            return machine.generate_pdf(contract, role)
        if action == Action.REQUEST_ELECTRONIC_SIGNATURE:
            return machine.request_electronic_signature(contract, role)
        if action == Action.EDIT_WHILE_PENDING:
            return machine.edit_while_pending(contract, role)
        if action == Action.UPLOAD_SIGNED_COPY:
            return machine.upload_signed_copy(contract, role, request.document)
        if action == Action.CLIENT_SIGNS:
            return machine.client_signs(contract, request.token, role)
        if action == Action.END_OF_RENTAL:
            return machine.end_of_rental(contract, request.now, role)
        if action == Action.CANCEL:
            return machine.cancel(contract, role)
        if action == Action.TOGGLE_DISABLED:
            return machine.toggle_disabled(contract, role, request.actor)
        if action == Action.SOFT_DELETE:
            return machine.soft_delete(contract, role, request.actor)
        if action == Action.REACTIVATE:
            return machine.reactivate(contract, role)
        if action == Action.UPDATE_TERMS:
            return self.update_terms(contract, role, request.terms)
        if action == Action.RECOMPUTE_PRICING:
            return TransitionResult(contract=self.pricing.apply(contract))
        if action == Action.MARK_ACCOUNT_PAID:
            return self._mark_paid(action, contract, role, self.pricing.mark_account_paid)
        if action == Action.MARK_CAUTION_PAID:
            return self._mark_paid(action, contract, role, self.pricing.mark_caution_paid)

        raise ValueError(f"Unsupported action: {action}")

    def update_terms(self, contract: ContractRecord, role, terms: ContractTerms, vat_ratio=None) -> TransitionResult:
        """
        Change the rental terms and recompute pricing.

        Requires can_edit. The status is left as is; a pending contract
        goes back to draft only through edit_while_pending.
        """
        role = Role.parse(role)
        permissions = self.policy.check_contract(role, contract)
        if not permissions.can_edit:
            return self._reject(
                Action.UPDATE_TERMS,
                contract,
                role,
                RejectionReason.PERMISSION_DENIED,
                permission_error_message(Permission.EDIT, role, contract.effective_status),
            )

        self.validator.validate_rental_window(*self.validator.merged_window(contract, terms))

        changes = {}
        if terms.start_datetime is not None:
            changes["start_datetime"] = terms.start_datetime
        if terms.end_datetime is not None:
            changes["end_datetime"] = terms.end_datetime
        if terms.items is not None:
            changes["items"] = terms.items
        if terms.addons is not None:
            changes["addons"] = terms.addons
        if terms.package_changed:
            changes["package"] = terms.package

        updated = replace(contract, **changes)
        logger.info(f"Contract {contract.id}: terms updated ({', '.join(changes) or 'no changes'})")
        return TransitionResult(contract=self.pricing.apply(updated, vat_ratio))

    def check_permissions(self, role, status, is_deleted: bool) -> PermissionSet:
        return self.policy.check(role, status, is_deleted)

    def process_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Perform an action from raw dictionary input.

        Convenience method for API usage.
        """
        self.validator.validate_raw(data)
        request = ActionRequest.from_dict(data)
        result = self.perform(request)

        contract = result.contract
        permissions = self.policy.check_contract(request.role, contract)
        summary = self.pricing.payment_summary(contract.financials)
        return self.output_builder.build_action(result, permissions, summary)

    def permissions_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Permission lookup from raw input: {role, status, is_deleted}."""
        if not isinstance(data, dict):
            raise ValueError("Request body must be an object")
        permissions = self.check_permissions(
            data.get("role"),
            data.get("status"),
            parse_flag(data.get("is_deleted"), "is_deleted"),
        )
        return permissions.to_dict()

    def pricing_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recompute pricing from raw input: {contract, vat_ratio?}."""
        if not isinstance(data, dict) or not isinstance(data.get("contract"), dict):
            raise ValueError("contract is required and must be an object")
        self.validator.validate_terms_shape(data["contract"], "contract")

        contract = ContractRecord.from_dict(data["contract"])
        snapshot = self.pricing.recompute(contract, data.get("vat_ratio"))
        return {
            "financials": self.output_builder.build_financials(snapshot),
            "payment_summary": self.output_builder.build_payment_summary(
                self.pricing.payment_summary(snapshot)
            ),
        }

    def _mark_paid(self, action: Action, contract: ContractRecord, role: Role, mark) -> TransitionResult:
        if contract.is_deleted:
            return self._reject(
                action, contract, role, RejectionReason.CONTRACT_DISABLED, "This contract is disabled."
            )
        if role not in STAFF_ROLES:
            return self._reject(
                action,
                contract,
                role,
                RejectionReason.PERMISSION_DENIED,
                f"Only staff members can record payments (role: {role.value}).",
            )
        return TransitionResult(contract=mark(contract))

    @staticmethod
    def _reject(action, contract, role, reason, message) -> TransitionResult:
        logger.info(f"Contract {contract.id}: {action.value} rejected ({reason.value}) for {role.value}")
        rejection = Rejection(
            action=action,
            role=role,
            status=contract.effective_status,
            reason=reason,
            message=message,
        )
        return TransitionResult(contract=contract, rejection=rejection)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def process_action_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Perform an action from a Python dict and return a Python dict."""
    processor = ContractProcessor()
    return processor.process_from_dict(input_data)


def process_action_from_json(json_input: str) -> str:
    """Perform an action from a JSON string and return a JSON string."""
    import json

    try:
        input_data = json.loads(json_input)
        processor = ContractProcessor()
        result = processor.process_from_dict(input_data)
        return json.dumps(result, indent=2)

    except ValueError as e:
        error_response = {"error": str(e), "status": "validation_failed"}
        return json.dumps(error_response, indent=2)
