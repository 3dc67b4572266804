"""
Unit Tests for the Contract State Machine

Tests verify allowed transitions, rejections, the single-use signing token
and soft delete / reactivation.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from contract_engine.models import (
    Action,
    ContractRecord,
    ContractStatus,
    FinancialSnapshot,
    Item,
    RejectionReason,
    Role,
)
from contract_engine.state_machine import TRANSITIONS, ContractStateMachine

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
TOKEN = "tok-123"


@pytest.fixture
def machine():
    return ContractStateMachine(token_factory=lambda: TOKEN, clock=lambda: NOW)


def make_contract(status=ContractStatus.DRAFT, **overrides) -> ContractRecord:
    """Helper to create a contract with a priced snapshot."""
    defaults = dict(
        id="c-1",
        status=status,
        start_datetime=datetime(2025, 6, 10, 9, 0, tzinfo=timezone.utc),
        end_datetime=datetime(2025, 6, 12, 9, 0, tzinfo=timezone.utc),
        items=[Item(id="dress-1", price_per_day_ttc=Decimal("40"), price_ttc=Decimal("500"))],
        financials=FinancialSnapshot(total_price_ttc=Decimal("80"), total_price_ht=Decimal("66.67")),
    )
    defaults.update(overrides)
    return ContractRecord(**defaults)


class TestPdfFlow:
    """DRAFT → PENDING → SIGNED via the printed contract."""

    def test_generate_pdf(self, machine):
        result = machine.generate_pdf(make_contract(), Role.COLLABORATOR)

        assert result.accepted
        assert result.contract.status == ContractStatus.PENDING

    def test_generate_pdf_requires_permission(self, machine):
        result = machine.generate_pdf(make_contract(), Role.USER)

        assert not result.accepted
        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED
        assert result.contract.status == ContractStatus.DRAFT

    def test_generate_pdf_twice_is_refused(self, machine):
        """PENDING has no generate_pdf grant, so permission is what fails first."""
        result = machine.generate_pdf(make_contract(ContractStatus.PENDING), Role.ADMIN)

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED

    def test_edit_while_pending_returns_to_draft(self, machine):
        result = machine.edit_while_pending(make_contract(ContractStatus.PENDING), Role.MANAGER)

        assert result.accepted
        assert result.contract.status == ContractStatus.DRAFT

    def test_edit_while_pending_invalid_from_draft(self, machine):
        result = machine.edit_while_pending(make_contract(), Role.ADMIN)

        assert result.rejection.reason == RejectionReason.INVALID_TRANSITION
        assert result.rejection.message == 'Cannot edit while pending a contract with status "Draft".'

    def test_upload_signed_copy(self, machine):
        result = machine.upload_signed_copy(make_contract(ContractStatus.PENDING), Role.MANAGER, "docs/c-1.pdf")

        assert result.accepted
        assert result.contract.status == ContractStatus.SIGNED
        assert result.contract.signed_document == "docs/c-1.pdf"
        assert result.contract.signed_at == NOW

    def test_upload_by_collaborator_denied(self, machine):
        result = machine.upload_signed_copy(make_contract(ContractStatus.PENDING), Role.COLLABORATOR, "doc.pdf")

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED
        assert "Collaborator" in result.rejection.message

    @pytest.mark.parametrize("document", [None, "", "   "])
    def test_upload_without_document(self, machine, document):
        result = machine.upload_signed_copy(make_contract(ContractStatus.PENDING), Role.ADMIN, document)

        assert result.rejection.reason == RejectionReason.MISSING_DOCUMENT
        assert result.contract.status == ContractStatus.PENDING

    @pytest.mark.parametrize("status", [ContractStatus.SIGNED, ContractStatus.SIGNED_ELECTRONICALLY])
    def test_admin_replaces_signed_copy_without_status_change(self, machine, status):
        contract = make_contract(status, signed_document="old.pdf")
        result = machine.upload_signed_copy(contract, Role.ADMIN, "new.pdf")

        assert result.accepted
        assert result.contract.status == status
        assert result.contract.signed_document == "new.pdf"


class TestElectronicSignature:
    """DRAFT → PENDING_SIGNATURE → SIGNED_ELECTRONICALLY via the sign link."""

    def test_request_stamps_token(self, machine):
        result = machine.request_electronic_signature(make_contract(), Role.COLLABORATOR)

        assert result.accepted
        assert result.contract.status == ContractStatus.PENDING_SIGNATURE
        assert result.contract.sign_link_token == TOKEN

    def test_default_tokens_are_unique(self):
        machine = ContractStateMachine()
        first = machine.request_electronic_signature(make_contract(), Role.ADMIN)
        second = machine.request_electronic_signature(make_contract(), Role.ADMIN)

        assert first.contract.sign_link_token
        assert first.contract.sign_link_token != second.contract.sign_link_token

    def test_client_signs_consumes_token(self, machine):
        pending = make_contract(ContractStatus.PENDING_SIGNATURE, sign_link_token=TOKEN)
        result = machine.client_signs(pending, TOKEN)

        assert result.accepted
        assert result.contract.status == ContractStatus.SIGNED_ELECTRONICALLY
        assert result.contract.sign_link_token is None
        assert result.contract.signed_at == NOW

    def test_token_is_single_use(self, machine):
        pending = make_contract(ContractStatus.PENDING_SIGNATURE, sign_link_token=TOKEN)
        signed = machine.client_signs(pending, TOKEN).contract

        replay = machine.client_signs(signed, TOKEN)

        assert replay.rejection.reason == RejectionReason.INVALID_TOKEN
        assert replay.contract.status == ContractStatus.SIGNED_ELECTRONICALLY

    @pytest.mark.parametrize("token", ["wrong", "", None])
    def test_wrong_token_rejected(self, machine, token):
        pending = make_contract(ContractStatus.PENDING_SIGNATURE, sign_link_token=TOKEN)
        result = machine.client_signs(pending, token)

        assert result.rejection.reason == RejectionReason.INVALID_TOKEN
        assert result.contract.status == ContractStatus.PENDING_SIGNATURE
        assert result.contract.sign_link_token == TOKEN

    def test_matching_token_on_wrong_status(self, machine):
        contract = make_contract(ContractStatus.PENDING, sign_link_token=TOKEN)
        result = machine.client_signs(contract, TOKEN)

        assert result.rejection.reason == RejectionReason.INVALID_TRANSITION

    def test_disabled_contract_cannot_be_signed(self, machine):
        contract = make_contract(ContractStatus.PENDING_SIGNATURE, sign_link_token=TOKEN, deleted_at=NOW)
        result = machine.client_signs(contract, TOKEN)

        assert result.rejection.reason == RejectionReason.CONTRACT_DISABLED
        assert result.rejection.status == ContractStatus.DISABLED


class TestEndOfRental:
    """SIGNED / SIGNED_ELECTRONICALLY → COMPLETED once the rental is over."""

    @pytest.mark.parametrize("status", [ContractStatus.SIGNED, ContractStatus.SIGNED_ELECTRONICALLY])
    def test_completes_the_day_after_end(self, machine, status):
        contract = make_contract(status)
        now = datetime(2025, 6, 13, 0, 1, tzinfo=timezone.utc)
        result = machine.end_of_rental(contract, now)

        assert result.accepted
        assert result.contract.status == ContractStatus.COMPLETED
        assert result.contract.completed_at == now

    def test_not_due_on_end_day(self, machine):
        contract = make_contract(ContractStatus.SIGNED)
        result = machine.end_of_rental(contract, datetime(2025, 6, 12, 23, 0, tzinfo=timezone.utc))

        assert result.rejection.reason == RejectionReason.NOT_YET_DUE
        assert result.contract.status == ContractStatus.SIGNED

    def test_not_due_without_end_date(self, machine):
        contract = make_contract(ContractStatus.SIGNED, end_datetime=None)
        result = machine.end_of_rental(contract, datetime(2030, 1, 1, tzinfo=timezone.utc))

        assert result.rejection.reason == RejectionReason.NOT_YET_DUE

    def test_end_day_uses_end_date_timezone(self, machine):
        """23:30 UTC on the end day is already the next day in UTC+2."""
        paris = timezone(timedelta(hours=2))
        contract = make_contract(ContractStatus.SIGNED, end_datetime=datetime(2025, 6, 12, 18, 0, tzinfo=paris))
        result = machine.end_of_rental(contract, datetime(2025, 6, 12, 23, 30, tzinfo=timezone.utc))

        assert result.accepted

    def test_uses_clock_when_now_missing(self, machine):
        contract = make_contract(ContractStatus.SIGNED, end_datetime=datetime(2025, 5, 20, tzinfo=timezone.utc))
        result = machine.end_of_rental(contract)

        assert result.accepted
        assert result.contract.completed_at == NOW

    @pytest.mark.parametrize("status", [ContractStatus.DRAFT, ContractStatus.PENDING, ContractStatus.PENDING_SIGNATURE])
    def test_unsigned_contracts_cannot_complete(self, machine, status):
        contract = make_contract(status, end_datetime=datetime(2025, 5, 1, tzinfo=timezone.utc))
        result = machine.end_of_rental(contract)

        assert result.rejection.reason == RejectionReason.INVALID_TRANSITION

    def test_disabled_contract_never_completes(self, machine):
        contract = make_contract(
            ContractStatus.SIGNED,
            end_datetime=datetime(2025, 5, 1, tzinfo=timezone.utc),
            deleted_at=NOW,
        )
        result = machine.end_of_rental(contract)

        assert result.rejection.reason == RejectionReason.CONTRACT_DISABLED


class TestCancel:
    """Any non-terminal status → CANCELLED."""

    @pytest.mark.parametrize("status", [
        ContractStatus.DRAFT,
        ContractStatus.PENDING,
        ContractStatus.PENDING_SIGNATURE,
        ContractStatus.SIGNED,
        ContractStatus.SIGNED_ELECTRONICALLY,
    ])
    def test_cancel_from_non_terminal(self, machine, status):
        result = machine.cancel(make_contract(status), Role.COLLABORATOR)

        assert result.accepted
        assert result.contract.status == ContractStatus.CANCELLED
        assert result.contract.cancelled_at == NOW

    @pytest.mark.parametrize("status", [ContractStatus.COMPLETED, ContractStatus.CANCELLED])
    def test_terminal_statuses_cannot_be_cancelled(self, machine, status):
        result = machine.cancel(make_contract(status), Role.ADMIN)

        assert result.rejection.reason == RejectionReason.INVALID_TRANSITION
        assert result.contract.status == status

    def test_user_cannot_cancel(self, machine):
        result = machine.cancel(make_contract(), Role.USER)

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED

    def test_cancel_keeps_deleted_flag(self, machine):
        contract = make_contract(ContractStatus.PENDING, deleted_at=NOW, deleted_by="alice")
        result = machine.cancel(contract, Role.MANAGER)

        assert result.accepted
        assert result.contract.status == ContractStatus.CANCELLED
        assert result.contract.is_deleted

    def test_cancel_clears_sign_link(self, machine):
        contract = make_contract(ContractStatus.PENDING_SIGNATURE, sign_link_token=TOKEN)
        result = machine.cancel(contract, Role.ADMIN)

        assert result.contract.status == ContractStatus.CANCELLED
        assert result.contract.sign_link_token is None
        assert machine.client_signs(result.contract, TOKEN).rejection.reason == RejectionReason.INVALID_TOKEN

    def test_terminal_statuses_have_no_outgoing_moves(self):
        for transition in TRANSITIONS.values():
            assert ContractStatus.COMPLETED not in transition.moves
            assert ContractStatus.CANCELLED not in transition.moves


class TestSoftDelete:
    """Soft delete stamps deleted_at / deleted_by and leaves the status alone."""

    def test_soft_delete(self, machine):
        result = machine.soft_delete(make_contract(ContractStatus.PENDING), Role.MANAGER, actor="alice")

        assert result.accepted
        assert result.contract.deleted_at == NOW
        assert result.contract.deleted_by == "alice"
        assert result.contract.status == ContractStatus.PENDING
        assert result.contract.effective_status == ContractStatus.DISABLED

    def test_deleted_by_defaults_to_role(self, machine):
        result = machine.soft_delete(make_contract(), Role.COLLABORATOR)

        assert result.contract.deleted_by == "COLLABORATOR"

    def test_collaborator_cannot_delete_pending(self, machine):
        result = machine.soft_delete(make_contract(ContractStatus.PENDING), Role.COLLABORATOR)

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED
        assert not result.contract.is_deleted

    def test_already_deleted_cannot_be_deleted_again(self, machine):
        result = machine.soft_delete(make_contract(deleted_at=NOW), Role.ADMIN)

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED

    def test_reactivate(self, machine):
        deleted = make_contract(ContractStatus.SIGNED, deleted_at=NOW, deleted_by="alice")
        result = machine.reactivate(deleted, Role.ADMIN)

        assert result.accepted
        assert result.contract.deleted_at is None
        assert result.contract.deleted_by is None
        assert result.contract.status == ContractStatus.SIGNED

    def test_collaborator_cannot_reactivate(self, machine):
        result = machine.reactivate(make_contract(deleted_at=NOW), Role.COLLABORATOR)

        assert result.rejection.reason == RejectionReason.PERMISSION_DENIED
        assert result.contract.is_deleted

    def test_reactivate_requires_deleted_contract(self, machine):
        result = machine.reactivate(make_contract(), Role.ADMIN)

        assert not result.accepted

    def test_toggle_round_trip(self, machine):
        contract = make_contract()
        disabled = machine.toggle_disabled(contract, Role.ADMIN).contract
        enabled = machine.toggle_disabled(disabled, Role.ADMIN).contract

        assert disabled.is_deleted
        assert not enabled.is_deleted
        assert enabled.status == contract.status

    def test_toggle_refusal_names_toggle_action(self, machine):
        refused_delete = machine.toggle_disabled(make_contract(ContractStatus.PENDING), Role.COLLABORATOR)
        refused_reactivate = machine.toggle_disabled(make_contract(deleted_at=NOW), Role.COLLABORATOR)

        assert refused_delete.rejection.action == Action.TOGGLE_DISABLED
        assert refused_reactivate.rejection.action == Action.TOGGLE_DISABLED
        assert refused_reactivate.rejection.status == ContractStatus.DISABLED

    def test_direct_soft_delete_refusal_names_soft_delete(self, machine):
        result = machine.soft_delete(make_contract(ContractStatus.PENDING), Role.COLLABORATOR)

        assert result.rejection.action == Action.SOFT_DELETE

    def test_deleted_contract_refuses_staff_actions(self, machine):
        deleted = make_contract(deleted_at=NOW)

        assert machine.generate_pdf(deleted, Role.ADMIN).rejection.reason == RejectionReason.PERMISSION_DENIED
        assert machine.request_electronic_signature(deleted, Role.ADMIN).rejection.reason == (
            RejectionReason.PERMISSION_DENIED
        )


class TestPurity:
    """Operations return new records and never touch financials."""

    def test_input_not_mutated(self, machine):
        contract = make_contract()
        machine.request_electronic_signature(contract, Role.ADMIN)

        assert contract.status == ContractStatus.DRAFT
        assert contract.sign_link_token is None

    def test_rejection_returns_original_record(self, machine):
        contract = make_contract(ContractStatus.COMPLETED)
        result = machine.cancel(contract, Role.ADMIN)

        assert result.contract is contract

    def test_financials_untouched_by_transitions(self, machine):
        contract = make_contract()
        pending = machine.generate_pdf(contract, Role.ADMIN).contract
        signed = machine.upload_signed_copy(pending, Role.ADMIN, "doc.pdf").contract
        cancelled = machine.cancel(signed, Role.ADMIN).contract

        assert cancelled.financials == contract.financials


class TestAvailableActions:
    """Actions offered to a role on a contract."""

    def test_draft_for_collaborator(self, machine):
        actions = machine.available_actions(make_contract(), Role.COLLABORATOR)

        assert actions == [
            Action.GENERATE_PDF,
            Action.REQUEST_ELECTRONIC_SIGNATURE,
            Action.UPDATE_TERMS,
            Action.SOFT_DELETE,
            Action.CANCEL,
        ]

    def test_pending_for_manager(self, machine):
        actions = machine.available_actions(make_contract(ContractStatus.PENDING), Role.MANAGER)

        assert Action.EDIT_WHILE_PENDING in actions
        assert Action.UPLOAD_SIGNED_COPY in actions
        assert Action.GENERATE_PDF not in actions

    def test_completed_offers_nothing(self, machine):
        assert machine.available_actions(make_contract(ContractStatus.COMPLETED), Role.ADMIN) == []

    def test_deleted_offers_only_reactivate(self, machine):
        deleted = make_contract(deleted_at=NOW)

        assert machine.available_actions(deleted, Role.ADMIN) == [Action.REACTIVATE]
        assert machine.available_actions(deleted, Role.COLLABORATOR) == []

    def test_user_gets_nothing(self, machine):
        assert machine.available_actions(make_contract(), Role.USER) == []
