"""
Output Builder

Converts records, snapshots and rejections into JSON-ready dicts.
"""

from datetime import datetime
from decimal import Decimal

from .models import (
    ContractRecord,
    FinancialSnapshot,
    PaymentSummary,
    PermissionSet,
    Rejection,
    TransitionResult,
)
from .permissions import status_label

DEFAULT_SIGN_LINK_BASE = "/sign-links"

# Badge colour per displayed status
STATUS_COLORS = {
    "DRAFT": "light",
    "PENDING": "warning",
    "PENDING_SIGNATURE": "warning",
    "SIGNED": "success",
    "SIGNED_ELECTRONICALLY": "success",
    "COMPLETED": "info",
    "DISABLED": "warning",
    "CANCELLED": "error",
}


def to_money(value: Decimal | None) -> float | None:
    """Convert Decimal to float with 2 decimal places."""
    if value is None:
        return None
    return round(float(value), 2)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _status_value(status) -> str:
    return getattr(status, "value", status)


def build_sign_link_url(token: str | None, base: str = DEFAULT_SIGN_LINK_BASE) -> str | None:
    """Public URL of a sign link: {base}/{token}."""
    if not token:
        return None
    return f"{base.rstrip('/')}/{token}"


class OutputBuilder:
    """Builds the API response sections."""

    def __init__(self, sign_link_base: str = DEFAULT_SIGN_LINK_BASE):
        self.sign_link_base = sign_link_base

    def build_action(
        self,
        result: TransitionResult,
        permissions: PermissionSet,
        summary: PaymentSummary,
    ) -> dict:
        return {
            "result": "applied" if result.accepted else "rejected",
            "contract": self.build_contract(result.contract),
            "rejection": self.build_rejection(result.rejection),
            "permissions": permissions.to_dict(),
            "payment_summary": self.build_payment_summary(summary),
        }

    def build_contract(self, contract: ContractRecord) -> dict:
        effective = _status_value(contract.effective_status)
        output = {
            "id": contract.id,
            "contract_number": contract.contract_number,
            "status": _status_value(contract.status),
            "display_status": {
                "status": effective,
                "label": status_label(effective),
                "color": STATUS_COLORS.get(effective, "info"),
            },
            "start_datetime": _iso(contract.start_datetime),
            "end_datetime": _iso(contract.end_datetime),
            "package_id": contract.package_id,
            "package": self._build_package(contract),
            "items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "price_per_day_ttc": to_money(item.price_per_day_ttc),
                    "price_ttc": to_money(item.price_ttc),
                }
                for item in contract.items
            ],
            "addons": [
                {
                    "id": addon.id,
                    "name": addon.name,
                    "price_ht": to_money(addon.price_ht),
                    "price_ttc": to_money(addon.price_ttc),
                    "included_in_package": addon.included_in_package,
                }
                for addon in contract.addons
            ],
            "deleted_at": _iso(contract.deleted_at),
            "deleted_by": contract.deleted_by,
            "sign_link_token": contract.sign_link_token,
            "sign_link_url": build_sign_link_url(contract.sign_link_token, self.sign_link_base),
            "signed_document": contract.signed_document,
            "signed_at": _iso(contract.signed_at),
            "completed_at": _iso(contract.completed_at),
            "cancelled_at": _iso(contract.cancelled_at),
        }
        output.update(self.build_financials(contract.financials))
        return output

    def build_financials(self, snapshot: FinancialSnapshot) -> dict:
        return {
            "total_price_ht": to_money(snapshot.total_price_ht),
            "total_price_ttc": to_money(snapshot.total_price_ttc),
            "account_ht": to_money(snapshot.account_ht),
            "account_ttc": to_money(snapshot.account_ttc),
            "account_paid_ht": to_money(snapshot.account_paid_ht),
            "account_paid_ttc": to_money(snapshot.account_paid_ttc),
            "caution_ht": to_money(snapshot.caution_ht),
            "caution_ttc": to_money(snapshot.caution_ttc),
            "caution_paid_ht": to_money(snapshot.caution_paid_ht),
            "caution_paid_ttc": to_money(snapshot.caution_paid_ttc),
            "total_days": snapshot.duration_days,
            # Kept at full precision so a later recompute reuses the same ratio
            "vat_ratio": str(snapshot.vat_ratio) if snapshot.vat_ratio is not None else None,
        }

    def build_payment_summary(self, summary: PaymentSummary) -> dict:
        return {
            "remaining_account_ht": to_money(summary.remaining_account_ht),
            "remaining_account_ttc": to_money(summary.remaining_account_ttc),
            "remaining_caution_ht": to_money(summary.remaining_caution_ht),
            "remaining_caution_ttc": to_money(summary.remaining_caution_ttc),
            "total_remaining_ht": to_money(summary.total_remaining_ht),
            "total_remaining_ttc": to_money(summary.total_remaining_ttc),
            "is_fully_paid": summary.is_fully_paid,
            "account_paid_percentage": summary.account_paid_percentage,
            "caution_paid_percentage": summary.caution_paid_percentage,
        }

    @staticmethod
    def build_rejection(rejection: Rejection | None) -> dict | None:
        return rejection.to_dict() if rejection else None

    @staticmethod
    def _build_package(contract: ContractRecord) -> dict | None:
        package = contract.package
        if package is None:
            return None
        return {
            "id": package.id,
            "name": package.name,
            "price_ht": to_money(package.price_ht),
            "price_ttc": to_money(package.price_ttc),
            "addon_ids": list(package.addon_ids),
        }
