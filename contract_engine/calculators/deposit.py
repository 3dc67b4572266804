"""
Deposit Calculator

Derives the amount due (account), the security deposit (caution) and
their paid counterparts from the rental total.
"""

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from ..models import FinancialSnapshot, PaymentSummary, PricingContext
from ..money import ZERO, quantize_money
from .vat import ttc_to_ht

DEFAULT_DEPOSIT_PERCENTAGE = Decimal('50')


def suggested_deposit(total_ttc: Decimal, percentage: Decimal = DEFAULT_DEPOSIT_PERCENTAGE) -> Decimal:
    """Deposit to collect upfront, as a percentage of the total."""
    return quantize_money(total_ttc * percentage / Decimal('100'))


class DepositCalculator:
    """Builds the financial snapshot of a contract."""

    def calculate(self, ctx: PricingContext) -> FinancialSnapshot:
        """
        Build the snapshot from the rental total.

        - account = total (the full price is due before service)
        - account paid defaults to 50% of the total, otherwise preserved
        - caution = primary item's full price, independent of duration
        - caution paid defaults to 0, otherwise preserved
        Every HT value is round2(TTC × ratio).
        """
        previous = ctx.contract.financials
        ratio = ctx.vat_ratio
        total_ttc = ctx.rental.total_price_ttc

        account_ttc = total_ttc
        if previous.account_paid_ttc is None:
            account_paid_ttc = suggested_deposit(total_ttc)
        else:
            account_paid_ttc = quantize_money(previous.account_paid_ttc)

        item = ctx.contract.primary_item
        caution_ttc = quantize_money(item.price_ttc) if item else ZERO
        if previous.caution_paid_ttc is None:
            caution_paid_ttc = ZERO
        else:
            caution_paid_ttc = quantize_money(previous.caution_paid_ttc)

        return FinancialSnapshot(
            total_price_ht=ttc_to_ht(total_ttc, ratio),
            total_price_ttc=total_ttc,
            account_ht=ttc_to_ht(account_ttc, ratio),
            account_ttc=account_ttc,
            account_paid_ht=ttc_to_ht(account_paid_ttc, ratio),
            account_paid_ttc=account_paid_ttc,
            caution_ht=ttc_to_ht(caution_ttc, ratio),
            caution_ttc=caution_ttc,
            caution_paid_ht=ttc_to_ht(caution_paid_ttc, ratio),
            caution_paid_ttc=caution_paid_ttc,
            duration_days=ctx.duration_days,
            vat_ratio=ratio,
        )

    @staticmethod
    def mark_account_paid(snapshot: FinancialSnapshot) -> FinancialSnapshot:
        """Paid = due. Never a partial value."""
        return replace(
            snapshot,
            account_paid_ht=snapshot.account_ht,
            account_paid_ttc=snapshot.account_ttc,
        )

    @staticmethod
    def mark_caution_paid(snapshot: FinancialSnapshot) -> FinancialSnapshot:
        return replace(
            snapshot,
            caution_paid_ht=snapshot.caution_ht,
            caution_paid_ttc=snapshot.caution_ttc,
        )

    def summarize(self, snapshot: FinancialSnapshot) -> PaymentSummary:
        """Outstanding amounts and payment progress."""
        remaining_account_ht = self._remaining(snapshot.account_ht, snapshot.account_paid_ht)
        remaining_account_ttc = self._remaining(snapshot.account_ttc, snapshot.account_paid_ttc)
        remaining_caution_ht = self._remaining(snapshot.caution_ht, snapshot.caution_paid_ht)
        remaining_caution_ttc = self._remaining(snapshot.caution_ttc, snapshot.caution_paid_ttc)

        return PaymentSummary(
            remaining_account_ht=remaining_account_ht,
            remaining_account_ttc=remaining_account_ttc,
            remaining_caution_ht=remaining_caution_ht,
            remaining_caution_ttc=remaining_caution_ttc,
            total_remaining_ht=remaining_account_ht + remaining_caution_ht,
            total_remaining_ttc=remaining_account_ttc + remaining_caution_ttc,
            is_fully_paid=remaining_account_ttc == 0 and remaining_caution_ttc == 0,
            account_paid_percentage=self._percentage(snapshot.account_paid_ttc, snapshot.account_ttc),
            caution_paid_percentage=self._percentage(snapshot.caution_paid_ttc, snapshot.caution_ttc),
        )

    @staticmethod
    def _remaining(due: Decimal, paid: Decimal | None) -> Decimal:
        return max(ZERO, quantize_money(due - (paid or ZERO)))

    @staticmethod
    def _percentage(paid: Decimal | None, due: Decimal) -> int:
        if due <= 0:
            return 0
        ratio = (paid or ZERO) / due * Decimal('100')
        return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
