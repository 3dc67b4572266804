"""
Pricing Engine

Recomputes a contract's financial snapshot from its rental terms.
Pure and deterministic: the same contract always yields the same snapshot,
and malformed amounts have already been resolved to 0 by the models.
"""

import logging
from dataclasses import replace

from .calculators import (
    DepositCalculator,
    DurationCalculator,
    RentalPriceCalculator,
    VatRatioResolver,
)
from .models import ContractRecord, FinancialSnapshot, PaymentSummary, PricingContext

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Pricing pipeline:
    1. Resolve VAT ratio
    2. Count rental days
    3. Compute rental total (package or per-day mode)
    4. Derive account and caution amounts
    """

    def __init__(self):
        self.vat_resolver = VatRatioResolver()
        self.duration_calculator = DurationCalculator()
        self.rental_calculator = RentalPriceCalculator()
        self.deposit_calculator = DepositCalculator()

    def recompute(self, contract: ContractRecord, vat_ratio=None) -> FinancialSnapshot:
        """Compute a fresh snapshot for the contract.

        A package known only by id has no price to total from, so the
        stored snapshot is returned unchanged.
        """
        if contract.is_package_mode and contract.package.price_ttc is None:
            logger.warning(f"Contract {contract.id}: package {contract.package.id} has no price, pricing left unchanged")
            return contract.financials

        ctx = PricingContext(
            contract=contract,
            vat_ratio=self.vat_resolver.resolve(contract.financials, vat_ratio),
        )
        ctx.duration_days = self.duration_calculator.calculate_duration_days(
            contract.start_datetime, contract.end_datetime
        )
        ctx.rental = self.rental_calculator.calculate(ctx)
        return self.deposit_calculator.calculate(ctx)

    def apply(self, contract: ContractRecord, vat_ratio=None) -> ContractRecord:
        """Return a copy of the contract carrying the recomputed snapshot."""
        return replace(contract, financials=self.recompute(contract, vat_ratio))

    def mark_account_paid(self, contract: ContractRecord) -> ContractRecord:
        return replace(contract, financials=self.deposit_calculator.mark_account_paid(contract.financials))

    def mark_caution_paid(self, contract: ContractRecord) -> ContractRecord:
        return replace(contract, financials=self.deposit_calculator.mark_caution_paid(contract.financials))

    def payment_summary(self, snapshot: FinancialSnapshot) -> PaymentSummary:
        return self.deposit_calculator.summarize(snapshot)
