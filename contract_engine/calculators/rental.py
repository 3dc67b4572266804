"""
Rental Price Calculator

Computes the total rental price (TTC) in either package or per-day mode.
"""

from ..models import Addon, ContractRecord, PricingContext, RentalTotals
from ..money import ZERO, quantize_money


class RentalPriceCalculator:
    """Calculates the rental total for a contract."""

    def calculate(self, ctx: PricingContext) -> RentalTotals:
        """
        Calculate the rental total.

        Package mode: package price + add-ons not included in the package.
        Per-day mode: primary item's daily price × days + every add-on.
        """
        contract = ctx.contract

        if contract.is_package_mode:
            return self._calculate_package(contract)

        return self._calculate_per_day(contract, ctx.duration_days)

    def _calculate_package(self, contract: ContractRecord) -> RentalTotals:
        base = contract.package.price_ttc
        chargeable = ZERO
        included = ZERO

        for addon in contract.addons:
            if self.is_included(addon, contract):
                included += addon.price_ttc
            else:
                chargeable += addon.price_ttc

        return RentalTotals(
            base_price_ttc=quantize_money(base),
            chargeable_addons_ttc=quantize_money(chargeable),
            included_addons_ttc=quantize_money(included),
            total_price_ttc=quantize_money(base + chargeable),
        )

    def _calculate_per_day(self, contract: ContractRecord, duration_days: int) -> RentalTotals:
        # No package to include them: every selected add-on is charged
        item = contract.primary_item
        base = item.price_per_day_ttc * duration_days if item else ZERO
        chargeable = sum((addon.price_ttc for addon in contract.addons), ZERO)

        return RentalTotals(
            base_price_ttc=quantize_money(base),
            chargeable_addons_ttc=quantize_money(chargeable),
            included_addons_ttc=ZERO,
            total_price_ttc=quantize_money(base + chargeable),
        )

    @staticmethod
    def is_included(addon: Addon, contract: ContractRecord) -> bool:
        """An add-on is free when flagged as such or bundled by the package."""
        if not contract.is_package_mode:
            return False
        if addon.included_in_package:
            return True
        return addon.id is not None and str(addon.id) in contract.package.addon_ids
