"""
VAT Conversion

HT (excluding tax) / TTC (including tax) conversion and the VAT ratio
inference used when recomputing a contract's financial snapshot.
"""

from decimal import Decimal

from ..models import FinancialSnapshot
from ..money import ZERO, parse_money, quantize_money

VAT_MULTIPLIER = Decimal('1.20')  # HT → TTC
DEFAULT_VAT_RATIO = Decimal('0.8333333333')  # TTC → HT, i.e. 1 / 1.20


def is_usable_ratio(ratio: Decimal | None) -> bool:
    return ratio is not None and ZERO < ratio <= 1


def ttc_to_ht(ttc: Decimal, vat_ratio: Decimal = DEFAULT_VAT_RATIO) -> Decimal:
    return quantize_money(ttc * vat_ratio)


def ht_to_ttc(ht: Decimal, multiplier: Decimal = VAT_MULTIPLIER) -> Decimal:
    return quantize_money(ht * multiplier)


class VatRatioResolver:
    """Picks the HT/TTC ratio to apply on a recompute."""

    def resolve(self, snapshot: FinancialSnapshot, requested=None) -> Decimal:
        """
        Resolve the ratio to use.

        Priority order:
        1. Explicitly requested ratio, when usable
        2. Ratio stored by a previous recompute, so recomputing is stable
        3. First existing HT/TTC pair on the contract with a usable ratio
        4. DEFAULT_VAT_RATIO (20% VAT)
        """
        if requested is not None:
            ratio = parse_money(requested)
            if is_usable_ratio(ratio):
                return ratio

        if is_usable_ratio(snapshot.vat_ratio):
            return snapshot.vat_ratio

        inferred = self.infer(snapshot)
        if inferred is not None:
            return inferred

        return DEFAULT_VAT_RATIO

    def infer(self, snapshot: FinancialSnapshot) -> Decimal | None:
        """Scan the snapshot's pairs for one that yields 0 < ht/ttc <= 1."""
        for ht, ttc in snapshot.pairs():
            if ht is None or ttc is None:
                continue
            if ht <= 0 or ttc <= 0:
                continue
            ratio = ht / ttc
            if is_usable_ratio(ratio):
                return ratio
        return None
