"""
Calculators Package

Provides all calculation components for contract pricing.
"""

from .deposit import DepositCalculator
from .duration import DurationCalculator
from .rental import RentalPriceCalculator
from .vat import VatRatioResolver

__all__ = [
    "DurationCalculator",
    "RentalPriceCalculator",
    "DepositCalculator",
    "VatRatioResolver",
]
