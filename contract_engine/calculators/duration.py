"""
Rental Duration Calculator
"""

import math
from datetime import datetime

from ..models import as_utc

SECONDS_PER_DAY = 86400


class DurationCalculator:
    """Counts billable days in a rental window."""

    @staticmethod
    def calculate_duration_days(start: datetime | None, end: datetime | None) -> int:
        """
        Number of started 24h periods between start and end.

        Day1 09:00 → Day3 09:00 is 2 days; Day1 09:00 → Day3 09:01 is 3.
        A missing bound or a non-positive window yields 0. Callers are
        expected to reject such windows before pricing.
        """
        if start is None or end is None:
            return 0

        seconds = (as_utc(end) - as_utc(start)).total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds / SECONDS_PER_DAY)
