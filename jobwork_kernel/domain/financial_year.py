"""Financial year window (April 1 - March 31 by default) scoping voucher numbers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

DEFAULT_START_MONTH = 4


@dataclass(frozen=True, slots=True)
class FinancialYear:
    """
    Twelve-month window starting on the first day of ``start_month``.

    ``start_year`` is the calendar year in which the window opens, so
    FY 2025-26 runs 2025-04-01 .. 2026-03-31.
    """

    start_year: int
    start_month: int = DEFAULT_START_MONTH

    def __post_init__(self) -> None:
        if not 1 <= self.start_month <= 12:
            raise ValueError(f"start_month must be 1-12, got {self.start_month}")

    @classmethod
    def containing(cls, day: date, start_month: int = DEFAULT_START_MONTH) -> FinancialYear:
        start_year = day.year if day.month >= start_month else day.year - 1
        return cls(start_year=start_year, start_month=start_month)

    @property
    def start_date(self) -> date:
        return date(self.start_year, self.start_month, 1)

    @property
    def end_date(self) -> date:
        if self.start_month == 1:
            return date(self.start_year, 12, 31)
        return date(self.start_year + 1, self.start_month, 1) - timedelta(days=1)

    @property
    def code(self) -> str:
        """Counter key, e.g. ``2025-26`` (``2025`` for calendar-year windows)."""
        if self.start_month == 1:
            return str(self.start_year)
        return f"{self.start_year}-{(self.start_year + 1) % 100:02d}"

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def __str__(self) -> str:
        return f"FY{self.code}"
