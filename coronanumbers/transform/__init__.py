"""Derived numbers for rendering and export."""

from .incidence import daily_numbers, fill_missing_dates

__all__ = ["daily_numbers", "fill_missing_dates"]
