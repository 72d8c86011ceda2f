"""Summenberechnung und Geschäftsregel-Prüfung (BR-CO-10/13/15/16)."""

from .aggregator import LineAggregator, TaxAggregation, aggregate_lines, compute_tax_amount
from .reconciler import (
    NO_LINES,
    NO_TAX_TOTALS,
    NO_TOTALS,
    ExpectedTotals,
    TotalsReconciler,
    compute_expected_totals,
    validate_invoice_totals,
)
from .result import ValidationResult

__all__ = [
    "LineAggregator",
    "TaxAggregation",
    "aggregate_lines",
    "compute_tax_amount",
    "NO_LINES",
    "NO_TAX_TOTALS",
    "NO_TOTALS",
    "ExpectedTotals",
    "TotalsReconciler",
    "compute_expected_totals",
    "validate_invoice_totals",
    "ValidationResult",
]
