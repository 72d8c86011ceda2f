"""EN16931 / Peppol BIS 3.0 Summenberechnung und Geschäftsregel-Prüfung."""

from .accumulator import CalculatedTotals, InvoiceAccumulator
from .config import EngineSettings, settings
from .document import (
    DocumentParseError,
    DocumentStateError,
    InvoiceValidationError,
    UblInvoiceBuilder,
    read_accumulator,
)
from .dto import (
    Address,
    DeclaredTotals,
    InvoiceLine,
    Party,
    TaxCategoryAggregate,
    TaxCategoryKey,
    TaxSubtotal,
    quantize_money,
)
from .logging import configure_logging, log_operation
from .validation import (
    LineAggregator,
    TaxAggregation,
    TotalsReconciler,
    ValidationResult,
    aggregate_lines,
    validate_invoice_totals,
)

__version__ = "0.1.0"

__all__ = [
    "CalculatedTotals",
    "InvoiceAccumulator",
    "EngineSettings",
    "settings",
    "DocumentParseError",
    "DocumentStateError",
    "InvoiceValidationError",
    "UblInvoiceBuilder",
    "read_accumulator",
    "Address",
    "DeclaredTotals",
    "InvoiceLine",
    "Party",
    "TaxCategoryAggregate",
    "TaxCategoryKey",
    "TaxSubtotal",
    "quantize_money",
    "configure_logging",
    "log_operation",
    "LineAggregator",
    "TaxAggregation",
    "TotalsReconciler",
    "ValidationResult",
    "aggregate_lines",
    "validate_invoice_totals",
]
