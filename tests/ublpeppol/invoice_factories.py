"""Small constructors for test invoices."""

from __future__ import annotations

from decimal import Decimal

from ublpeppol.dto import DeclaredTotals, InvoiceLine, TaxSubtotal


def make_line(amount: str, percent: str = "21", category: str = "S", **kwargs) -> InvoiceLine:
    return InvoiceLine(
        line_extension_amount=Decimal(amount),
        tax_category_id=category,
        tax_percent=Decimal(percent),
        **kwargs,
    )


def make_totals(
    line_extension: str,
    tax_exclusive: str,
    tax_inclusive: str,
    payable: str,
    *,
    allowance: str = "0",
    charge: str = "0",
    prepaid: str = "0",
) -> DeclaredTotals:
    return DeclaredTotals(
        line_extension_amount=Decimal(line_extension),
        tax_exclusive_amount=Decimal(tax_exclusive),
        tax_inclusive_amount=Decimal(tax_inclusive),
        payable_amount=Decimal(payable),
        allowance_total_amount=Decimal(allowance),
        charge_total_amount=Decimal(charge),
        prepaid_amount=Decimal(prepaid),
    )


def make_subtotal(taxable: str, tax: str, percent: str = "21", category: str = "S") -> TaxSubtotal:
    return TaxSubtotal(
        taxable_amount=Decimal(taxable),
        tax_amount=Decimal(tax),
        tax_percent=Decimal(percent),
        tax_category_id=category,
    )
