"""Gruppierung der Rechnungszeilen nach Steuerkategorie (TaxSubtotal-Ermittlung).

Die Steuer wird je Kategorie genau einmal gerundet, nachdem die ungerundeten
Zeilenbeträge aufsummiert wurden, nie pro Zeile. Die Reihenfolge der
ausgegebenen Teilsummen folgt dem ersten Auftreten eines Schlüssels.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from ..dto import ZERO, InvoiceLine, TaxCategoryAggregate, TaxCategoryKey, TaxSubtotal, quantize_money

HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class TaxAggregation:
    subtotals: Tuple[TaxSubtotal, ...]
    total_tax_amount: Decimal

    @property
    def taxable_amount(self) -> Decimal:
        return sum((s.taxable_amount for s in self.subtotals), ZERO)

    def by_key(self) -> Dict[TaxCategoryKey, TaxSubtotal]:
        return {subtotal.key: subtotal for subtotal in self.subtotals}


def compute_tax_amount(taxable_amount: Decimal, tax_percent: Decimal) -> Decimal:
    return quantize_money(taxable_amount * tax_percent / HUNDRED)


def group_lines(lines: Iterable[InvoiceLine]) -> Dict[TaxCategoryKey, TaxCategoryAggregate]:
    buckets: Dict[TaxCategoryKey, TaxCategoryAggregate] = {}
    for line in lines:
        key = line.category_key
        bucket = buckets.get(key)
        if bucket is None:
            bucket = TaxCategoryAggregate(
                key=key,
                tax_scheme_id=line.tax_scheme_id,
                currency=line.currency,
            )
            buckets[key] = bucket
        bucket.add(line)
    return buckets


def aggregate_lines(lines: Optional[Iterable[InvoiceLine]]) -> TaxAggregation:
    if not lines:
        return TaxAggregation(subtotals=(), total_tax_amount=ZERO)

    subtotals = []
    total_tax = ZERO
    for key, bucket in group_lines(lines).items():
        tax_amount = compute_tax_amount(bucket.taxable_amount, key.tax_percent)
        total_tax += tax_amount
        subtotals.append(
            TaxSubtotal(
                taxable_amount=bucket.taxable_amount,
                tax_amount=tax_amount,
                tax_percent=key.tax_percent,
                tax_category_id=key.tax_category_id,
                tax_scheme_id=bucket.tax_scheme_id,
                currency=bucket.currency,
            )
        )
    return TaxAggregation(subtotals=tuple(subtotals), total_tax_amount=total_tax)


class LineAggregator:
    """Objekt-Fassade um :func:`aggregate_lines` für Aufrufer mit Zeilenliste."""

    def __init__(self, lines: Iterable[InvoiceLine] = ()) -> None:
        self._lines = tuple(lines)

    def aggregate(self) -> TaxAggregation:
        return aggregate_lines(self._lines)
