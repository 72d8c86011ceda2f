"""Abgleich deklarierter Summen gegen die aus den Zeilen berechneten Werte.

Geprüft werden die EN16931-Geschäftsregeln:

- BR-CO-10: Summe der Zeilennettobeträge = LineExtensionAmount
- BR-CO-13: TaxExclusiveAmount = LineExtensionAmount - Nachlässe + Zuschläge
- BR-CO-15: TaxInclusiveAmount = TaxExclusiveAmount + Steuerbetrag gesamt
- BR-CO-16: PayableAmount = TaxInclusiveAmount - vorausbezahlter Betrag

sowie die Übereinstimmung der deklarierten TaxSubtotals mit den berechneten.
Befunde werden ausschließlich als :class:`ValidationResult` zurückgegeben.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from ..config import EngineSettings, settings as default_settings
from ..dto import (
    ZERO,
    DecimalLike,
    DeclaredTotals,
    InvoiceLine,
    TaxCategoryKey,
    TaxSubtotal,
    _to_decimal,
    format_amount,
    quantize_money,
)
from .aggregator import TaxAggregation, aggregate_lines
from .result import ValidationResult

if TYPE_CHECKING:
    from ..accumulator import InvoiceAccumulator

logger = logging.getLogger(__name__)

NO_LINES = "no invoice lines"
NO_TOTALS = "no totals"
NO_TAX_TOTALS = "no VAT totals"


def subtotal_field(key: TaxCategoryKey, name: str) -> str:
    return f"tax_subtotal[{key.label()}].{name}"


@dataclass(frozen=True, slots=True)
class ExpectedTotals:
    """Kanonische, auf zwei Stellen gerundete Sollwerte einer Rechnung."""

    line_extension_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_inclusive_amount: Decimal
    payable_amount: Decimal
    total_tax_amount: Decimal


def compute_expected_totals(
    lines: Sequence[InvoiceLine],
    aggregation: TaxAggregation,
    *,
    allowance_total: Decimal,
    charge_total: Decimal,
    prepaid_amount: Decimal,
) -> ExpectedTotals:
    # Exact intermediate values, rounded only when the figure is compared
    line_sum = sum((line.line_extension_amount for line in lines), ZERO)
    tax_exclusive = line_sum - allowance_total + charge_total
    tax_inclusive = tax_exclusive + aggregation.total_tax_amount
    payable = tax_inclusive - prepaid_amount
    return ExpectedTotals(
        line_extension_amount=quantize_money(line_sum),
        tax_exclusive_amount=quantize_money(tax_exclusive),
        tax_inclusive_amount=quantize_money(tax_inclusive),
        payable_amount=quantize_money(payable),
        total_tax_amount=quantize_money(aggregation.total_tax_amount),
    )


class TotalsReconciler:
    """Prüft deklarierte Summen gegen die Rechnungszeilen."""

    def __init__(self, *, settings: EngineSettings | None = None) -> None:
        self._settings = settings or default_settings

    @property
    def tolerance(self) -> Decimal:
        return self._settings.amount_tolerance

    def within_tolerance(self, declared: Decimal, expected: Decimal) -> bool:
        return abs(declared - expected) <= self.tolerance

    def validate(
        self,
        lines: Optional[Sequence[InvoiceLine]],
        declared_totals: Optional[DeclaredTotals],
        declared_tax_subtotals: Optional[Sequence[TaxSubtotal]],
        allowance_total: DecimalLike | None = None,
        charge_total: DecimalLike | None = None,
        prepaid_amount: DecimalLike | None = None,
    ) -> ValidationResult:
        if not lines:
            return self._missing(NO_LINES)
        if declared_totals is None:
            return self._missing(NO_TOTALS)
        if not declared_tax_subtotals:
            return self._missing(NO_TAX_TOTALS)

        lines = tuple(lines)
        warnings: List[str] = []

        allowance = self._resolve_adjustment(
            "AllowanceTotalAmount", allowance_total, declared_totals.allowance_total_amount, warnings
        )
        charge = self._resolve_adjustment(
            "ChargeTotalAmount", charge_total, declared_totals.charge_total_amount, warnings
        )
        prepaid = self._resolve_adjustment(
            "PrepaidAmount", prepaid_amount, declared_totals.prepaid_amount, warnings
        )

        aggregation = aggregate_lines(lines)
        expected = compute_expected_totals(
            lines,
            aggregation,
            allowance_total=allowance,
            charge_total=charge,
            prepaid_amount=prepaid,
        )

        errors: List[str] = []
        corrections: Dict[str, Decimal] = {}

        self._check_line_extension(declared_totals, expected, errors, corrections)
        self._check_tax_exclusive(declared_totals, expected, allowance, charge, errors, corrections)
        self._check_tax_inclusive(declared_totals, expected, errors, corrections)
        self._check_payable(declared_totals, expected, prepaid, errors, corrections)
        self._check_tax_subtotals(declared_tax_subtotals, aggregation, errors, corrections, warnings)

        currencies = sorted({line.currency for line in lines})
        if len(currencies) > 1:
            warnings.append(f"Invoice lines use more than one currency: {', '.join(currencies)}")

        result = ValidationResult.build(errors, warnings, corrections)
        logger.info(
            "Invoice totals validated",
            extra={
                "event": {
                    "valid": result.is_valid,
                    "lines": len(lines),
                    "tax_categories": len(aggregation.subtotals),
                    "errors": len(result.errors),
                    "warnings": len(result.warnings),
                }
            },
        )
        return result

    def validate_accumulator(self, accumulator: "InvoiceAccumulator") -> ValidationResult:
        return self.validate(
            accumulator.lines,
            accumulator.declared_totals,
            accumulator.declared_tax_subtotals,
            accumulator.allowance_total_amount,
            accumulator.charge_total_amount,
            accumulator.prepaid_amount,
        )

    # ------------------------------------------------------------------ rules

    def _check_line_extension(self, declared, expected, errors, corrections) -> None:
        value = declared.line_extension_amount
        if self.within_tolerance(value, expected.line_extension_amount):
            return
        delta = value - expected.line_extension_amount
        self._fail(
            "BR-CO-10",
            f"Sum of invoice line net amounts ({format_amount(expected.line_extension_amount)}) "
            f"does not match LineExtensionAmount ({format_amount(value)}), "
            f"difference {format_amount(delta)}",
            "line_extension_amount",
            expected.line_extension_amount,
            errors,
            corrections,
        )

    def _check_tax_exclusive(self, declared, expected, allowance, charge, errors, corrections) -> None:
        value = declared.tax_exclusive_amount
        if self.within_tolerance(value, expected.tax_exclusive_amount):
            return
        self._fail(
            "BR-CO-13",
            f"TaxExclusiveAmount ({format_amount(value)}) must equal LineExtensionAmount "
            f"({format_amount(expected.line_extension_amount)}) - allowances ({format_amount(allowance)}) "
            f"+ charges ({format_amount(charge)}) = {format_amount(expected.tax_exclusive_amount)}",
            "tax_exclusive_amount",
            expected.tax_exclusive_amount,
            errors,
            corrections,
        )

    def _check_tax_inclusive(self, declared, expected, errors, corrections) -> None:
        value = declared.tax_inclusive_amount
        if self.within_tolerance(value, expected.tax_inclusive_amount):
            return
        self._fail(
            "BR-CO-15",
            f"TaxInclusiveAmount ({format_amount(value)}) must equal TaxExclusiveAmount "
            f"({format_amount(expected.tax_exclusive_amount)}) + total VAT "
            f"({format_amount(expected.total_tax_amount)}) = {format_amount(expected.tax_inclusive_amount)}",
            "tax_inclusive_amount",
            expected.tax_inclusive_amount,
            errors,
            corrections,
        )

    def _check_payable(self, declared, expected, prepaid, errors, corrections) -> None:
        value = declared.payable_amount
        if self.within_tolerance(value, expected.payable_amount):
            return
        self._fail(
            "BR-CO-16",
            f"PayableAmount ({format_amount(value)}) must equal TaxInclusiveAmount "
            f"({format_amount(expected.tax_inclusive_amount)}) - prepaid amount "
            f"({format_amount(prepaid)}) = {format_amount(expected.payable_amount)}",
            "payable_amount",
            expected.payable_amount,
            errors,
            corrections,
        )

    def _check_tax_subtotals(
        self,
        declared_subtotals: Sequence[TaxSubtotal],
        aggregation: TaxAggregation,
        errors: List[str],
        corrections: Dict[str, Decimal],
        warnings: List[str],
    ) -> None:
        expected_by_key = aggregation.by_key()
        declared_by_key: Dict[TaxCategoryKey, TaxSubtotal] = {}
        for subtotal in declared_subtotals:
            key = subtotal.key
            if key in declared_by_key:
                errors.append(f"VAT subtotal {key.label()} is declared more than once")
                continue
            declared_by_key[key] = subtotal

        for key, computed in expected_by_key.items():
            declared = declared_by_key.get(key)
            if declared is None:
                errors.append(
                    f"VAT subtotal {key.label()} is missing from the declared VAT totals "
                    f"(expected tax amount {format_amount(computed.tax_amount)})"
                )
                corrections[subtotal_field(key, "taxable_amount")] = quantize_money(computed.taxable_amount)
                corrections[subtotal_field(key, "tax_amount")] = computed.tax_amount
                continue

            taxable = quantize_money(computed.taxable_amount)
            if not self.within_tolerance(declared.taxable_amount, taxable):
                errors.append(
                    f"VAT subtotal {key.label()}: TaxableAmount ({format_amount(declared.taxable_amount)}) "
                    f"does not match the sum of its invoice lines ({format_amount(taxable)})"
                )
                corrections[subtotal_field(key, "taxable_amount")] = taxable
            if not self.within_tolerance(declared.tax_amount, computed.tax_amount):
                errors.append(
                    f"VAT subtotal {key.label()}: TaxAmount ({format_amount(declared.tax_amount)}) "
                    f"does not match the computed tax amount ({format_amount(computed.tax_amount)})"
                )
                corrections[subtotal_field(key, "tax_amount")] = computed.tax_amount

        for key, declared in declared_by_key.items():
            if key not in expected_by_key:
                errors.append(
                    f"VAT subtotal {key.label()} is declared but no invoice line uses this tax category"
                )
                corrections[subtotal_field(key, "tax_amount")] = ZERO

        declared_tax = sum((s.tax_amount for s in declared_subtotals), ZERO)
        difference = declared_tax - aggregation.total_tax_amount
        if difference and self.within_tolerance(declared_tax, aggregation.total_tax_amount):
            warnings.append(
                f"Declared VAT total ({declared_tax}) differs from the computed VAT total "
                f"({format_amount(aggregation.total_tax_amount)}) by a rounding difference of {difference}"
            )

    # ---------------------------------------------------------------- helpers

    def _resolve_adjustment(
        self,
        label: str,
        supplied: DecimalLike | None,
        declared: Decimal,
        warnings: List[str],
    ) -> Decimal:
        if supplied is None:
            return declared
        value = _to_decimal(supplied)
        if not self.within_tolerance(value, declared):
            warnings.append(
                f"{label} on the declared totals ({format_amount(declared)}) differs from the "
                f"tracked amount ({format_amount(value)}); the tracked amount is used"
            )
        return value

    @staticmethod
    def _fail(
        rule: str,
        message: str,
        field_name: str,
        corrected: Decimal,
        errors: List[str],
        corrections: Dict[str, Decimal],
    ) -> None:
        logger.debug("Business rule violated", extra={"event": {"rule": rule, "field": field_name}})
        errors.append(f"{rule}: {message}")
        corrections[field_name] = quantize_money(corrected)

    @staticmethod
    def _missing(message: str) -> ValidationResult:
        logger.info("Invoice totals not validated", extra={"event": {"reason": message}})
        return ValidationResult.missing_input(message)


def validate_invoice_totals(
    lines: Optional[Sequence[InvoiceLine]],
    declared_totals: Optional[DeclaredTotals],
    declared_tax_subtotals: Optional[Sequence[TaxSubtotal]],
    allowance_total: DecimalLike | None = None,
    charge_total: DecimalLike | None = None,
    prepaid_amount: DecimalLike | None = None,
    *,
    settings: EngineSettings | None = None,
) -> ValidationResult:
    return TotalsReconciler(settings=settings).validate(
        lines,
        declared_totals,
        declared_tax_subtotals,
        allowance_total,
        charge_total,
        prepaid_amount,
    )
