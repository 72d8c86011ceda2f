"""Akkumulationszustand einer Rechnung für die Summenprüfung.

Der Zustand gehört exklusiv dem Aufrufer (bzw. dem Dokument-Builder) und lebt
genau so lange wie der Aufbau eines Dokuments. Fehlende Steuerangaben einer
Zeile werden beim Erfassen aufgelöst, nicht erst bei der Aggregation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .config import EngineSettings, settings as default_settings
from .dto import (
    ZERO,
    DecimalLike,
    DeclaredTotals,
    InvoiceLine,
    TaxSubtotal,
    _to_decimal,
    quantize_money,
)
from .validation.aggregator import aggregate_lines
from .validation.reconciler import TotalsReconciler, compute_expected_totals
from .validation.result import ValidationResult

logger = logging.getLogger(__name__)

LineInput = InvoiceLine | Mapping[str, Any]
SubtotalInput = TaxSubtotal | Mapping[str, Any]
TotalsInput = DeclaredTotals | Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class CalculatedTotals:
    totals: DeclaredTotals
    tax_subtotals: Tuple[TaxSubtotal, ...]
    total_tax_amount: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "totals": self.totals.to_dict(),
            "tax_totals": [
                {
                    "taxable_amount": f"{quantize_money(s.taxable_amount):.2f}",
                    "tax_amount": f"{s.tax_amount:.2f}",
                    "tax_percent": f"{quantize_money(s.tax_percent):.2f}",
                    "tax_category_id": s.tax_category_id,
                    "tax_scheme_id": s.tax_scheme_id,
                    "currency": s.currency,
                }
                for s in self.tax_subtotals
            ],
            "total_tax_amount": f"{self.total_tax_amount:.2f}",
        }


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if _blank(value) else _to_decimal(value)


class InvoiceAccumulator:
    """Sammelt Zeilen, deklarierte Summen und Steuer-Teilsummen einer Rechnung."""

    def __init__(self, *, settings: EngineSettings | None = None) -> None:
        self._settings = settings or default_settings
        self._lines: List[InvoiceLine] = []
        self._declared_totals: Optional[DeclaredTotals] = None
        self._declared_tax_subtotals: List[TaxSubtotal] = []
        self._allowances: List[Decimal] = []
        self._charges: List[Decimal] = []
        self._prepaid_amount: Optional[Decimal] = None

    # ----------------------------------------------------------------- lines

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def lines(self) -> Tuple[InvoiceLine, ...]:
        return tuple(self._lines)

    def normalize_line(self, data: LineInput) -> InvoiceLine:
        """Löst Defaults auf und leitet den Zeilenbetrag bei Bedarf ab.

        ``line_extension_amount`` hat Vorrang; fehlt er, wird
        ``price_amount * quantity`` verwendet. Fehlen beide Angaben, ist die
        Zeile strukturell ungültig (``ValueError``).
        """

        if isinstance(data, InvoiceLine):
            return data

        cfg = self._settings
        price = _optional_decimal(data.get("price_amount"))
        quantity = _optional_decimal(data.get("quantity"))
        amount = _optional_decimal(data.get("line_extension_amount"))
        if amount is None:
            if price is None or quantity is None:
                raise ValueError(
                    "Invoice line requires line_extension_amount or both price_amount "
                    "and quantity to derive it."
                )
            amount = price * quantity

        category = data.get("tax_category_id")
        percent = data.get("tax_percent")
        scheme = data.get("tax_scheme_id")
        currency = data.get("currency")
        line_id = data.get("line_id", data.get("id"))
        return InvoiceLine(
            line_extension_amount=amount,
            tax_category_id=cfg.default_tax_category_id if _blank(category) else str(category),
            tax_percent=cfg.default_tax_percent if _blank(percent) else _to_decimal(percent),
            tax_scheme_id=cfg.default_tax_scheme_id if _blank(scheme) else str(scheme),
            currency=cfg.default_currency if _blank(currency) else str(currency),
            line_id=None if line_id is None else str(line_id),
            quantity=quantity,
            unit_code=data.get("unit_code"),
            price_amount=price,
            name=data.get("name"),
            description=data.get("description"),
        )

    def add_line(self, data: LineInput) -> InvoiceLine:
        line = self.normalize_line(data)
        self._lines.append(line)
        logger.debug(
            "Invoice line recorded",
            extra={"event": {"line_no": len(self._lines), "tax_category": line.category_key.label()}},
        )
        return line

    def add_lines(self, lines: Iterable[LineInput]) -> List[InvoiceLine]:
        return [self.add_line(line) for line in lines]

    # ---------------------------------------------------------------- totals

    @property
    def declared_totals(self) -> Optional[DeclaredTotals]:
        return self._declared_totals

    def set_totals(self, totals: TotalsInput) -> DeclaredTotals:
        if not isinstance(totals, DeclaredTotals):
            totals = DeclaredTotals(
                line_extension_amount=totals["line_extension_amount"],
                tax_exclusive_amount=totals["tax_exclusive_amount"],
                tax_inclusive_amount=totals["tax_inclusive_amount"],
                payable_amount=totals["payable_amount"],
                charge_total_amount=totals.get("charge_total_amount") or ZERO,
                allowance_total_amount=totals.get("allowance_total_amount") or ZERO,
                prepaid_amount=totals.get("prepaid_amount") or ZERO,
            )
        self._declared_totals = totals
        return totals

    @property
    def declared_tax_subtotals(self) -> Tuple[TaxSubtotal, ...]:
        return tuple(self._declared_tax_subtotals)

    def set_tax_totals(self, subtotals: Iterable[SubtotalInput]) -> Tuple[TaxSubtotal, ...]:
        """Ersetzt die deklarierten Teilsummen vollständig."""

        cfg = self._settings
        resolved: List[TaxSubtotal] = []
        for item in subtotals:
            if not isinstance(item, TaxSubtotal):
                percent = item.get("tax_percent")
                item = TaxSubtotal(
                    taxable_amount=item["taxable_amount"],
                    tax_amount=item["tax_amount"],
                    tax_percent=cfg.default_tax_percent if _blank(percent) else percent,
                    tax_category_id=item.get("tax_category_id") or cfg.default_tax_category_id,
                    tax_scheme_id=item.get("tax_scheme_id") or cfg.default_tax_scheme_id,
                    currency=item.get("currency") or cfg.default_currency,
                )
            resolved.append(item)
        self._declared_tax_subtotals = resolved
        return tuple(resolved)

    # ------------------------------------------------- allowances / charges

    def record_allowance_charge(self, *, is_charge: bool, amount: DecimalLike) -> None:
        value = _to_decimal(amount)
        if is_charge:
            self._charges.append(value)
        else:
            self._allowances.append(value)

    def set_prepaid_amount(self, amount: DecimalLike) -> None:
        self._prepaid_amount = _to_decimal(amount)

    @property
    def allowance_total_amount(self) -> Optional[Decimal]:
        """Summe der erfassten Nachlässe; ``None`` wenn keine erfasst wurden."""

        if not self._allowances:
            return None
        return sum(self._allowances, ZERO)

    @property
    def charge_total_amount(self) -> Optional[Decimal]:
        if not self._charges:
            return None
        return sum(self._charges, ZERO)

    @property
    def prepaid_amount(self) -> Optional[Decimal]:
        return self._prepaid_amount

    def _effective(self, tracked: Optional[Decimal], declared_name: str) -> Decimal:
        if tracked is not None:
            return tracked
        if self._declared_totals is not None:
            return getattr(self._declared_totals, declared_name)
        return ZERO

    # ------------------------------------------------------------ operations

    def calculate_totals(self) -> CalculatedTotals:
        """Berechnet die korrekten Summen allein aus den erfassten Zeilen."""

        lines = self.lines
        allowance = self._effective(self.allowance_total_amount, "allowance_total_amount")
        charge = self._effective(self.charge_total_amount, "charge_total_amount")
        prepaid = self._effective(self.prepaid_amount, "prepaid_amount")

        aggregation = aggregate_lines(lines)
        expected = compute_expected_totals(
            lines,
            aggregation,
            allowance_total=allowance,
            charge_total=charge,
            prepaid_amount=prepaid,
        )
        totals = DeclaredTotals(
            line_extension_amount=expected.line_extension_amount,
            tax_exclusive_amount=expected.tax_exclusive_amount,
            tax_inclusive_amount=expected.tax_inclusive_amount,
            payable_amount=expected.payable_amount,
            charge_total_amount=quantize_money(charge),
            allowance_total_amount=quantize_money(allowance),
            prepaid_amount=quantize_money(prepaid),
        )
        return CalculatedTotals(
            totals=totals,
            tax_subtotals=aggregation.subtotals,
            total_tax_amount=expected.total_tax_amount,
        )

    def validate(self) -> ValidationResult:
        return TotalsReconciler(settings=self._settings).validate_accumulator(self)
