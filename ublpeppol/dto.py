"""Datentransferobjekte für die UBL/Peppol-Summenprüfung (EN16931).

Alle Beträge sind ``Decimal``. Gerundet wird ausschließlich mit
``ROUND_HALF_UP`` auf zwei Nachkommastellen; bei ``Decimal`` entspricht das
kaufmännischem Runden weg von null, auch für negative Beträge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


DecimalLike = Decimal | str | int | float

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def _to_decimal(value: DecimalLike) -> Decimal:
    """Konvertiere Eingaben deterministisch in ``Decimal``.

    Floats werden zunächst in Strings umgewandelt, damit ``100.1`` auch als
    ``Decimal("100.1")`` ankommt und nicht als binäre Näherung. ``NaN`` und
    ``Infinity`` sind keine Beträge und werden mit ``ValueError`` abgewiesen.
    """

    if isinstance(value, bool):
        raise TypeError(f"Unsupported decimal input: {type(value)!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        result = Decimal(str(value).strip())
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise TypeError(f"Unsupported decimal input: {type(value)!r}")
    if not result.is_finite():
        raise ValueError(f"Non-finite amount: {value!r}")
    return result


def quantize_money(amount: DecimalLike) -> Decimal:
    """Rundet Beträge auf zwei Nachkommastellen (ROUND_HALF_UP)."""

    return _to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: DecimalLike) -> str:
    return f"{quantize_money(amount):.2f}"


def format_compact(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return format(normalized.quantize(Decimal("1")), "f")
    return format(normalized, "f")


@dataclass(frozen=True, slots=True, order=True)
class TaxCategoryKey:
    """Zusammengesetzter Schlüssel (Steuerkategorie, Prozentsatz).

    ``21``, ``21.0`` und ``21.00`` ergeben denselben Schlüssel, weil der
    Prozentsatz beim Anlegen normalisiert wird.
    """

    tax_category_id: str
    tax_percent: Decimal

    def __post_init__(self) -> None:
        percent = _to_decimal(self.tax_percent)
        object.__setattr__(self, "tax_percent", percent.normalize() if percent else Decimal("0"))

    def label(self) -> str:
        return f"{self.tax_category_id}/{format_compact(self.tax_percent)}"

    def __str__(self) -> str:
        return self.label()


@dataclass(frozen=True, slots=True)
class InvoiceLine:
    """Eine abrechenbare Rechnungszeile, bereits mit aufgelösten Defaults."""

    line_extension_amount: Decimal
    tax_category_id: str
    tax_percent: Decimal
    tax_scheme_id: str = "VAT"
    currency: str = "EUR"
    line_id: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_code: Optional[str] = None
    price_amount: Optional[Decimal] = None
    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_extension_amount", _to_decimal(self.line_extension_amount))
        object.__setattr__(self, "tax_percent", _to_decimal(self.tax_percent))
        if self.quantity is not None:
            object.__setattr__(self, "quantity", _to_decimal(self.quantity))
        if self.price_amount is not None:
            object.__setattr__(self, "price_amount", _to_decimal(self.price_amount))

    @property
    def category_key(self) -> TaxCategoryKey:
        return TaxCategoryKey(self.tax_category_id, self.tax_percent)


@dataclass(slots=True)
class TaxCategoryAggregate:
    key: TaxCategoryKey
    tax_scheme_id: str
    currency: str
    taxable_amount: Decimal = field(default=ZERO)

    def add(self, line: InvoiceLine) -> None:
        self.taxable_amount += line.line_extension_amount


@dataclass(frozen=True, slots=True)
class TaxSubtotal:
    taxable_amount: Decimal
    tax_amount: Decimal
    tax_percent: Decimal
    tax_category_id: str = "S"
    tax_scheme_id: str = "VAT"
    currency: str = "EUR"

    def __post_init__(self) -> None:
        object.__setattr__(self, "taxable_amount", _to_decimal(self.taxable_amount))
        object.__setattr__(self, "tax_amount", _to_decimal(self.tax_amount))
        object.__setattr__(self, "tax_percent", _to_decimal(self.tax_percent))

    @property
    def key(self) -> TaxCategoryKey:
        return TaxCategoryKey(self.tax_category_id, self.tax_percent)


@dataclass(frozen=True, slots=True)
class DeclaredTotals:
    """Vom Aufrufer deklarierte Summen (``LegalMonetaryTotal``), ungeprüft."""

    line_extension_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_inclusive_amount: Decimal
    payable_amount: Decimal
    charge_total_amount: Decimal = ZERO
    allowance_total_amount: Decimal = ZERO
    prepaid_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in (
            "line_extension_amount",
            "tax_exclusive_amount",
            "tax_inclusive_amount",
            "payable_amount",
            "charge_total_amount",
            "allowance_total_amount",
            "prepaid_amount",
        ):
            object.__setattr__(self, name, _to_decimal(getattr(self, name)))

    def to_dict(self) -> dict[str, str]:
        return {
            "line_extension_amount": format_amount(self.line_extension_amount),
            "tax_exclusive_amount": format_amount(self.tax_exclusive_amount),
            "tax_inclusive_amount": format_amount(self.tax_inclusive_amount),
            "charge_total_amount": format_amount(self.charge_total_amount),
            "allowance_total_amount": format_amount(self.allowance_total_amount),
            "prepaid_amount": format_amount(self.prepaid_amount),
            "payable_amount": format_amount(self.payable_amount),
        }


@dataclass(frozen=True, slots=True)
class Address:
    street: str
    postal_code: str
    city: str
    country_code: str
    additional_street: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Party:
    """Geschäftspartner für den Dokumentaufbau; Kennungen werden nicht geprüft."""

    name: str
    address: Address
    endpoint_id: Optional[str] = None
    endpoint_scheme_id: Optional[str] = None
    party_id: Optional[str] = None
    vat_id: Optional[str] = None
    registration_number: Optional[str] = None
    registration_scheme_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
