"""Tests for recording invoice state and computing totals from it."""

from __future__ import annotations

from decimal import Decimal

import pytest

from ublpeppol.accumulator import InvoiceAccumulator
from ublpeppol.config import EngineSettings
from ublpeppol.dto import DeclaredTotals, InvoiceLine, TaxCategoryKey

from invoice_factories import make_subtotal, make_totals


def test_line_without_tax_details_uses_configured_defaults(accumulator: InvoiceAccumulator) -> None:
    line = accumulator.add_line({"line_extension_amount": "100.00"})

    assert line.category_key == TaxCategoryKey("S", Decimal("21"))
    assert line.tax_scheme_id == "VAT"
    assert line.currency == "EUR"


def test_blank_strings_count_as_missing(accumulator: InvoiceAccumulator) -> None:
    line = accumulator.add_line(
        {"line_extension_amount": "10", "tax_category_id": " ", "tax_percent": "", "currency": ""}
    )

    assert line.tax_category_id == "S"
    assert line.tax_percent == Decimal("21")
    assert line.currency == "EUR"


def test_defaults_follow_settings() -> None:
    custom = EngineSettings(
        default_tax_category_id="S",
        default_tax_percent=Decimal("19"),
        default_tax_scheme_id="VAT",
        default_currency="EUR",
        log_level="INFO",
    )
    acc = InvoiceAccumulator(settings=custom)

    line = acc.add_line({"line_extension_amount": "100.00"})

    assert line.category_key.label() == "S/19"


def test_explicit_zero_percent_is_kept(accumulator: InvoiceAccumulator) -> None:
    line = accumulator.add_line({"line_extension_amount": "100.00", "tax_category_id": "Z", "tax_percent": 0})

    assert line.category_key.label() == "Z/0"


def test_line_amount_is_derived_from_price_and_quantity(accumulator: InvoiceAccumulator) -> None:
    line = accumulator.add_line({"price_amount": "50.00", "quantity": "3", "unit_code": "C62", "id": 7})

    assert line.line_extension_amount == Decimal("150.00")
    assert line.line_id == "7"
    assert line.unit_code == "C62"


def test_explicit_line_amount_wins_over_price_and_quantity(accumulator: InvoiceAccumulator) -> None:
    line = accumulator.add_line({"line_extension_amount": "140.00", "price_amount": "50.00", "quantity": "3"})

    assert line.line_extension_amount == Decimal("140.00")


@pytest.mark.parametrize(
    "data",
    [{}, {"price_amount": "50.00"}, {"quantity": "3"}, {"line_extension_amount": "", "quantity": "2"}],
    ids=["nothing", "price_only", "quantity_only", "blank_amount"],
)
def test_line_without_amount_is_rejected(accumulator: InvoiceAccumulator, data: dict) -> None:
    with pytest.raises(ValueError, match="line_extension_amount"):
        accumulator.add_line(data)

    assert accumulator.lines == ()


def test_invoice_line_instances_are_recorded_as_is(accumulator: InvoiceAccumulator) -> None:
    line = InvoiceLine(line_extension_amount=Decimal("5"), tax_category_id="AE", tax_percent=Decimal("0"))

    recorded = accumulator.add_line(line)

    assert recorded is line
    assert accumulator.lines == (line,)


def test_set_totals_accepts_mapping(accumulator: InvoiceAccumulator) -> None:
    totals = accumulator.set_totals(
        {
            "line_extension_amount": "150.00",
            "tax_exclusive_amount": "150.00",
            "tax_inclusive_amount": "181.50",
            "payable_amount": "181.50",
        }
    )

    assert isinstance(totals, DeclaredTotals)
    assert totals.prepaid_amount == Decimal("0")
    assert accumulator.declared_totals is totals


def test_set_tax_totals_replaces_previous(accumulator: InvoiceAccumulator) -> None:
    accumulator.set_tax_totals([make_subtotal("100.00", "21.00")])
    accumulator.set_tax_totals([{"taxable_amount": "50.00", "tax_amount": "3.00", "tax_percent": "6"}])

    subtotals = accumulator.declared_tax_subtotals
    assert len(subtotals) == 1
    assert subtotals[0].key.label() == "S/6"
    assert subtotals[0].currency == "EUR"


def test_adjustments_are_none_until_recorded(accumulator: InvoiceAccumulator) -> None:
    assert accumulator.allowance_total_amount is None
    assert accumulator.charge_total_amount is None
    assert accumulator.prepaid_amount is None

    accumulator.record_allowance_charge(is_charge=False, amount="4.00")
    accumulator.record_allowance_charge(is_charge=False, amount="6.00")
    accumulator.record_allowance_charge(is_charge=True, amount="5.00")
    accumulator.set_prepaid_amount("50")

    assert accumulator.allowance_total_amount == Decimal("10.00")
    assert accumulator.charge_total_amount == Decimal("5.00")
    assert accumulator.prepaid_amount == Decimal("50")


def test_calculate_totals_from_lines(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_lines(
        [
            {"line_extension_amount": "100.00", "tax_percent": "21"},
            {"line_extension_amount": "50.00", "tax_percent": "6"},
        ]
    )

    calculated = accumulator.calculate_totals()

    assert calculated.totals.line_extension_amount == Decimal("150.00")
    assert calculated.totals.tax_exclusive_amount == Decimal("150.00")
    assert calculated.totals.tax_inclusive_amount == Decimal("174.00")
    assert calculated.totals.payable_amount == Decimal("174.00")
    assert calculated.total_tax_amount == Decimal("24.00")
    assert [s.key.label() for s in calculated.tax_subtotals] == ["S/21", "S/6"]


def test_calculate_totals_uses_tracked_adjustments(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_lines([{"line_extension_amount": "100.00"}, {"line_extension_amount": "50.00"}])
    accumulator.record_allowance_charge(is_charge=False, amount="10.00")
    accumulator.record_allowance_charge(is_charge=True, amount="5.00")
    accumulator.set_prepaid_amount("50.00")

    totals = accumulator.calculate_totals().totals

    assert totals.tax_exclusive_amount == Decimal("145.00")
    assert totals.tax_inclusive_amount == Decimal("176.50")
    assert totals.payable_amount == Decimal("126.50")
    assert totals.allowance_total_amount == Decimal("10.00")


def test_calculate_totals_falls_back_to_declared_adjustments(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_line({"line_extension_amount": "100.00"})
    accumulator.set_totals(make_totals("100.00", "90.00", "111.00", "111.00", allowance="10.00"))

    totals = accumulator.calculate_totals().totals

    assert totals.tax_exclusive_amount == Decimal("90.00")
    # VAT is computed on the line amounts only
    assert totals.tax_inclusive_amount == Decimal("111.00")


def test_calculate_totals_without_lines(accumulator: InvoiceAccumulator) -> None:
    calculated = accumulator.calculate_totals()

    assert calculated.tax_subtotals == ()
    assert calculated.totals.payable_amount == Decimal("0.00")


def test_calculated_totals_to_dict(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_lines([{"line_extension_amount": "100.00"}, {"line_extension_amount": "50.00"}])

    payload = accumulator.calculate_totals().to_dict()

    assert payload["totals"]["payable_amount"] == "181.50"
    assert payload["tax_totals"] == [
        {
            "taxable_amount": "150.00",
            "tax_amount": "31.50",
            "tax_percent": "21.00",
            "tax_category_id": "S",
            "tax_scheme_id": "VAT",
            "currency": "EUR",
        }
    ]
    assert payload["total_tax_amount"] == "31.50"


def test_calculated_totals_validate_cleanly(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_lines(
        [
            {"line_extension_amount": "19.99", "tax_percent": "7"},
            {"line_extension_amount": "0.333", "tax_percent": "21"},
            {"line_extension_amount": "42.00", "tax_category_id": "Z", "tax_percent": "0"},
        ]
    )
    calculated = accumulator.calculate_totals()

    accumulator.set_totals(calculated.totals)
    accumulator.set_tax_totals(calculated.tax_subtotals)

    assert accumulator.validate().is_valid


@pytest.mark.parametrize(
    "with_lines, with_totals, with_subtotals, expected",
    [
        (False, True, True, "no invoice lines"),
        (True, False, True, "no totals"),
        (True, True, False, "no VAT totals"),
        (False, False, False, "no invoice lines"),
    ],
)
def test_validate_reports_first_missing_input(
    accumulator: InvoiceAccumulator, with_lines: bool, with_totals: bool, with_subtotals: bool, expected: str
) -> None:
    if with_lines:
        accumulator.add_line({"line_extension_amount": "100.00"})
    if with_totals:
        accumulator.set_totals(make_totals("100.00", "100.00", "121.00", "121.00"))
    if with_subtotals:
        accumulator.set_tax_totals([make_subtotal("100.00", "21.00")])

    result = accumulator.validate()

    assert result.errors == (expected,)


def test_validate_uses_recorded_allowance(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_lines([{"line_extension_amount": "100.00"}, {"line_extension_amount": "50.00"}])
    accumulator.record_allowance_charge(is_charge=False, amount="10.00")
    accumulator.set_totals(make_totals("150.00", "140.00", "171.50", "171.50", allowance="10.00"))
    accumulator.set_tax_totals([make_subtotal("150.00", "31.50")])

    result = accumulator.validate()

    assert result.is_valid
    assert result.warnings == ()


@pytest.mark.parametrize("percent", [None, "", "  "], ids=["none", "empty", "blank"])
def test_blank_subtotal_percent_uses_configured_default(accumulator: InvoiceAccumulator, percent) -> None:
    subtotals = accumulator.set_tax_totals(
        [{"taxable_amount": "100.00", "tax_amount": "21.00", "tax_percent": percent}]
    )

    assert subtotals[0].key == TaxCategoryKey("S", Decimal("21"))


def test_blank_subtotal_percent_matches_line_default(accumulator: InvoiceAccumulator) -> None:
    accumulator.add_line({"line_extension_amount": "100.00", "tax_percent": None})
    accumulator.set_totals(make_totals("100.00", "100.00", "121.00", "121.00"))
    accumulator.set_tax_totals([{"taxable_amount": "100.00", "tax_amount": "21.00", "tax_percent": None}])

    assert accumulator.validate().is_valid


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", Decimal("NaN"), float("inf")])
def test_non_finite_line_amount_is_rejected(accumulator: InvoiceAccumulator, amount) -> None:
    with pytest.raises(ValueError, match="Non-finite"):
        accumulator.add_line({"line_extension_amount": amount})

    assert accumulator.lines == ()


def test_non_finite_declared_total_is_rejected(accumulator: InvoiceAccumulator) -> None:
    with pytest.raises(ValueError, match="Non-finite"):
        accumulator.set_totals(make_totals("NaN", "100.00", "121.00", "121.00"))
