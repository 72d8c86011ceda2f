"""Shared fixtures for the ublpeppol tests."""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from ublpeppol.accumulator import InvoiceAccumulator
from ublpeppol.config import EngineSettings
from ublpeppol.dto import DeclaredTotals, InvoiceLine, TaxSubtotal
from ublpeppol.logging import LOGGER_NAME

from invoice_factories import make_line, make_subtotal, make_totals


@pytest.fixture
def engine_settings() -> EngineSettings:
    # Explicit values so UBLPEPPOL_* variables of the host cannot leak in
    return EngineSettings(
        default_tax_category_id="S",
        default_tax_percent=Decimal("21"),
        default_tax_scheme_id="VAT",
        default_currency="EUR",
        amount_tolerance=Decimal("0.005"),
        log_level="INFO",
    )


@pytest.fixture
def accumulator(engine_settings: EngineSettings) -> InvoiceAccumulator:
    return InvoiceAccumulator(settings=engine_settings)


@pytest.fixture
def scenario_a_lines() -> list[InvoiceLine]:
    return [make_line("100.00"), make_line("50.00")]


@pytest.fixture
def scenario_a_totals() -> DeclaredTotals:
    return make_totals("150.00", "150.00", "181.50", "181.50")


@pytest.fixture
def scenario_a_subtotals() -> list[TaxSubtotal]:
    return [make_subtotal("150.00", "31.50")]


@pytest.fixture
def restore_package_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
