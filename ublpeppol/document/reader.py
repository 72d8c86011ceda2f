"""Liest deklarierte Werte aus einer bestehenden UBL-Rechnung zurück."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from lxml import etree

from ..accumulator import InvoiceAccumulator
from ..config import EngineSettings
from .builder import NS_CAC, NS_CBC

NS = {"cac": NS_CAC, "cbc": NS_CBC}


class DocumentParseError(ValueError):
    pass


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


def _text(node: etree._Element, path: str) -> Optional[str]:
    value = node.findtext(path, namespaces=NS)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _decimal(node: etree._Element, path: str, *, default: Optional[str] = None) -> Optional[Decimal]:
    raw = _text(node, path)
    if raw is None:
        raw = default
    if raw is None:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation as err:
        raise DocumentParseError(f"Invalid amount in {path}: {raw!r}") from err
    if not value.is_finite():
        raise DocumentParseError(f"Invalid amount in {path}: {raw!r}")
    return value


def _currency(node: etree._Element, path: str) -> Optional[str]:
    element = node.find(path, namespaces=NS)
    if element is None:
        return None
    return element.get("currencyID")


def _read_lines(root: etree._Element) -> List[Dict[str, object]]:
    lines: List[Dict[str, object]] = []
    for line in root.findall("cac:InvoiceLine", namespaces=NS):
        quantity_node = line.find("cbc:InvoicedQuantity", namespaces=NS)
        lines.append(
            {
                "line_id": _text(line, "cbc:ID"),
                "line_extension_amount": _decimal(line, "cbc:LineExtensionAmount"),
                "currency": _currency(line, "cbc:LineExtensionAmount"),
                "quantity": _decimal(line, "cbc:InvoicedQuantity"),
                "unit_code": quantity_node.get("unitCode") if quantity_node is not None else None,
                "price_amount": _decimal(line, "cac:Price/cbc:PriceAmount"),
                "name": _text(line, "cac:Item/cbc:Name"),
                "description": _text(line, "cac:Item/cbc:Description"),
                "tax_category_id": _text(line, "cac:Item/cac:ClassifiedTaxCategory/cbc:ID"),
                "tax_percent": _decimal(line, "cac:Item/cac:ClassifiedTaxCategory/cbc:Percent"),
                "tax_scheme_id": _text(line, "cac:Item/cac:ClassifiedTaxCategory/cac:TaxScheme/cbc:ID"),
            }
        )
    return lines


def _read_tax_subtotals(root: etree._Element) -> List[Dict[str, object]]:
    subtotals: List[Dict[str, object]] = []
    for node in root.findall("cac:TaxTotal/cac:TaxSubtotal", namespaces=NS):
        subtotals.append(
            {
                "taxable_amount": _decimal(node, "cbc:TaxableAmount", default="0"),
                "tax_amount": _decimal(node, "cbc:TaxAmount", default="0"),
                "tax_percent": _decimal(node, "cac:TaxCategory/cbc:Percent"),
                "tax_category_id": _text(node, "cac:TaxCategory/cbc:ID"),
                "tax_scheme_id": _text(node, "cac:TaxCategory/cac:TaxScheme/cbc:ID"),
                "currency": _currency(node, "cbc:TaxAmount"),
            }
        )
    return subtotals


def _read_totals(root: etree._Element) -> Optional[Dict[str, object]]:
    node = root.find("cac:LegalMonetaryTotal", namespaces=NS)
    if node is None:
        return None
    return {
        "line_extension_amount": _decimal(node, "cbc:LineExtensionAmount", default="0"),
        "tax_exclusive_amount": _decimal(node, "cbc:TaxExclusiveAmount", default="0"),
        "tax_inclusive_amount": _decimal(node, "cbc:TaxInclusiveAmount", default="0"),
        "allowance_total_amount": _decimal(node, "cbc:AllowanceTotalAmount", default="0"),
        "charge_total_amount": _decimal(node, "cbc:ChargeTotalAmount", default="0"),
        "prepaid_amount": _decimal(node, "cbc:PrepaidAmount", default="0"),
        "payable_amount": _decimal(node, "cbc:PayableAmount", default="0"),
    }


def read_accumulator(xml_bytes: bytes, *, settings: EngineSettings | None = None) -> InvoiceAccumulator:
    """Baut aus einem UBL-Dokument den Akkumulationszustand für die Prüfung auf.

    Fehlende Abschnitte bleiben leer, sodass die Prüfung den passenden
    Eingabefehler ("no totals", "no VAT totals", ...) meldet.
    """

    try:
        root = etree.fromstring(xml_bytes, parser=_parser())
    except etree.XMLSyntaxError as err:
        raise DocumentParseError(f"XML parse error – {err}") from err

    if etree.QName(root).localname != "Invoice":
        raise DocumentParseError("Root element must be 'Invoice'")

    accumulator = InvoiceAccumulator(settings=settings)
    for index, line in enumerate(_read_lines(root), start=1):
        try:
            accumulator.add_line(line)
        except ValueError as err:
            raise DocumentParseError(f"InvoiceLine {index}: {err}") from err

    for node in root.findall("cac:AllowanceCharge", namespaces=NS):
        amount = _decimal(node, "cbc:Amount", default="0")
        is_charge = (_text(node, "cbc:ChargeIndicator") or "").lower() == "true"
        accumulator.record_allowance_charge(is_charge=is_charge, amount=amount)

    subtotals = _read_tax_subtotals(root)
    if subtotals:
        accumulator.set_tax_totals(subtotals)

    totals = _read_totals(root)
    if totals is not None:
        accumulator.set_totals(totals)
    return accumulator
