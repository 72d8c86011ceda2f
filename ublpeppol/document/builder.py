"""UBL 2.1 / Peppol BIS Billing 3.0 Dokumentaufbau (lxml).

Der Builder schreibt die Elemente in Aufrufreihenfolge und hält parallel
alles, was für die Summenprüfung relevant ist, in einem
:class:`~ublpeppol.accumulator.InvoiceAccumulator` fest. Geschäftsregeln prüft
er nicht selbst; :meth:`UblInvoiceBuilder.validate` delegiert an den
:class:`~ublpeppol.validation.TotalsReconciler`.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from lxml import etree

from ..accumulator import CalculatedTotals, InvoiceAccumulator, LineInput, SubtotalInput, TotalsInput
from ..config import EngineSettings
from ..dto import ZERO, Address, DecimalLike, Party, format_amount, format_compact
from ..logging import log_operation
from ..validation.result import ValidationResult

logger = logging.getLogger(__name__)

NS_INVOICE = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
NS_CAC = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
NS_CBC = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
NSMAP = {None: NS_INVOICE, "cac": NS_CAC, "cbc": NS_CBC}

PEPPOL_CUSTOMIZATION_ID = "urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0"
PEPPOL_PROFILE_ID = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
INVOICE_TYPE_COMMERCIAL = "380"

_PREFIXES = {"cac": NS_CAC, "cbc": NS_CBC}


class DocumentStateError(RuntimeError):
    pass


class InvoiceValidationError(ValueError):
    """Wird von :meth:`UblInvoiceBuilder.generate_xml` bei ungültigen Summen geworfen."""

    def __init__(self, result: ValidationResult) -> None:
        super().__init__(result.format_diagnostic())
        self.result = result


def _qname(prefix: str, name: str) -> str:
    return f"{{{_PREFIXES[prefix]}}}{name}"


def _format_date(value: date | datetime | str) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


class UblInvoiceBuilder:
    """Baut eine UBL-Rechnung auf und protokolliert die Werte für die Prüfung."""

    def __init__(
        self,
        *,
        accumulator: InvoiceAccumulator | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._accumulator = accumulator or InvoiceAccumulator(settings=settings)
        self._root: Optional[etree._Element] = None

    @property
    def accumulator(self) -> InvoiceAccumulator:
        return self._accumulator

    @property
    def root(self) -> etree._Element:
        if self._root is None:
            raise DocumentStateError("Document is not initialized. Call create_document() first.")
        return self._root

    # --------------------------------------------------------------- helpers

    def _add(
        self,
        parent: etree._Element,
        prefix: str,
        name: str,
        value: Optional[str] = None,
        attributes: Mapping[str, str] | None = None,
    ) -> etree._Element:
        element = etree.SubElement(parent, _qname(prefix, name))
        if value is not None:
            element.text = value
        for key, attr_value in (attributes or {}).items():
            element.set(key, attr_value)
        return element

    def _add_amount(self, parent: etree._Element, name: str, amount: DecimalLike, currency: str) -> etree._Element:
        return self._add(parent, "cbc", name, format_amount(amount), {"currencyID": currency})

    def _add_tax_category(
        self,
        parent: etree._Element,
        element_name: str,
        category_id: str,
        percent: DecimalLike,
        scheme_id: str,
    ) -> etree._Element:
        category = self._add(parent, "cac", element_name)
        self._add(category, "cbc", "ID", category_id)
        self._add(category, "cbc", "Percent", format_amount(percent))
        scheme = self._add(category, "cac", "TaxScheme")
        self._add(scheme, "cbc", "ID", scheme_id)
        return category

    def _currency(self, currency: Optional[str]) -> str:
        return currency or self._accumulator.settings.default_currency

    # ------------------------------------------------------------- document

    def create_document(self) -> "UblInvoiceBuilder":
        if self._root is not None:
            raise DocumentStateError(
                "Document is already initialized. Avoid initializing the document multiple times."
            )
        self._root = etree.Element(f"{{{NS_INVOICE}}}Invoice", nsmap=NSMAP)
        return self

    def add_invoice_header(
        self,
        invoice_number: str,
        issue_date: date | datetime | str,
        due_date: date | datetime | str | None = None,
        *,
        currency: Optional[str] = None,
        invoice_type_code: str = INVOICE_TYPE_COMMERCIAL,
        accounting_cost: Optional[str] = None,
    ) -> "UblInvoiceBuilder":
        root = self.root
        self._add(root, "cbc", "CustomizationID", PEPPOL_CUSTOMIZATION_ID)
        self._add(root, "cbc", "ProfileID", PEPPOL_PROFILE_ID)
        self._add(root, "cbc", "ID", invoice_number.strip())
        self._add(root, "cbc", "IssueDate", _format_date(issue_date))
        if due_date is not None:
            self._add(root, "cbc", "DueDate", _format_date(due_date))
        self._add(root, "cbc", "InvoiceTypeCode", invoice_type_code)
        self._add(root, "cbc", "DocumentCurrencyCode", self._currency(currency))
        if accounting_cost:
            self._add(root, "cbc", "AccountingCost", accounting_cost)
        return self

    def add_buyer_reference(self, buyer_reference: str) -> "UblInvoiceBuilder":
        self._add(self.root, "cbc", "BuyerReference", buyer_reference)
        return self

    def add_order_reference(self, order_number: str) -> "UblInvoiceBuilder":
        reference = self._add(self.root, "cac", "OrderReference")
        self._add(reference, "cbc", "ID", order_number)
        return self

    def add_additional_document_reference(
        self, document_id: str, document_type: Optional[str] = None
    ) -> "UblInvoiceBuilder":
        reference = self._add(self.root, "cac", "AdditionalDocumentReference")
        self._add(reference, "cbc", "ID", document_id)
        if document_type:
            self._add(reference, "cbc", "DocumentDescription", document_type)
        return self

    def _add_address(self, parent: etree._Element, name: str, address: Address) -> etree._Element:
        node = self._add(parent, "cac", name)
        self._add(node, "cbc", "StreetName", address.street)
        if address.additional_street:
            self._add(node, "cbc", "AdditionalStreetName", address.additional_street)
        self._add(node, "cbc", "CityName", address.city)
        self._add(node, "cbc", "PostalZone", address.postal_code)
        country = self._add(node, "cac", "Country")
        self._add(country, "cbc", "IdentificationCode", address.country_code)
        return node

    def add_delivery(
        self,
        delivery_date: date | datetime | str,
        *,
        location_id: str,
        address: Address,
        location_scheme_id: Optional[str] = None,
        party_name: Optional[str] = None,
    ) -> "UblInvoiceBuilder":
        """Lieferdatum und Lieferort; ``DeliveryParty`` nur mit ``party_name``."""

        delivery = self._add(self.root, "cac", "Delivery")
        self._add(delivery, "cbc", "ActualDeliveryDate", _format_date(delivery_date))
        location = self._add(delivery, "cac", "DeliveryLocation")
        attributes = {"schemeID": location_scheme_id} if location_scheme_id else None
        self._add(location, "cbc", "ID", location_id, attributes)
        self._add_address(location, "Address", address)
        if party_name:
            party = self._add(delivery, "cac", "DeliveryParty")
            name = self._add(party, "cac", "PartyName")
            self._add(name, "cbc", "Name", party_name)
        return self

    def _add_party(self, wrapper_name: str, party: Party) -> None:
        wrapper = self._add(self.root, "cac", wrapper_name)
        node = self._add(wrapper, "cac", "Party")
        if party.endpoint_id:
            attributes = {"schemeID": party.endpoint_scheme_id} if party.endpoint_scheme_id else None
            self._add(node, "cbc", "EndpointID", party.endpoint_id, attributes)
        if party.party_id:
            identification = self._add(node, "cac", "PartyIdentification")
            self._add(identification, "cbc", "ID", party.party_id)
        party_name = self._add(node, "cac", "PartyName")
        self._add(party_name, "cbc", "Name", party.name)

        self._add_address(node, "PostalAddress", party.address)

        if party.vat_id:
            tax_scheme = self._add(node, "cac", "PartyTaxScheme")
            self._add(tax_scheme, "cbc", "CompanyID", party.vat_id)
            scheme = self._add(tax_scheme, "cac", "TaxScheme")
            self._add(scheme, "cbc", "ID", "VAT")

        legal_entity = self._add(node, "cac", "PartyLegalEntity")
        self._add(legal_entity, "cbc", "RegistrationName", party.name)
        if party.registration_number:
            attributes = {"schemeID": party.registration_scheme_id} if party.registration_scheme_id else None
            self._add(legal_entity, "cbc", "CompanyID", party.registration_number, attributes)

        if party.contact_name or party.contact_phone or party.contact_email:
            contact = self._add(node, "cac", "Contact")
            if party.contact_name:
                self._add(contact, "cbc", "Name", party.contact_name)
            if party.contact_phone:
                self._add(contact, "cbc", "Telephone", party.contact_phone)
            if party.contact_email:
                self._add(contact, "cbc", "ElectronicMail", party.contact_email)

    def add_accounting_supplier_party(self, party: Party) -> "UblInvoiceBuilder":
        self._add_party("AccountingSupplierParty", party)
        return self

    def add_accounting_customer_party(self, party: Party) -> "UblInvoiceBuilder":
        self._add_party("AccountingCustomerParty", party)
        return self

    def add_payment_means(
        self,
        payment_means_code: str,
        *,
        payment_id: Optional[str] = None,
        account_iban: Optional[str] = None,
        account_name: Optional[str] = None,
        bic: Optional[str] = None,
        payment_means_name: Optional[str] = None,
    ) -> "UblInvoiceBuilder":
        means = self._add(self.root, "cac", "PaymentMeans")
        attributes = {"name": payment_means_name} if payment_means_name else None
        self._add(means, "cbc", "PaymentMeansCode", payment_means_code, attributes)
        if payment_id:
            self._add(means, "cbc", "PaymentID", payment_id)
        if account_iban:
            account = self._add(means, "cac", "PayeeFinancialAccount")
            self._add(account, "cbc", "ID", account_iban)
            if account_name:
                self._add(account, "cbc", "Name", account_name)
            if bic:
                branch = self._add(account, "cac", "FinancialInstitutionBranch")
                self._add(branch, "cbc", "ID", bic)
        return self

    def add_payment_terms(self, note: Optional[str] = None) -> "UblInvoiceBuilder":
        terms = self._add(self.root, "cac", "PaymentTerms")
        if note:
            self._add(terms, "cbc", "Note", note)
        return self

    def add_allowance_charge(
        self,
        *,
        is_charge: bool,
        amount: DecimalLike,
        reason: str,
        tax_category_id: str,
        tax_percent: DecimalLike,
        currency: Optional[str] = None,
    ) -> "UblInvoiceBuilder":
        node = self._add(self.root, "cac", "AllowanceCharge")
        self._add(node, "cbc", "ChargeIndicator", "true" if is_charge else "false")
        self._add(node, "cbc", "AllowanceChargeReason", reason)
        self._add_amount(node, "Amount", amount, self._currency(currency))
        self._add_tax_category(
            node,
            "TaxCategory",
            tax_category_id,
            tax_percent,
            self._accumulator.settings.default_tax_scheme_id,
        )
        self._accumulator.record_allowance_charge(is_charge=is_charge, amount=amount)
        return self

    def add_tax_total(self, subtotals: Iterable[SubtotalInput]) -> "UblInvoiceBuilder":
        """Schreibt ``TaxTotal`` neu; ein vorhandenes Element wird ersetzt."""

        root = self.root
        tracked = self._accumulator.set_tax_totals(subtotals)

        for existing in root.findall(_qname("cac", "TaxTotal")):
            root.remove(existing)

        tax_total = etree.Element(_qname("cac", "TaxTotal"))
        anchor = root.find(_qname("cac", "LegalMonetaryTotal"))
        if anchor is None:
            anchor = root.find(_qname("cac", "InvoiceLine"))
        if anchor is not None:
            anchor.addprevious(tax_total)
        else:
            root.append(tax_total)

        total_tax = sum((s.tax_amount for s in tracked), ZERO)
        currency = tracked[0].currency if tracked else self._currency(None)
        self._add_amount(tax_total, "TaxAmount", total_tax, currency)
        for subtotal in tracked:
            node = self._add(tax_total, "cac", "TaxSubtotal")
            self._add_amount(node, "TaxableAmount", subtotal.taxable_amount, subtotal.currency)
            self._add_amount(node, "TaxAmount", subtotal.tax_amount, subtotal.currency)
            self._add_tax_category(
                node,
                "TaxCategory",
                subtotal.tax_category_id,
                subtotal.tax_percent,
                subtotal.tax_scheme_id,
            )
        return self

    def add_legal_monetary_total(self, totals: TotalsInput, currency: Optional[str] = None) -> "UblInvoiceBuilder":
        declared = self._accumulator.set_totals(totals)
        currency = self._currency(currency)

        node = self._add(self.root, "cac", "LegalMonetaryTotal")
        self._add_amount(node, "LineExtensionAmount", declared.line_extension_amount, currency)
        self._add_amount(node, "TaxExclusiveAmount", declared.tax_exclusive_amount, currency)
        self._add_amount(node, "TaxInclusiveAmount", declared.tax_inclusive_amount, currency)
        if declared.allowance_total_amount:
            self._add_amount(node, "AllowanceTotalAmount", declared.allowance_total_amount, currency)
        if declared.charge_total_amount:
            self._add_amount(node, "ChargeTotalAmount", declared.charge_total_amount, currency)
        if declared.prepaid_amount:
            self._add_amount(node, "PrepaidAmount", declared.prepaid_amount, currency)
        self._add_amount(node, "PayableAmount", declared.payable_amount, currency)
        return self

    def add_invoice_line(self, data: LineInput) -> "UblInvoiceBuilder":
        root = self.root
        line = self._accumulator.add_line(data)
        extras: Mapping[str, Any] = data if isinstance(data, Mapping) else {}
        line_no = len(self._accumulator.lines)

        node = self._add(root, "cac", "InvoiceLine")
        self._add(node, "cbc", "ID", line.line_id or str(line_no))
        if line.quantity is not None:
            attributes = {"unitCode": line.unit_code} if line.unit_code else None
            self._add(node, "cbc", "InvoicedQuantity", format_compact(line.quantity), attributes)
        self._add_amount(node, "LineExtensionAmount", line.line_extension_amount, line.currency)

        if extras.get("accounting_cost"):
            self._add(node, "cbc", "AccountingCost", str(extras["accounting_cost"]))
        if extras.get("order_line_id"):
            reference = self._add(node, "cac", "OrderLineReference")
            self._add(reference, "cbc", "LineID", str(extras["order_line_id"]))

        item = self._add(node, "cac", "Item")
        if line.description:
            self._add(item, "cbc", "Description", line.description)
        self._add(item, "cbc", "Name", line.name or line.description or f"Line {line_no}")
        self._add_tax_category(
            item,
            "ClassifiedTaxCategory",
            line.tax_category_id,
            line.tax_percent,
            line.tax_scheme_id,
        )

        price_amount = line.price_amount if line.price_amount is not None else line.line_extension_amount
        price = self._add(node, "cac", "Price")
        self._add_amount(price, "PriceAmount", price_amount, line.currency)
        if line.unit_code:
            self._add(price, "cbc", "BaseQuantity", "1", {"unitCode": line.unit_code})
        return self

    # ----------------------------------------------------------- operations

    def validate(self) -> ValidationResult:
        return self._accumulator.validate()

    def calculate_totals(self) -> CalculatedTotals:
        return self._accumulator.calculate_totals()

    def generate_xml(self, validate_first: bool = False) -> bytes:
        root = self.root
        with log_operation("invoice.generate_xml", validate_first=validate_first) as event:
            if validate_first:
                result = self.validate()
                if not result.is_valid:
                    logger.warning(
                        "XML generation aborted, invoice totals invalid",
                        extra={"event": {"errors": len(result.errors)}},
                    )
                    raise InvoiceValidationError(result)
            xml = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)
            event["lines"] = len(self._accumulator.lines)
            event["bytes"] = len(xml)
        return xml
