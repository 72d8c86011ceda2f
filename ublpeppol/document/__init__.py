"""UBL (Peppol BIS Billing 3.0) Dokumentaufbau und Rücklesen."""

from .builder import (
    NS_CAC,
    NS_CBC,
    NS_INVOICE,
    PEPPOL_CUSTOMIZATION_ID,
    PEPPOL_PROFILE_ID,
    DocumentStateError,
    InvoiceValidationError,
    UblInvoiceBuilder,
)
from .reader import DocumentParseError, read_accumulator

__all__ = [
    "NS_CAC",
    "NS_CBC",
    "NS_INVOICE",
    "PEPPOL_CUSTOMIZATION_ID",
    "PEPPOL_PROFILE_ID",
    "DocumentStateError",
    "InvoiceValidationError",
    "UblInvoiceBuilder",
    "DocumentParseError",
    "read_accumulator",
]
