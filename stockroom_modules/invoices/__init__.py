from stockroom_modules.invoices.service import (
    FinalizedInvoice,
    InvoiceService,
    InvoiceTotals,
    VoidedInvoice,
    calculate_totals,
)

__all__ = [
    "FinalizedInvoice",
    "InvoiceService",
    "InvoiceTotals",
    "VoidedInvoice",
    "calculate_totals",
]
