"""Business services for the stockroom lists: parts, transactions, invoices, dashboard."""
