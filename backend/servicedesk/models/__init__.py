from .tenancy import Company, Client
from .inventory import Product, InventoryMovement
from .billing import Quote, QuoteItem, Invoice, InvoiceItem, Payment
from .documents import DocumentSequence

__all__ = [
    'Company', 'Client',
    'Product', 'InventoryMovement',
    'Quote', 'QuoteItem', 'Invoice', 'InvoiceItem', 'Payment',
    'DocumentSequence',
]
