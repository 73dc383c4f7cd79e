from .auth import User, SessionToken
from .inventory import Product
from .invoices import Invoice, InvoiceLine
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken',
    'Product',
    'Invoice', 'InvoiceLine',
    'DocumentSequence',
]
