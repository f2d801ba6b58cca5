from .tables import DiningTable, TABLE_STATES
from .catalog import Product, Combo, ComboComponent
from .orders import Order, OrderLine, ORDER_STATES, ORDER_KINDS
from .invoices import Invoice, InvoiceLine, INVOICE_STATES, PAYMENT_METHODS
from .inventory import InventoryRecord, InventoryMovement, MOVEMENT_TYPES
from .documents import DocumentSequence, AuditEvent

__all__ = [
    'DiningTable', 'TABLE_STATES',
    'Product', 'Combo', 'ComboComponent',
    'Order', 'OrderLine', 'ORDER_STATES', 'ORDER_KINDS',
    'Invoice', 'InvoiceLine', 'INVOICE_STATES', 'PAYMENT_METHODS',
    'InventoryRecord', 'InventoryMovement', 'MOVEMENT_TYPES',
    'DocumentSequence', 'AuditEvent',
]
