from .tenancy import Organization, DocumentSequence
from .catalog import Variant, Supplier
from .orders import OrderStatus, Order, OrderLine, OrderStatusHistory
from .purchases import PurchaseInvoice, PurchaseLine, PurchaseAuditEntry

__all__ = [
    'Organization', 'DocumentSequence',
    'Variant', 'Supplier',
    'OrderStatus', 'Order', 'OrderLine', 'OrderStatusHistory',
    'PurchaseInvoice', 'PurchaseLine', 'PurchaseAuditEntry',
]
