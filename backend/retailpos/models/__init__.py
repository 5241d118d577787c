from .catalog import Product, Variant, Supplier
from .settings import ShopSettings
from .sales import Sale, SaleItem
from .purchases import Purchase, PurchaseItem
from .inventory import StockAdjustment
from .audit import AuditLog

__all__ = [
    'Product', 'Variant', 'Supplier',
    'ShopSettings',
    'Sale', 'SaleItem',
    'Purchase', 'PurchaseItem',
    'StockAdjustment',
    'AuditLog',
]
