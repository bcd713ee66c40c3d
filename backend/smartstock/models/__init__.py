from .catalog import Category, Supplier, Customer, Warehouse, Product
from .auth import User, SessionToken, ROLES
from .stock import ProductStock, StockMovement, MOVEMENT_KINDS
from .documents import PurchaseHeader, PurchaseItem, SaleHeader, SaleItem, DOCUMENT_STATUSES
from .alerts import InventoryAlert, ALERT_KINDS

__all__ = [
    'Category', 'Supplier', 'Customer', 'Warehouse', 'Product',
    'User', 'SessionToken', 'ROLES',
    'ProductStock', 'StockMovement', 'MOVEMENT_KINDS',
    'PurchaseHeader', 'PurchaseItem', 'SaleHeader', 'SaleItem', 'DOCUMENT_STATUSES',
    'InventoryAlert', 'ALERT_KINDS',
]
