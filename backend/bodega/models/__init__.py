from .auth import User, SessionToken, USER_ROLES
from .warehouses import Warehouse, WAREHOUSE_TYPES, SUB_WAREHOUSE_TYPES
from .catalog import Product, ProductPrice, ProductSerial, PRODUCT_TYPES, SERIAL_STATUSES
from .inventory import Inventory, InventoryMovement, MOVEMENT_TYPES
from .transfers import TransferOrder, DocumentSequence, TRANSFER_STATUSES

__all__ = [
    'User', 'SessionToken',
    'Warehouse',
    'Product', 'ProductPrice', 'ProductSerial',
    'Inventory', 'InventoryMovement',
    'TransferOrder', 'DocumentSequence',
    'USER_ROLES', 'WAREHOUSE_TYPES', 'SUB_WAREHOUSE_TYPES', 'PRODUCT_TYPES',
    'SERIAL_STATUSES', 'MOVEMENT_TYPES', 'TRANSFER_STATUSES',
]
