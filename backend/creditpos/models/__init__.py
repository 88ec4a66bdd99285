from .inventory import Product, CapitalMovement, CapitalMovementCategory
from .customers import Client
from .sales import Sale, SaleLine, SaleStatus, CreditPayment
from .operations import OperationRecord

__all__ = [
    'Product', 'CapitalMovement', 'CapitalMovementCategory',
    'Client',
    'Sale', 'SaleLine', 'SaleStatus', 'CreditPayment',
    'OperationRecord',
]
