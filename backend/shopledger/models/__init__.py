from .stock import StockItem, StockMovement
from .purchases import PurchaseOrder
from .loans import CustomerLoan, CustomerLoanPayment

__all__ = [
    'StockItem', 'StockMovement',
    'PurchaseOrder',
    'CustomerLoan', 'CustomerLoanPayment',
]
