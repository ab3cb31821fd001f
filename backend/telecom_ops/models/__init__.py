from .auth import User, SessionToken
from .employees import Employee
from .catalog import Article, StockMovement
from .clients import Client
from .documents import DocumentSequence
from .sales import Sale, SaleItem, SaleFlag
from .invoices import Invoice
from .warehouse import WarehouseOrder, WarehouseOrderItem
from .reports import Report

__all__ = [
    'User', 'SessionToken',
    'Employee',
    'Article', 'StockMovement',
    'Client',
    'DocumentSequence',
    'Sale', 'SaleItem', 'SaleFlag',
    'Invoice',
    'WarehouseOrder', 'WarehouseOrderItem',
    'Report',
]
