from .access_policy import AccessPolicy
from .ledger_service import StockLedger
from .inventory_service import InventoryService
from .sales_service import SalesService
from .customer_service import CustomerService
from .purchase_plan_service import PurchasePlanService
from .reporting_service import ReportingService
from .session_service import SessionService

__all__ = [
    "AccessPolicy",
    "StockLedger",
    "InventoryService",
    "SalesService",
    "CustomerService",
    "PurchasePlanService",
    "ReportingService",
    "SessionService",
]
