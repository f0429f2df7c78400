from .models import (
    Actor,
    AdditionalCost,
    Customer,
    InventoryTransaction,
    Product,
    PurchasePlan,
    PurchasePlanItem,
    Sale,
    SaleItem,
    UserRole,
)
from .errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    HasSalesHistoryError,
    IdentityUnavailableError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    PartialSaleFailure,
    ValidationError,
)

__all__ = [
    "Actor",
    "AdditionalCost",
    "Customer",
    "InventoryTransaction",
    "Product",
    "PurchasePlan",
    "PurchasePlanItem",
    "Sale",
    "SaleItem",
    "UserRole",
    "AppError",
    "AuthorizationError",
    "ConflictError",
    "HasSalesHistoryError",
    "IdentityUnavailableError",
    "InsufficientStockError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PartialSaleFailure",
    "ValidationError",
]
