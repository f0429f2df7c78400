from __future__ import annotations


class AppError(Exception):
    """Base app error.

    ``category`` tells the caller which kind of message to render:
    validation, not_found, conflict, authorization or unavailable.
    """

    category = "error"


class ValidationError(AppError):
    category = "validation"


class NotFoundError(AppError):
    category = "not_found"


class AuthorizationError(AppError):
    category = "authorization"


class IdentityUnavailableError(AppError):
    category = "unavailable"


class ConflictError(AppError):
    category = "conflict"


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: str, requested: int, available: int, name: str | None = None):
        label = name or product_id
        super().__init__(f"Not enough stock for {label}. Requested: {requested}, available: {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class HasSalesHistoryError(ConflictError):
    def __init__(self, product_id: str):
        super().__init__("This product has sales records and cannot be deleted.")
        self.product_id = product_id


class PartialSaleFailure(ConflictError):
    def __init__(self, item_index: int, product_id: str, cause: Exception):
        super().__init__(
            f"Sale rolled back: item #{item_index + 1} (product {product_id}) could not be applied: {cause}"
        )
        self.item_index = item_index
        self.product_id = product_id
        self.cause = cause


class InvalidStateTransitionError(ConflictError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Purchase plan cannot move from '{current}' to '{target}'.")
        self.current = current
        self.target = target
