from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

TRANSACTION_TYPES = ("in", "out")
PAYMENT_METHODS = ("cash", "card", "transfer", "other")
PAYMENT_STATUSES = ("paid", "pending", "partial")
PLAN_STATUSES = ("draft", "scheduled", "completed", "cancelled")
ROLES = ("admin", "user")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class AdditionalCost:
    title: str
    price: Decimal


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    purchase_price: Decimal
    sale_price: Decimal
    current_stock: int
    created_by: str
    created_at: str
    updated_at: str
    additional_costs: tuple[AdditionalCost, ...] = ()

    @property
    def total_additional_costs(self) -> Decimal:
        return sum((c.price for c in self.additional_costs), Decimal("0.00"))


@dataclass(frozen=True)
class InventoryTransaction:
    id: str
    product_id: str
    quantity: int
    transaction_type: str
    transaction_date: str
    notes: Optional[str]
    created_by: str
    created_at: str

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.transaction_type == "in" else -self.quantity


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    contact: Optional[str]
    email: Optional[str]
    created_by: str
    created_at: str


@dataclass(frozen=True)
class SaleItem:
    id: str
    sale_id: str
    product_id: str
    quantity: int
    price: Decimal
    discount: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity - self.discount


@dataclass(frozen=True)
class Sale:
    id: str
    customer_id: Optional[str]
    customer_name: str
    sale_date: str
    total_amount: Decimal
    discount_amount: Decimal
    payment_method: str
    payment_status: str
    notes: Optional[str]
    created_by: str
    created_at: str
    items: tuple[SaleItem, ...] = ()


@dataclass(frozen=True)
class PurchasePlanItem:
    id: str
    purchase_plan_id: str
    product_id: Optional[str]
    prod_name: str
    quantity: int
    unit_price: Decimal
    created_by: str

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PurchasePlan:
    id: str
    name: str
    planned_date: str
    status: str
    notes: str
    created_by: str
    created_at: str
    total_cost: Decimal


@dataclass(frozen=True)
class UserRole:
    user_id: str
    role: str
    created_at: str


@dataclass(frozen=True)
class LedgerDrift:
    product_id: str
    name: str
    current_stock: int
    replayed_stock: int


@dataclass(frozen=True)
class DashboardStats:
    total_sales: Decimal
    total_profit: Decimal
    total_products: int
    low_stock_count: int


@dataclass(frozen=True)
class SalesByPeriod:
    date: str
    total: Decimal
    profit: Decimal


@dataclass(frozen=True)
class TopProduct:
    product_id: str
    name: str
    units_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class ProductValuation:
    product_id: str
    name: str
    current_stock: int
    stock_value: Decimal
    potential_revenue: Decimal
    potential_profit: Decimal


@dataclass(frozen=True)
class MonthlyUnits:
    month: str
    units: int
    revenue: Decimal


@dataclass(frozen=True)
class ProductMetrics:
    product_id: str
    total_sales: int
    total_units: int
    total_revenue: Decimal
    total_cost: Decimal
    total_profit: Decimal
    average_sale_price: Decimal
    profit_margin: Decimal
    total_stock_in: int
    total_stock_out: int
    stock_turnover_rate: Decimal
    last_stock_in: Optional[str]
    last_stock_out: Optional[str]
    best_sale_day: Optional[str]
    best_sale_day_revenue: Decimal
    monthly_breakdown: list[MonthlyUnits] = field(default_factory=list)
