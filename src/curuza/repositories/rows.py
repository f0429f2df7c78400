from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
import uuid

from curuza.domain.models import (
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

PRODUCT_COLUMNS = (
    "id, name, purchase_price, sale_price, current_stock, additional_costs, created_by, created_at, updated_at"
)
TRANSACTION_COLUMNS = (
    "id, product_id, quantity, transaction_type, transaction_date, notes, created_by, created_at"
)
CUSTOMER_COLUMNS = "id, name, contact, email, created_by, created_at"
SALE_COLUMNS = (
    "id, customer_id, customer_name, sale_date, total_amount, discount_amount, "
    "payment_method, payment_status, notes, created_by, created_at"
)
SALE_ITEM_COLUMNS = "id, sale_id, product_id, quantity, price, discount"
PLAN_COLUMNS = "id, name, planned_date, status, notes, created_by, created_at, total_cost"
PLAN_ITEM_COLUMNS = "id, purchase_plan_id, product_id, prod_name, quantity, unit_price, created_by"


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _dec(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def dump_additional_costs(costs) -> str:
    return json.dumps([{"title": c.title, "price": str(c.price)} for c in costs], ensure_ascii=False)


def load_additional_costs(raw: str | None) -> tuple[AdditionalCost, ...]:
    if not raw:
        return ()
    return tuple(AdditionalCost(title=str(c["title"]), price=_dec(c["price"])) for c in json.loads(raw))


def product_from_row(r) -> Product:
    return Product(
        id=str(r[0]),
        name=str(r[1]),
        purchase_price=_dec(r[2]),
        sale_price=_dec(r[3]),
        current_stock=int(r[4]),
        additional_costs=load_additional_costs(r[5]),
        created_by=str(r[6]),
        created_at=str(r[7]),
        updated_at=str(r[8]),
    )


def transaction_from_row(r) -> InventoryTransaction:
    return InventoryTransaction(
        id=str(r[0]),
        product_id=str(r[1]),
        quantity=int(r[2]),
        transaction_type=str(r[3]),
        transaction_date=str(r[4]),
        notes=r[5],
        created_by=str(r[6]),
        created_at=str(r[7]),
    )


def customer_from_row(r) -> Customer:
    return Customer(
        id=str(r[0]),
        name=str(r[1]),
        contact=r[2],
        email=r[3],
        created_by=str(r[4]),
        created_at=str(r[5]),
    )


def sale_item_from_row(r) -> SaleItem:
    return SaleItem(
        id=str(r[0]),
        sale_id=str(r[1]),
        product_id=str(r[2]),
        quantity=int(r[3]),
        price=_dec(r[4]),
        discount=_dec(r[5]),
    )


def sale_from_row(r, items=()) -> Sale:
    return Sale(
        id=str(r[0]),
        customer_id=(str(r[1]) if r[1] is not None else None),
        customer_name=str(r[2]),
        sale_date=str(r[3]),
        total_amount=_dec(r[4]),
        discount_amount=_dec(r[5]),
        payment_method=str(r[6]),
        payment_status=str(r[7]),
        notes=r[8],
        created_by=str(r[9]),
        created_at=str(r[10]),
        items=tuple(items),
    )


def plan_from_row(r) -> PurchasePlan:
    return PurchasePlan(
        id=str(r[0]),
        name=str(r[1]),
        planned_date=str(r[2]),
        status=str(r[3]),
        notes=str(r[4] or ""),
        created_by=str(r[5]),
        created_at=str(r[6]),
        total_cost=_dec(r[7]),
    )


def plan_item_from_row(r) -> PurchasePlanItem:
    return PurchasePlanItem(
        id=str(r[0]),
        purchase_plan_id=str(r[1]),
        product_id=(str(r[2]) if r[2] is not None else None),
        prod_name=str(r[3]),
        quantity=int(r[4]),
        unit_price=_dec(r[5]),
        created_by=str(r[6]),
    )


def user_role_from_row(r) -> UserRole:
    return UserRole(user_id=str(r[0]), role=str(r[1]), created_at=str(r[2]))
