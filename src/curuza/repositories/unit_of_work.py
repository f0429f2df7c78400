from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Callable, Iterable, Optional, Protocol

from curuza.domain.models import Customer, InventoryTransaction, Product, PurchasePlan, PurchasePlanItem, Sale, SaleItem
from curuza.repositories.rows import (
    CUSTOMER_COLUMNS,
    PLAN_COLUMNS,
    PLAN_ITEM_COLUMNS,
    PRODUCT_COLUMNS,
    customer_from_row,
    dump_additional_costs,
    new_id,
    now_iso,
    plan_from_row,
    plan_item_from_row,
    product_from_row,
)


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_product(self, product_id: str) -> Optional[Product]: ...
    def apply_stock_delta(self, product_id: str, delta: int) -> Optional[int]: ...
    def insert_transaction(self, tx: InventoryTransaction) -> None: ...


class SqliteUnitOfWork:
    """Transactional write scope over one connection.

    ``BEGIN IMMEDIATE`` takes the database write lock up front, so every
    read-check-write inside the block is serialized against other
    processes. The block commits on normal exit and rolls back on any
    exception.
    """

    def __init__(self, connect: Callable[[], sqlite3.Connection]):
        self._connect = connect
        self.conn: sqlite3.Connection | None = None
        self.cur: sqlite3.Cursor | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        self.conn = self._connect()
        self.cur = self.conn.cursor()
        try:
            self.cur.execute("BEGIN IMMEDIATE")
        except sqlite3.Error:
            self.conn.close()
            self.conn = None
            self.cur = None
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.cur.execute("COMMIT")
            elif self.conn.in_transaction:
                self.cur.execute("ROLLBACK")
        finally:
            self.conn.close()
            self.conn = None
            self.cur = None

    # ---------- Products ----------
    def get_product(self, product_id: str) -> Optional[Product]:
        self.cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,))
        r = self.cur.fetchone()
        return product_from_row(r) if r else None

    def insert_product(self, product: Product) -> None:
        self.cur.execute(
            """
            INSERT INTO products (
                id, name, purchase_price, sale_price, current_stock, additional_costs,
                created_by, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.id,
                product.name,
                str(product.purchase_price),
                str(product.sale_price),
                int(product.current_stock),
                dump_additional_costs(product.additional_costs),
                product.created_by,
                product.created_at,
                product.updated_at,
            ),
        )

    def update_product_details(
        self,
        product_id: str,
        name: str,
        purchase_price: Decimal,
        sale_price: Decimal,
        additional_costs: Iterable,
    ) -> bool:
        self.cur.execute(
            """
            UPDATE products
            SET name=?, purchase_price=?, sale_price=?, additional_costs=?, updated_at=?
            WHERE id=?
            """,
            (name, str(purchase_price), str(sale_price), dump_additional_costs(additional_costs), now_iso(), product_id),
        )
        return self.cur.rowcount > 0

    def apply_stock_delta(self, product_id: str, delta: int) -> Optional[int]:
        """Conditional stock update; returns the new stock or None if it would go negative."""
        self.cur.execute(
            """
            UPDATE products
            SET current_stock = current_stock + ?, updated_at = ?
            WHERE id = ? AND current_stock + ? >= 0
            """,
            (int(delta), now_iso(), product_id, int(delta)),
        )
        if self.cur.rowcount == 0:
            return None
        self.cur.execute("SELECT current_stock FROM products WHERE id=?", (product_id,))
        return int(self.cur.fetchone()[0])

    def count_sale_items_for_product(self, product_id: str) -> int:
        self.cur.execute("SELECT COUNT(*) FROM sale_items WHERE product_id=?", (product_id,))
        return int(self.cur.fetchone()[0])

    def delete_transactions_for_product(self, product_id: str) -> int:
        self.cur.execute("DELETE FROM inventory_transactions WHERE product_id=?", (product_id,))
        return int(self.cur.rowcount)

    def delete_product(self, product_id: str) -> bool:
        self.cur.execute("DELETE FROM products WHERE id=?", (product_id,))
        return self.cur.rowcount > 0

    # ---------- Stock ledger ----------
    def insert_transaction(self, tx: InventoryTransaction) -> None:
        self.cur.execute(
            """
            INSERT INTO inventory_transactions (
                id, product_id, quantity, transaction_type, transaction_date, notes, created_by, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tx.id,
                tx.product_id,
                int(tx.quantity),
                tx.transaction_type,
                tx.transaction_date,
                tx.notes,
                tx.created_by,
                tx.created_at,
            ),
        )

    # ---------- Customers ----------
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        self.cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id=?", (customer_id,))
        r = self.cur.fetchone()
        return customer_from_row(r) if r else None

    def insert_customer(self, customer: Customer) -> None:
        self.cur.execute(
            """
            INSERT INTO customers (id, name, contact, email, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (customer.id, customer.name, customer.contact, customer.email, customer.created_by, customer.created_at),
        )

    # ---------- Sales ----------
    def insert_sale(self, sale: Sale) -> None:
        self.cur.execute(
            """
            INSERT INTO sales (
                id, customer_id, customer_name, sale_date, total_amount, discount_amount,
                payment_method, payment_status, notes, created_by, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale.id,
                sale.customer_id,
                sale.customer_name,
                sale.sale_date,
                str(sale.total_amount),
                str(sale.discount_amount),
                sale.payment_method,
                sale.payment_status,
                sale.notes,
                sale.created_by,
                sale.created_at,
            ),
        )

    def insert_sale_item(self, item: SaleItem) -> None:
        self.cur.execute(
            """
            INSERT INTO sale_items (id, sale_id, product_id, quantity, price, discount, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (item.id, item.sale_id, item.product_id, int(item.quantity), str(item.price), str(item.discount), now_iso()),
        )

    # ---------- Purchase plans ----------
    def get_plan(self, plan_id: str) -> Optional[PurchasePlan]:
        self.cur.execute(f"SELECT {PLAN_COLUMNS} FROM purchase_plans WHERE id=?", (plan_id,))
        r = self.cur.fetchone()
        return plan_from_row(r) if r else None

    def insert_plan(self, plan: PurchasePlan) -> None:
        self.cur.execute(
            """
            INSERT INTO purchase_plans (id, name, planned_date, status, notes, created_by, created_at, total_cost)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plan.id,
                plan.name,
                plan.planned_date,
                plan.status,
                plan.notes,
                plan.created_by,
                plan.created_at,
                str(plan.total_cost),
            ),
        )

    def update_plan_details(self, plan_id: str, name: str, planned_date: str, notes: str) -> None:
        self.cur.execute(
            "UPDATE purchase_plans SET name=?, planned_date=?, notes=? WHERE id=?",
            (name, planned_date, notes, plan_id),
        )

    def set_plan_status(self, plan_id: str, status: str) -> None:
        self.cur.execute("UPDATE purchase_plans SET status=? WHERE id=?", (status, plan_id))

    def refresh_plan_total(self, plan_id: str) -> Decimal:
        total = sum((it.subtotal for it in self.plan_items(plan_id)), Decimal("0.00"))
        self.cur.execute("UPDATE purchase_plans SET total_cost=? WHERE id=?", (str(total), plan_id))
        return total

    def delete_plan(self, plan_id: str) -> bool:
        self.cur.execute("DELETE FROM purchase_plans WHERE id=?", (plan_id,))
        return self.cur.rowcount > 0

    def plan_items(self, plan_id: str) -> list[PurchasePlanItem]:
        self.cur.execute(
            f"SELECT {PLAN_ITEM_COLUMNS} FROM purchase_plan_items WHERE purchase_plan_id=? ORDER BY rowid",
            (plan_id,),
        )
        return [plan_item_from_row(r) for r in self.cur.fetchall()]

    def insert_plan_item(self, item: PurchasePlanItem) -> None:
        self.cur.execute(
            """
            INSERT INTO purchase_plan_items (
                id, purchase_plan_id, product_id, prod_name, quantity, unit_price, created_by, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.purchase_plan_id,
                item.product_id,
                item.prod_name,
                int(item.quantity),
                str(item.unit_price),
                item.created_by,
                now_iso(),
            ),
        )

    def delete_plan_item(self, plan_id: str, item_id: str) -> bool:
        self.cur.execute(
            "DELETE FROM purchase_plan_items WHERE id=? AND purchase_plan_id=?",
            (item_id, plan_id),
        )
        return self.cur.rowcount > 0

    # ---------- User roles ----------
    def upsert_user_role(self, user_id: str, role: str) -> None:
        self.cur.execute(
            """
            INSERT INTO user_roles (id, user_id, role, created_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET role=excluded.role
            """,
            (new_id(), user_id, role, now_iso()),
        )
