from __future__ import annotations

import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from curuza.domain.models import Customer, InventoryTransaction, Product, PurchasePlan, PurchasePlanItem, Sale, SaleItem, UserRole
from curuza.repositories.rows import (
    CUSTOMER_COLUMNS,
    PLAN_COLUMNS,
    PLAN_ITEM_COLUMNS,
    PRODUCT_COLUMNS,
    SALE_COLUMNS,
    SALE_ITEM_COLUMNS,
    TRANSACTION_COLUMNS,
    customer_from_row,
    plan_from_row,
    plan_item_from_row,
    product_from_row,
    sale_from_row,
    sale_item_from_row,
    transaction_from_row,
    user_role_from_row,
)
from curuza.repositories.unit_of_work import SqliteUnitOfWork


class SqliteRepository:
    def __init__(self, db_path: Path | str, timeout: float = 30.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)

    def _conn(self) -> sqlite3.Connection:
        # autocommit mode: write scopes issue BEGIN IMMEDIATE themselves
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def unit_of_work(self) -> SqliteUnitOfWork:
        return SqliteUnitOfWork(self._conn)

    def _migrations(self):
        return [
            (1, self._migration_v1_base),
            (2, self._migration_v2_purchase_plans),
            (3, self._migration_v3_ledger_protection),
        ]

    def _current_schema_version(self) -> int:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='schema_migrations'")
            if not cur.fetchone():
                return 0
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            return int(cur.fetchone()[0])
        finally:
            conn.close()

    def run_migrations(self) -> None:
        pending = [m for m in self._migrations() if m[0] > self._current_schema_version()]
        if not pending:
            return

        backup_path = self._create_pre_migration_backup()
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            for version, migration in self._migrations():
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            cur.execute("COMMIT")
        except Exception as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            conn.close()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS user_roles (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL CHECK(role IN ('admin','user')),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                purchase_price TEXT NOT NULL,
                sale_price TEXT NOT NULL,
                current_stock INTEGER NOT NULL DEFAULT 0 CHECK(current_stock >= 0),
                additional_costs TEXT NOT NULL DEFAULT '[]',
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS inventory_transactions (
                id TEXT PRIMARY KEY,
                product_id TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                transaction_type TEXT NOT NULL CHECK(transaction_type IN ('in','out')),
                transaction_date TEXT NOT NULL,
                notes TEXT,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                contact TEXT,
                email TEXT,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sales (
                id TEXT PRIMARY KEY,
                customer_id TEXT,
                customer_name TEXT NOT NULL,
                sale_date TEXT NOT NULL,
                total_amount TEXT NOT NULL,
                discount_amount TEXT NOT NULL DEFAULT '0.00',
                payment_method TEXT NOT NULL CHECK(payment_method IN ('cash','card','transfer','other')),
                payment_status TEXT NOT NULL CHECK(payment_status IN ('paid','pending','partial')),
                notes TEXT,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(customer_id) REFERENCES customers(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sale_items (
                id TEXT PRIMARY KEY,
                sale_id TEXT NOT NULL,
                product_id TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                price TEXT NOT NULL,
                discount TEXT NOT NULL DEFAULT '0.00',
                created_at TEXT NOT NULL,
                FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )

        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_name ON products(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_inventory_transactions_product_id ON inventory_transactions(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_inventory_transactions_date ON inventory_transactions(transaction_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_sale_date ON sales(sale_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale_id ON sale_items(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_product_id ON sale_items(product_id)")

    def _migration_v2_purchase_plans(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_plans (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                planned_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'draft'
                    CHECK(status IN ('draft','scheduled','completed','cancelled')),
                notes TEXT NOT NULL DEFAULT '',
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                total_cost TEXT NOT NULL DEFAULT '0.00'
            )
            """
        )

        # product_id is not a foreign key: a planned product may be deleted
        # before the plan completes.
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_plan_items (
                id TEXT PRIMARY KEY,
                purchase_plan_id TEXT NOT NULL,
                product_id TEXT,
                prod_name TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price TEXT NOT NULL,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(purchase_plan_id) REFERENCES purchase_plans(id) ON DELETE CASCADE
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_purchase_plan_items_plan ON purchase_plan_items(purchase_plan_id)")

    def _migration_v3_ledger_protection(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_inventory_transactions_no_update
            BEFORE UPDATE ON inventory_transactions
            BEGIN
                SELECT RAISE(ABORT, 'inventory_transactions are append-only');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_inventory_transactions_keep_sold_history
            BEFORE DELETE ON inventory_transactions
            WHEN EXISTS (SELECT 1 FROM sale_items WHERE product_id = OLD.product_id)
            BEGIN
                SELECT RAISE(ABORT, 'inventory history of a sold product cannot be deleted');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_sales_no_update
            BEFORE UPDATE ON sales
            BEGIN
                SELECT RAISE(ABORT, 'sales are immutable');
            END
            """
        )


    def integrity_check(self) -> str:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("PRAGMA integrity_check")
            row = cur.fetchone()
        finally:
            conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- User roles ----------
    def get_user_role(self, user_id: str) -> Optional[UserRole]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT user_id, role, created_at FROM user_roles WHERE user_id=?", (user_id,))
            r = cur.fetchone()
        finally:
            conn.close()
        return user_role_from_row(r) if r else None

    # ---------- Products ----------
    def get_product(self, product_id: str) -> Optional[Product]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,))
            r = cur.fetchone()
        finally:
            conn.close()
        return product_from_row(r) if r else None

    def list_products(self, created_by: Optional[str] = None) -> list[Product]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            if created_by is None:
                cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY name, id")
            else:
                cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE created_by=? ORDER BY name, id", (created_by,))
            rows = cur.fetchall()
        finally:
            conn.close()
        return [product_from_row(r) for r in rows]

    def list_low_stock(self, threshold: int, created_by: Optional[str] = None) -> list[Product]:
        sql = f"SELECT {PRODUCT_COLUMNS} FROM products WHERE current_stock < ?"
        params: list = [int(threshold)]
        if created_by is not None:
            sql += " AND created_by=?"
            params.append(created_by)
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(sql + " ORDER BY current_stock ASC, name ASC", params)
            rows = cur.fetchall()
        finally:
            conn.close()
        return [product_from_row(r) for r in rows]

    # ---------- Stock ledger ----------
    def transactions_for_product(self, product_id: str) -> list[InventoryTransaction]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT {TRANSACTION_COLUMNS}
                FROM inventory_transactions
                WHERE product_id=?
                ORDER BY transaction_date DESC, rowid DESC
                """,
                (product_id,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()
        return [transaction_from_row(r) for r in rows]

    def stock_replay(self, product_id: Optional[str] = None) -> list[tuple[str, str, int, int]]:
        """(product_id, name, current_stock, replayed_stock) per product."""
        sql = """
            SELECT p.id, p.name, p.current_stock,
                   COALESCE(SUM(CASE t.transaction_type WHEN 'in' THEN t.quantity ELSE -t.quantity END), 0)
            FROM products p
            LEFT JOIN inventory_transactions t ON t.product_id = p.id
        """
        params: tuple = ()
        if product_id is not None:
            sql += " WHERE p.id = ?"
            params = (product_id,)
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(sql + " GROUP BY p.id ORDER BY p.name", params)
            rows = cur.fetchall()
        finally:
            conn.close()
        return [(str(r[0]), str(r[1]), int(r[2]), int(r[3])) for r in rows]

    # ---------- Customers ----------
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id=?", (customer_id,))
            r = cur.fetchone()
        finally:
            conn.close()
        return customer_from_row(r) if r else None

    def list_customers(self) -> list[Customer]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers ORDER BY name, id")
            rows = cur.fetchall()
        finally:
            conn.close()
        return [customer_from_row(r) for r in rows]

    # ---------- Sales ----------
    def sale_items_for_sale(self, sale_id: str) -> list[SaleItem]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {SALE_ITEM_COLUMNS} FROM sale_items WHERE sale_id=? ORDER BY rowid", (sale_id,))
            rows = cur.fetchall()
        finally:
            conn.close()
        return [sale_item_from_row(r) for r in rows]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {SALE_COLUMNS} FROM sales WHERE id=?", (sale_id,))
            r = cur.fetchone()
        finally:
            conn.close()
        if not r:
            return None
        return sale_from_row(r, self.sale_items_for_sale(sale_id))

    def list_sales(
        self,
        created_by: Optional[str] = None,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> list[Sale]:
        sql = f"SELECT {SALE_COLUMNS} FROM sales WHERE 1=1"
        params: list = []
        if created_by is not None:
            sql += " AND created_by=?"
            params.append(created_by)
        if start_iso is not None:
            sql += " AND sale_date >= ?"
            params.append(start_iso)
        if end_iso is not None:
            sql += " AND sale_date < ?"
            params.append(end_iso)
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(sql + " ORDER BY sale_date DESC, rowid DESC", params)
            rows = cur.fetchall()
        finally:
            conn.close()
        return [sale_from_row(r) for r in rows]

    def sale_lines(
        self,
        created_by: Optional[str] = None,
        start_iso: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> list[tuple]:
        """(sale_id, sale_date, product_id, product_name, quantity, price, discount, purchase_price)."""
        sql = """
            SELECT s.id, s.sale_date, si.product_id, p.name, si.quantity, si.price, si.discount, p.purchase_price
            FROM sale_items si
            JOIN sales s ON s.id = si.sale_id
            JOIN products p ON p.id = si.product_id
            WHERE 1=1
        """
        params: list = []
        if created_by is not None:
            sql += " AND s.created_by=?"
            params.append(created_by)
        if start_iso is not None:
            sql += " AND s.sale_date >= ?"
            params.append(start_iso)
        if product_id is not None:
            sql += " AND si.product_id=?"
            params.append(product_id)
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(sql + " ORDER BY s.sale_date DESC, si.rowid", params)
            return cur.fetchall()
        finally:
            conn.close()

    # ---------- Purchase plans ----------
    def get_plan(self, plan_id: str) -> Optional[PurchasePlan]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {PLAN_COLUMNS} FROM purchase_plans WHERE id=?", (plan_id,))
            r = cur.fetchone()
        finally:
            conn.close()
        return plan_from_row(r) if r else None

    def list_plans(self, created_by: Optional[str] = None) -> list[PurchasePlan]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            if created_by is None:
                cur.execute(f"SELECT {PLAN_COLUMNS} FROM purchase_plans ORDER BY created_at DESC, rowid DESC")
            else:
                cur.execute(
                    f"SELECT {PLAN_COLUMNS} FROM purchase_plans WHERE created_by=? ORDER BY created_at DESC, rowid DESC",
                    (created_by,),
                )
            rows = cur.fetchall()
        finally:
            conn.close()
        return [plan_from_row(r) for r in rows]

    def plan_items(self, plan_id: str) -> list[PurchasePlanItem]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {PLAN_ITEM_COLUMNS} FROM purchase_plan_items WHERE purchase_plan_id=? ORDER BY rowid",
                (plan_id,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()
        return [plan_item_from_row(r) for r in rows]
