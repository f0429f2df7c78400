from pathlib import Path
import sqlite3

import pytest
from conftest import USER, make_container, new_product

from curuza.repositories.sqlite_repo import SqliteRepository


def _schema_version(repo) -> int:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    v = int(cur.fetchone()[0])
    conn.close()
    return v


def test_migrations_are_applied_once(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "m.db")
    repo.init_db()
    repo.init_db()

    assert _schema_version(repo) == 3
    assert repo.integrity_check() == "ok"
    assert list(tmp_path.glob("*.bak")) == []


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationRepo(SqliteRepository):
        def _migration_v3_ledger_protection(self, cur):
            cur.execute("CREATE TABLE half_done (id INTEGER)")
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    repo = SqliteRepository(db)
    repo.init_db()

    conn = repo._conn()
    conn.execute("DELETE FROM schema_migrations WHERE version = 3")
    conn.close()
    before = _schema_version(repo)

    broken = BrokenMigrationRepo(db)
    with pytest.raises(RuntimeError, match="Original database restored"):
        broken.run_migrations()

    assert _schema_version(repo) == before == 2
    assert len(list(tmp_path.glob("broken.pre_migration_*.bak"))) == 1
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT name FROM sqlite_master WHERE name='half_done'")
    assert cur.fetchone() is None
    conn.close()


def test_ledger_rows_cannot_be_rewritten(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=5)

    conn = c.repo._conn()
    try:
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("UPDATE inventory_transactions SET quantity=50 WHERE product_id=?", (p.id,))
    finally:
        conn.close()
    assert c.ledger.audit() == []


def test_sold_product_history_cannot_be_deleted(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=5)
    sale = c.sales.record_sale("Ana", [{"product_id": p.id, "quantity": 1, "unit_price": 100}], "cash", "paid", None, USER)

    conn = c.repo._conn()
    try:
        with pytest.raises(sqlite3.DatabaseError, match="cannot be deleted"):
            conn.execute("DELETE FROM inventory_transactions WHERE product_id=?", (p.id,))
        with pytest.raises(sqlite3.DatabaseError, match="immutable"):
            conn.execute("UPDATE sales SET total_amount='0.00' WHERE id=?", (sale.id,))
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("UPDATE products SET current_stock=-1 WHERE id=?", (p.id,))
    finally:
        conn.close()


def test_foreign_keys_are_enforced(tmp_path: Path):
    c = make_container(tmp_path)

    conn = c.repo._conn()
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                """
                INSERT INTO inventory_transactions
                    (id, product_id, quantity, transaction_type, transaction_date, notes, created_by, created_at)
                VALUES ('t1', 'nope', 1, 'in', '2026-01-01', NULL, 'x', '2026-01-01')
                """
            )
    finally:
        conn.close()


def test_failed_read_closes_its_connection(tmp_path: Path):
    class TrackingRepo(SqliteRepository):
        def __init__(self, db_path):
            super().__init__(db_path)
            self.opened = []

        def _conn(self):
            conn = super()._conn()
            self.opened.append(conn)
            return conn

    repo = TrackingRepo(tmp_path / "empty.db")

    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        repo.get_product("p1")
    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        repo.list_sales()

    assert len(repo.opened) == 2
    for conn in repo.opened:
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")
