from decimal import Decimal
from pathlib import Path

import pytest
from conftest import ADMIN, OTHER, USER, count_rows, make_container, new_product

from curuza.domain.errors import AuthorizationError, HasSalesHistoryError, NotFoundError, ValidationError


def test_create_product_stores_prices_and_costs(tmp_path: Path):
    c = make_container(tmp_path)

    p = c.inventory.create_product(
        name="  Coffee beans ",
        purchase_price="12.5",
        sale_price=20,
        initial_stock=4,
        additional_costs=[{"title": "Shipping", "price": "1.25"}, {"title": "Bag", "price": 0.5}],
        actor=USER,
    )

    assert p.name == "Coffee beans"
    assert p.purchase_price == Decimal("12.50")
    assert p.sale_price == Decimal("20.00")
    assert p.current_stock == 4
    assert p.created_by == USER.user_id
    assert [cost.title for cost in p.additional_costs] == ["Shipping", "Bag"]
    assert p.total_additional_costs == Decimal("1.75")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "A"},
        {"purchase_price": 0},
        {"sale_price": "-1"},
        {"sale_price": "abc"},
        {"initial_stock": -1},
        {"additional_costs": [{"title": "", "price": 1}]},
        {"additional_costs": [{"title": "Fee", "price": -1}]},
    ],
)
def test_create_product_validation_happens_before_any_write(tmp_path: Path, kwargs):
    c = make_container(tmp_path)
    args = {
        "name": "Widget",
        "purchase_price": 10,
        "sale_price": 15,
        "initial_stock": 1,
        "additional_costs": [],
        "actor": ADMIN,
    }
    args.update(kwargs)

    with pytest.raises(ValidationError):
        c.inventory.create_product(**args)
    assert count_rows(c.repo, "products") == 0
    assert count_rows(c.repo, "inventory_transactions") == 0


def test_edit_stock_goes_through_ledger(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=7)

    edited = c.inventory.edit_product(p.id, "Widget XL", 65, 110, 12, [], ADMIN)

    assert edited.name == "Widget XL"
    assert edited.sale_price == Decimal("110.00")
    assert edited.current_stock == 12
    latest = c.repo.transactions_for_product(p.id)[0]
    assert (latest.transaction_type, latest.quantity, latest.notes) == (
        "in",
        5,
        "Stock adjustment during product edit",
    )


def test_edit_without_stock_change_adds_no_movement(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=7)

    c.inventory.edit_product(p.id, "Widget", 60, 100, 7, [], ADMIN)
    c.inventory.edit_product(p.id, "Widget", 60, 100, None, [], ADMIN)

    assert count_rows(c.repo, "inventory_transactions") == 1


def test_users_edit_only_their_own_products(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, actor=USER)

    with pytest.raises(AuthorizationError):
        c.inventory.edit_product(p.id, "Hijacked", 1, 2, 0, [], OTHER)
    with pytest.raises(AuthorizationError):
        c.inventory.refill_stock(p.id, 5, None, OTHER)
    with pytest.raises(AuthorizationError):
        c.inventory.delete_product(p.id, OTHER)

    c.inventory.edit_product(p.id, "Renamed", 60, 100, 10, [], USER)
    c.inventory.edit_product(p.id, "Renamed by admin", 60, 100, 10, [], ADMIN)
    assert c.repo.get_product(p.id).name == "Renamed by admin"


def test_refill_defaults_note(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=2)

    tx = c.inventory.refill_stock(p.id, 8, "  ", ADMIN)
    named = c.inventory.refill_stock(p.id, 1, "Supplier X", ADMIN)

    assert tx.notes == "Stock refill"
    assert named.notes == "Supplier X"
    assert c.repo.get_product(p.id).current_stock == 11


def test_refill_rejects_non_positive_quantity(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=2)

    with pytest.raises(ValidationError):
        c.inventory.refill_stock(p.id, 0, None, ADMIN)
    with pytest.raises(NotFoundError):
        c.inventory.refill_stock("missing", 1, None, ADMIN)


def test_delete_blocked_by_sales_history(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=10)
    c.sales.record_sale("Ana", [{"product_id": p.id, "quantity": 1, "unit_price": 100}], "cash", "paid", None, USER)

    with pytest.raises(HasSalesHistoryError) as exc:
        c.inventory.delete_product(p.id, ADMIN)

    assert exc.value.product_id == p.id
    assert c.repo.get_product(p.id) is not None
    assert count_rows(c.repo, "inventory_transactions", "WHERE product_id=?", (p.id,)) == 2


def test_delete_without_sales_removes_history_then_product(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=10)
    c.inventory.refill_stock(p.id, 3, None, ADMIN)

    c.inventory.delete_product(p.id, ADMIN)

    assert c.repo.get_product(p.id) is None
    assert count_rows(c.repo, "inventory_transactions") == 0
    with pytest.raises(NotFoundError):
        c.inventory.delete_product(p.id, ADMIN)


def test_history_and_listing(tmp_path: Path):
    c = make_container(tmp_path)
    b = new_product(c, name="Beta", stock=1, actor=USER)
    a = new_product(c, name="Alpha", stock=2, actor=ADMIN)
    c.inventory.refill_stock(b.id, 4, "second", USER)

    assert [p.name for p in c.inventory.list_products(OTHER)] == ["Alpha", "Beta"]
    history = c.inventory.product_history(b.id, OTHER)
    assert [t.notes for t in history] == ["second", "Initial stock"]
    assert c.inventory.get_product(a.id, USER).current_stock == 2
    with pytest.raises(NotFoundError):
        c.inventory.get_product("missing", USER)
