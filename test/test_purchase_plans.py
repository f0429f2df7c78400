from decimal import Decimal
from pathlib import Path

import pytest
from conftest import ADMIN, OTHER, USER, count_rows, make_container, new_product

from curuza.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)


def test_completion_books_stock_for_catalogued_items_only(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=0)
    plan = c.plans.create_plan("Restock March", "2026-03-01", USER)
    c.plans.add_item(plan.id, "", 5, 60, USER, product_id=p.id)
    c.plans.add_item(plan.id, "Mystery crate", 2, 30, USER)

    c.plans.change_status(plan.id, "scheduled", USER)
    done = c.plans.change_status(plan.id, "completed", USER)

    assert done.status == "completed"
    txs = c.repo.transactions_for_product(p.id)
    assert len(txs) == 1
    assert (txs[0].transaction_type, txs[0].quantity, txs[0].notes) == (
        "in",
        5,
        "Purchase from plan: Restock March",
    )
    assert count_rows(c.repo, "inventory_transactions") == 1
    assert c.repo.get_product(p.id).current_stock == 5


def test_item_mutations_recompute_total(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, name="Widget", stock=0)
    plan = c.plans.create_plan("Weekly", "2026-03-01", ADMIN)

    first = c.plans.add_item(plan.id, "", 3, "10.50", ADMIN, product_id=p.id)
    c.plans.add_item(plan.id, "Tape", 2, 4, ADMIN)
    assert first.prod_name == "Widget"
    assert c.plans.get_plan(plan.id, ADMIN).total_cost == Decimal("39.50")

    c.plans.remove_item(plan.id, first.id, ADMIN)
    assert c.plans.get_plan(plan.id, ADMIN).total_cost == Decimal("8.00")
    assert [it.prod_name for it in c.plans.plan_items(plan.id, ADMIN)] == ["Tape"]


@pytest.mark.parametrize(
    "current_path,target",
    [
        ([], "completed"),
        ([], "cancelled"),
        ([], "draft"),
        (["scheduled", "completed"], "draft"),
        (["scheduled", "completed"], "cancelled"),
        (["scheduled", "cancelled"], "scheduled"),
        (["scheduled", "cancelled"], "completed"),
    ],
)
def test_transitions_outside_the_state_machine_are_rejected(tmp_path: Path, current_path, target):
    c = make_container(tmp_path)
    plan = c.plans.create_plan("Plan", "2026-03-01", ADMIN)
    for status in current_path:
        c.plans.change_status(plan.id, status, ADMIN)

    with pytest.raises(InvalidStateTransitionError) as exc:
        c.plans.change_status(plan.id, target, ADMIN)
    assert exc.value.target == target
    assert c.plans.get_plan(plan.id, ADMIN).status == (current_path[-1] if current_path else "draft")


def test_scheduled_plan_can_revert_to_draft_and_be_edited(tmp_path: Path):
    c = make_container(tmp_path)
    plan = c.plans.create_plan("Plan", "2026-03-01", ADMIN)
    c.plans.change_status(plan.id, "scheduled", ADMIN)

    with pytest.raises(ConflictError):
        c.plans.add_item(plan.id, "Late item", 1, 1, ADMIN)
    with pytest.raises(ConflictError):
        c.plans.update_plan(plan.id, "Renamed", "2026-04-01", "", ADMIN)

    c.plans.change_status(plan.id, "draft", ADMIN)
    c.plans.add_item(plan.id, "Late item", 1, 1, ADMIN)
    updated = c.plans.update_plan(plan.id, "Renamed", "2026-04-01", "call supplier", ADMIN)
    assert (updated.name, updated.planned_date, updated.notes) == ("Renamed", "2026-04-01", "call supplier")


def test_cancel_has_no_stock_effect(tmp_path: Path):
    c = make_container(tmp_path)
    p = new_product(c, stock=1)
    plan = c.plans.create_plan("Plan", "2026-03-01", ADMIN)
    c.plans.add_item(plan.id, "", 9, 1, ADMIN, product_id=p.id)
    c.plans.change_status(plan.id, "scheduled", ADMIN)

    assert c.plans.change_status(plan.id, "cancelled", ADMIN).status == "cancelled"
    assert c.repo.get_product(p.id).current_stock == 1


def test_completion_with_deleted_product_applies_nothing(tmp_path: Path):
    c = make_container(tmp_path)
    kept = new_product(c, name="Kept", stock=0)
    gone = new_product(c, name="Gone", stock=0)
    plan = c.plans.create_plan("Plan", "2026-03-01", ADMIN)
    c.plans.add_item(plan.id, "", 4, 1, ADMIN, product_id=kept.id)
    c.plans.add_item(plan.id, "", 6, 1, ADMIN, product_id=gone.id)
    c.plans.change_status(plan.id, "scheduled", ADMIN)
    c.inventory.delete_product(gone.id, ADMIN)

    with pytest.raises(NotFoundError):
        c.plans.change_status(plan.id, "completed", ADMIN)

    assert c.plans.get_plan(plan.id, ADMIN).status == "scheduled"
    assert c.repo.get_product(kept.id).current_stock == 0
    assert count_rows(c.repo, "inventory_transactions") == 0


def test_plan_and_item_validation(tmp_path: Path):
    c = make_container(tmp_path)

    with pytest.raises(ValidationError):
        c.plans.create_plan("ab", "2026-03-01", ADMIN)
    with pytest.raises(ValidationError):
        c.plans.create_plan("Plan", "next week", ADMIN)

    plan = c.plans.create_plan("Plan", "2026-03-01T09:00:00", ADMIN)
    assert plan.planned_date == "2026-03-01"
    with pytest.raises(ValidationError):
        c.plans.add_item(plan.id, "Box", 0, 1, ADMIN)
    with pytest.raises(ValidationError):
        c.plans.add_item(plan.id, "Box", 1, 0, ADMIN)
    with pytest.raises(ValidationError):
        c.plans.add_item(plan.id, "  ", 1, 1, ADMIN)
    with pytest.raises(NotFoundError):
        c.plans.add_item(plan.id, "Box", 1, 1, ADMIN, product_id="missing")
    with pytest.raises(ValidationError):
        c.plans.change_status(plan.id, "archived", ADMIN)


def test_plans_are_scoped_to_their_owner(tmp_path: Path):
    c = make_container(tmp_path)
    mine = c.plans.create_plan("Mine", "2026-03-01", USER)
    c.plans.create_plan("Admin plan", "2026-03-02", ADMIN)

    assert [p.name for p in c.plans.list_plans(USER)] == ["Mine"]
    assert c.plans.list_plans(OTHER) == []
    assert len(c.plans.list_plans(ADMIN)) == 2

    with pytest.raises(AuthorizationError):
        c.plans.get_plan(mine.id, OTHER)
    with pytest.raises(AuthorizationError):
        c.plans.change_status(mine.id, "scheduled", OTHER)
    with pytest.raises(AuthorizationError):
        c.plans.delete_plan(mine.id, OTHER)


def test_delete_plan_cascades_items(tmp_path: Path):
    c = make_container(tmp_path)
    plan = c.plans.create_plan("Plan", "2026-03-01", USER)
    c.plans.add_item(plan.id, "Box", 1, 1, USER)
    c.plans.add_item(plan.id, "Tape", 1, 1, USER)

    c.plans.delete_plan(plan.id, USER)

    assert count_rows(c.repo, "purchase_plans") == 0
    assert count_rows(c.repo, "purchase_plan_items") == 0
    with pytest.raises(NotFoundError):
        c.plans.get_plan(plan.id, USER)


def test_plan_owner_can_remove_items_added_by_admin(tmp_path: Path):
    c = make_container(tmp_path)
    plan = c.plans.create_plan("Mine", "2026-03-01", USER)
    item = c.plans.add_item(plan.id, "Box", 2, 3, ADMIN)

    with pytest.raises(AuthorizationError):
        c.plans.remove_item(plan.id, item.id, OTHER)

    c.plans.remove_item(plan.id, item.id, USER)
    assert c.plans.plan_items(plan.id, USER) == []
    assert c.plans.get_plan(plan.id, USER).total_cost == Decimal("0.00")
    with pytest.raises(NotFoundError):
        c.plans.remove_item(plan.id, item.id, USER)
