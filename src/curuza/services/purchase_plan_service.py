from __future__ import annotations

from datetime import date
import logging
from typing import Optional

from curuza.domain.errors import ConflictError, InvalidStateTransitionError, NotFoundError, ValidationError
from curuza.domain.models import PLAN_STATUSES, Actor, PurchasePlan, PurchasePlanItem
from curuza.domain.money import ZERO, to_money, to_quantity
from curuza.repositories.rows import new_id, now_iso
from curuza.services.access_policy import AccessPolicy
from curuza.services.ledger_service import StockLedger

log = logging.getLogger("curuza.plans")

# completed and cancelled are terminal
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("scheduled",),
    "scheduled": ("draft", "completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}


def _validate_plan_fields(name: str, planned_date: str) -> tuple[str, str]:
    name = (name or "").strip()
    if len(name) < 3:
        raise ValidationError("Plan name must be at least 3 characters.")
    raw = (planned_date or "").strip()
    try:
        planned = date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Planned date must be YYYY-MM-DD. Received: {planned_date!r}") from exc
    return name, planned.isoformat()


def _require_draft(plan: PurchasePlan) -> None:
    if plan.status != "draft":
        raise ConflictError(f"Only draft plans can be edited. This plan is {plan.status}.")


class PurchasePlanService:
    def __init__(self, repo, ledger: StockLedger | None = None, policy: AccessPolicy | None = None):
        self.repo = repo
        self.policy = policy or AccessPolicy()
        self.ledger = ledger or StockLedger(repo, self.policy)

    def _plan(self, plan_id: str) -> PurchasePlan:
        plan = self.repo.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Purchase plan not found.")
        return plan

    def list_plans(self, actor: Actor) -> list[PurchasePlan]:
        return self.repo.list_plans(self.policy.owner_filter(actor, "read", "purchase_plan"))

    def get_plan(self, plan_id: str, actor: Actor) -> PurchasePlan:
        plan = self._plan(plan_id)
        self.policy.require(actor, "read", plan)
        return plan

    def plan_items(self, plan_id: str, actor: Actor) -> list[PurchasePlanItem]:
        self.get_plan(plan_id, actor)
        return self.repo.plan_items(plan_id)

    def create_plan(self, name: str, planned_date: str, actor: Actor, notes: str = "") -> PurchasePlan:
        self.policy.require(actor, "insert", "purchase_plan")
        name, planned = _validate_plan_fields(name, planned_date)
        plan = PurchasePlan(
            id=new_id(),
            name=name,
            planned_date=planned,
            status="draft",
            notes=(notes or "").strip(),
            created_by=actor.user_id,
            created_at=now_iso(),
            total_cost=ZERO,
        )
        with self.repo.unit_of_work() as uow:
            uow.insert_plan(plan)
        log.info("plan_created plan_id=%s actor=%s", plan.id, actor.user_id)
        return plan

    def update_plan(self, plan_id: str, name: str, planned_date: str, notes: str, actor: Actor) -> PurchasePlan:
        self.policy.require(actor, "update", self._plan(plan_id))
        name, planned = _validate_plan_fields(name, planned_date)
        with self.repo.unit_of_work() as uow:
            plan = uow.get_plan(plan_id)
            if not plan:
                raise NotFoundError("Purchase plan not found.")
            _require_draft(plan)
            uow.update_plan_details(plan_id, name, planned, (notes or "").strip())
        return self.repo.get_plan(plan_id)

    def add_item(
        self,
        plan_id: str,
        prod_name: str,
        quantity: int,
        unit_price,
        actor: Actor,
        product_id: Optional[str] = None,
    ) -> PurchasePlanItem:
        self.policy.require(actor, "update", self._plan(plan_id))
        self.policy.require(actor, "insert", "purchase_plan_item")

        qty = to_quantity(quantity, "Quantity")
        price = to_money(unit_price, "Unit price")
        if qty <= 0:
            raise ValidationError("Quantity must be > 0.")
        if price <= 0:
            raise ValidationError("Unit price must be > 0.")
        prod_name = (prod_name or "").strip()
        if product_id:
            product = self.repo.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found.")
            prod_name = prod_name or product.name
        elif not prod_name:
            raise ValidationError("Item needs a product or a name.")

        item = PurchasePlanItem(
            id=new_id(),
            purchase_plan_id=plan_id,
            product_id=product_id or None,
            prod_name=prod_name,
            quantity=qty,
            unit_price=price,
            created_by=actor.user_id,
        )
        with self.repo.unit_of_work() as uow:
            plan = uow.get_plan(plan_id)
            if not plan:
                raise NotFoundError("Purchase plan not found.")
            _require_draft(plan)
            uow.insert_plan_item(item)
            total = uow.refresh_plan_total(plan_id)
        log.info("plan_item_added plan_id=%s item_id=%s total_cost=%s actor=%s", plan_id, item.id, total, actor.user_id)
        return item

    def remove_item(self, plan_id: str, item_id: str, actor: Actor) -> None:
        self.policy.require(actor, "update", self._plan(plan_id))
        self.policy.require(actor, "delete", "purchase_plan_item")

        with self.repo.unit_of_work() as uow:
            plan = uow.get_plan(plan_id)
            if not plan:
                raise NotFoundError("Purchase plan not found.")
            _require_draft(plan)
            if not uow.delete_plan_item(plan_id, item_id):
                raise NotFoundError("Plan item not found.")
            total = uow.refresh_plan_total(plan_id)
        log.info("plan_item_removed plan_id=%s item_id=%s total_cost=%s actor=%s", plan_id, item_id, total, actor.user_id)

    def change_status(self, plan_id: str, target: str, actor: Actor) -> PurchasePlan:
        """Moves a plan along draft -> scheduled -> completed/cancelled.

        Completing a plan books an ``in`` movement for every item that
        references a product, in the same unit of work as the status
        change. Free-text items have no stock effect.
        """
        self.policy.require(actor, "update", self._plan(plan_id))
        if target not in PLAN_STATUSES:
            raise ValidationError(f"Status must be one of {', '.join(PLAN_STATUSES)}.")

        with self.repo.unit_of_work() as uow:
            plan = uow.get_plan(plan_id)
            if not plan:
                raise NotFoundError("Purchase plan not found.")
            if target not in TRANSITIONS[plan.status]:
                raise InvalidStateTransitionError(plan.status, target)

            received = 0
            if target == "completed":
                for item in uow.plan_items(plan_id):
                    if not item.product_id:
                        continue
                    self.ledger.record_movement(
                        item.product_id,
                        item.quantity,
                        "in",
                        f"Purchase from plan: {plan.name}",
                        actor,
                        uow=uow,
                    )
                    received += 1
            uow.set_plan_status(plan_id, target)

        log.info(
            "plan_status_changed plan_id=%s from=%s to=%s movements=%s actor=%s",
            plan_id,
            plan.status,
            target,
            received,
            actor.user_id,
        )
        return self.repo.get_plan(plan_id)

    def delete_plan(self, plan_id: str, actor: Actor) -> None:
        self.policy.require(actor, "delete", self._plan(plan_id))
        with self.repo.unit_of_work() as uow:
            if not uow.delete_plan(plan_id):
                raise NotFoundError("Purchase plan not found.")
        log.info("plan_deleted plan_id=%s actor=%s", plan_id, actor.user_id)
