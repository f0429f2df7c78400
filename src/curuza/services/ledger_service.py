from __future__ import annotations

import logging
from typing import Optional

from curuza.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from curuza.domain.models import TRANSACTION_TYPES, Actor, InventoryTransaction, LedgerDrift, Product
from curuza.domain.money import to_quantity
from curuza.repositories.rows import new_id, now_iso
from curuza.repositories.unit_of_work import UnitOfWork
from curuza.services.access_policy import AccessPolicy

log = logging.getLogger("curuza.ledger")


class StockLedger:
    """Keeps ``products.current_stock`` as a projection of the append-only
    inventory transaction log.

    Every method that writes accepts an optional ``uow`` so a caller can
    enlist the movement in its own unit of work; without one the movement
    runs in a unit of work of its own and the actor must be allowed to
    update the product. Enlisted movements leave that check to the caller,
    since sales and plan receipts touch products the actor does not own.
    """

    def __init__(self, repo, policy: AccessPolicy | None = None):
        self.repo = repo
        self.policy = policy or AccessPolicy()

    def record_movement(
        self,
        product_id: str,
        quantity: int,
        transaction_type: str,
        notes: Optional[str],
        actor: Actor,
        uow: UnitOfWork | None = None,
    ) -> InventoryTransaction:
        self.policy.require(actor, "insert", "inventory_transaction")
        qty = to_quantity(quantity)
        if qty <= 0:
            raise ValidationError("Quantity must be > 0.")
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Transaction type must be one of {', '.join(TRANSACTION_TYPES)}.")

        if uow is not None:
            return self._apply(uow, product_id, qty, transaction_type, notes, actor)
        with self.repo.unit_of_work() as own:
            self._require_product_update(own, product_id, actor)
            return self._apply(own, product_id, qty, transaction_type, notes, actor)

    def reconcile_adjustment(
        self,
        product_id: str,
        new_stock_value: int,
        actor: Actor,
        notes: str = "stock adjustment",
        uow: UnitOfWork | None = None,
    ) -> Optional[InventoryTransaction]:
        self.policy.require(actor, "insert", "inventory_transaction")
        target = to_quantity(new_stock_value, "stock")
        if target < 0:
            raise ValidationError("Stock must be >= 0.")

        if uow is not None:
            return self._reconcile(uow, product_id, target, notes, actor)
        with self.repo.unit_of_work() as own:
            return self._reconcile(own, product_id, target, notes, actor)

    def _reconcile(self, uow, product_id: str, target: int, notes: str, actor: Actor) -> Optional[InventoryTransaction]:
        product = self._require_product_update(uow, product_id, actor)
        delta = target - product.current_stock
        if delta == 0:
            return None
        return self._apply(uow, product_id, abs(delta), "in" if delta > 0 else "out", notes, actor)

    def _require_product_update(self, uow, product_id: str, actor: Actor) -> Product:
        product = uow.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}")
        self.policy.require(actor, "update", product)
        return product

    def _apply(self, uow, product_id: str, qty: int, transaction_type: str, notes: Optional[str], actor: Actor) -> InventoryTransaction:
        product = uow.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}")

        delta = qty if transaction_type == "in" else -qty
        stock_after = uow.apply_stock_delta(product_id, delta)
        if stock_after is None:
            raise InsufficientStockError(product_id, qty, product.current_stock, product.name)

        ts = now_iso()
        tx = InventoryTransaction(
            id=new_id(),
            product_id=product_id,
            quantity=qty,
            transaction_type=transaction_type,
            transaction_date=ts,
            notes=notes,
            created_by=actor.user_id,
            created_at=ts,
        )
        uow.insert_transaction(tx)
        log.info(
            "stock_movement product_id=%s type=%s qty=%s stock_after=%s actor=%s",
            product_id,
            transaction_type,
            qty,
            stock_after,
            actor.user_id,
        )
        return tx

    def replay(self, product_id: str) -> int:
        rows = self.repo.stock_replay(product_id)
        if not rows:
            raise NotFoundError(f"Product not found: {product_id}")
        return rows[0][3]

    def audit(self) -> list[LedgerDrift]:
        drifts = [
            LedgerDrift(product_id=pid, name=name, current_stock=current, replayed_stock=replayed)
            for pid, name, current, replayed in self.repo.stock_replay()
            if current != replayed
        ]
        for d in drifts:
            log.error(
                "ledger_drift product_id=%s current=%s replayed=%s",
                d.product_id,
                d.current_stock,
                d.replayed_stock,
            )
        return drifts
