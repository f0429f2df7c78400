from __future__ import annotations

import logging
from typing import Iterable, Optional

from curuza.domain.errors import HasSalesHistoryError, NotFoundError, ValidationError
from curuza.domain.models import Actor, AdditionalCost, InventoryTransaction, Product
from curuza.domain.money import to_money, to_quantity
from curuza.repositories.rows import new_id, now_iso
from curuza.services.access_policy import AccessPolicy
from curuza.services.ledger_service import StockLedger

log = logging.getLogger(__name__)


def _parse_additional_costs(costs: Iterable | None) -> tuple[AdditionalCost, ...]:
    parsed = []
    for c in costs or ():
        if isinstance(c, AdditionalCost):
            title, price = c.title, c.price
        else:
            title, price = c.get("title"), c.get("price")
        title = (title or "").strip()
        if not title:
            raise ValidationError("Cost title is required.")
        amount = to_money(price, "Additional cost price")
        if amount < 0:
            raise ValidationError("Additional cost price must be >= 0.")
        parsed.append(AdditionalCost(title=title, price=amount))
    return tuple(parsed)


def _validate_details(name: str, purchase_price, sale_price):
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Product name must be at least 2 characters.")
    purchase = to_money(purchase_price, "Purchase price")
    sale = to_money(sale_price, "Sale price")
    if purchase <= 0:
        raise ValidationError("Purchase price must be > 0.")
    if sale <= 0:
        raise ValidationError("Sale price must be > 0.")
    return name, purchase, sale


class InventoryService:
    def __init__(self, repo, ledger: StockLedger | None = None, policy: AccessPolicy | None = None):
        self.repo = repo
        self.policy = policy or AccessPolicy()
        self.ledger = ledger or StockLedger(repo, self.policy)

    def list_products(self, actor: Actor) -> list[Product]:
        return self.repo.list_products(self.policy.owner_filter(actor, "read", "product"))

    def get_product(self, product_id: str, actor: Actor) -> Product:
        self.policy.require(actor, "read", "product")
        p = self.repo.get_product(product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def product_history(self, product_id: str, actor: Actor) -> list[InventoryTransaction]:
        self.get_product(product_id, actor)
        self.policy.require(actor, "read", "inventory_transaction")
        return self.repo.transactions_for_product(product_id)

    def create_product(
        self,
        name: str,
        purchase_price,
        sale_price,
        initial_stock: int,
        additional_costs: Iterable | None,
        actor: Actor,
    ) -> Product:
        self.policy.require(actor, "insert", "product")
        name, purchase, sale = _validate_details(name, purchase_price, sale_price)
        costs = _parse_additional_costs(additional_costs)
        stock = to_quantity(initial_stock, "Initial stock")
        if stock < 0:
            raise ValidationError("Stock values must be >= 0.")

        ts = now_iso()
        product = Product(
            id=new_id(),
            name=name,
            purchase_price=purchase,
            sale_price=sale,
            current_stock=0,
            additional_costs=costs,
            created_by=actor.user_id,
            created_at=ts,
            updated_at=ts,
        )
        with self.repo.unit_of_work() as uow:
            uow.insert_product(product)
            if stock > 0:
                self.ledger.record_movement(product.id, stock, "in", "Initial stock", actor, uow=uow)

        log.info("product_created product_id=%s initial_stock=%s actor=%s", product.id, stock, actor.user_id)
        return self.repo.get_product(product.id)

    def edit_product(
        self,
        product_id: str,
        name: str,
        purchase_price,
        sale_price,
        new_stock: Optional[int],
        additional_costs: Iterable | None,
        actor: Actor,
    ) -> Product:
        existing = self.repo.get_product(product_id)
        if not existing:
            raise NotFoundError("Product not found.")
        self.policy.require(actor, "update", existing)
        name, purchase, sale = _validate_details(name, purchase_price, sale_price)
        costs = _parse_additional_costs(additional_costs)

        with self.repo.unit_of_work() as uow:
            if not uow.update_product_details(product_id, name, purchase, sale, costs):
                raise NotFoundError("Product not found.")
            if new_stock is not None:
                self.ledger.reconcile_adjustment(
                    product_id,
                    new_stock,
                    actor,
                    notes="Stock adjustment during product edit",
                    uow=uow,
                )

        log.info("product_updated product_id=%s actor=%s", product_id, actor.user_id)
        return self.repo.get_product(product_id)

    def refill_stock(self, product_id: str, quantity: int, notes: Optional[str], actor: Actor) -> InventoryTransaction:
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found.")
        self.policy.require(actor, "update", product)
        note = (notes or "").strip() or "Stock refill"
        return self.ledger.record_movement(product_id, quantity, "in", note, actor)

    def delete_product(self, product_id: str, actor: Actor) -> None:
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found.")
        self.policy.require(actor, "delete", product)

        with self.repo.unit_of_work() as uow:
            if uow.count_sale_items_for_product(product_id) > 0:
                raise HasSalesHistoryError(product_id)
            removed = uow.delete_transactions_for_product(product_id)
            if not uow.delete_product(product_id):
                raise NotFoundError("Product not found.")

        log.info("product_deleted product_id=%s transactions_removed=%s actor=%s", product_id, removed, actor.user_id)
