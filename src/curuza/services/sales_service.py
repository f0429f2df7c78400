from __future__ import annotations

from collections import Counter
import logging
from typing import Iterable, Optional

from curuza.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    PartialSaleFailure,
    ValidationError,
)
from curuza.domain.models import PAYMENT_METHODS, PAYMENT_STATUSES, Actor, Sale, SaleItem
from curuza.domain.money import ZERO, to_money, to_quantity
from curuza.repositories.rows import new_id, now_iso
from curuza.services.access_policy import AccessPolicy
from curuza.services.ledger_service import StockLedger

log = logging.getLogger("curuza.sales")


class SalesService:
    def __init__(self, repo, ledger: StockLedger | None = None, policy: AccessPolicy | None = None):
        self.repo = repo
        self.policy = policy or AccessPolicy()
        self.ledger = ledger or StockLedger(repo, self.policy)

    def _validate_lines(self, items: list[dict]) -> list[dict]:
        lines = []
        for it in items:
            product_id = it.get("product_id")
            if not product_id:
                raise ValidationError("Every sale line needs a product.")
            qty = to_quantity(it.get("quantity"), "Quantity")
            price = to_money(it.get("unit_price"), "Unit price")
            discount = to_money(it.get("discount", 0), "Discount")
            if qty <= 0:
                raise ValidationError("Quantity must be >= 1.")
            if price < 0:
                raise ValidationError("Unit price must be >= 0.")
            if discount < 0:
                raise ValidationError("Discount must be >= 0.")
            if discount > price * qty:
                raise ValidationError("Discount cannot exceed the line total.")
            lines.append({"product_id": str(product_id), "quantity": qty, "unit_price": price, "discount": discount})
        return lines

    def _check_stock(self, lines: list[dict]) -> None:
        # repeated lines for one product are checked against the combined quantity
        qty_by_product: Counter[str] = Counter()
        for line in lines:
            qty_by_product[line["product_id"]] += line["quantity"]

        for product_id, qty in qty_by_product.items():
            prod = self.repo.get_product(product_id)
            if not prod:
                raise NotFoundError(f"Product not found: {product_id}")
            if qty > prod.current_stock:
                raise InsufficientStockError(product_id, qty, prod.current_stock, prod.name)

    def record_sale(
        self,
        customer_name: str,
        items: Iterable[dict],
        payment_method: str,
        payment_status: str,
        notes: Optional[str],
        actor: Actor,
        customer_id: Optional[str] = None,
    ) -> Sale:
        """
        items: [{product_id, quantity, unit_price, discount}]

        The sale, its items and one ``out`` movement per item are written in
        a single unit of work. Anything that fails before the write is
        rejected with no side effects; a stock movement that fails during
        the write rolls the whole sale back and surfaces as
        PartialSaleFailure.
        """
        self.policy.require(actor, "insert", "sale")
        self.policy.require(actor, "insert", "sale_item")

        items = list(items)
        if not items:
            raise ValidationError("Cart is empty.")
        customer_name = (customer_name or "").strip()
        if not customer_name:
            raise ValidationError("Customer name is required.")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of {', '.join(PAYMENT_METHODS)}.")
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Payment status must be one of {', '.join(PAYMENT_STATUSES)}.")
        if customer_id is not None and not self.repo.get_customer(customer_id):
            raise NotFoundError("Customer not found.")

        lines = self._validate_lines(items)
        try:
            self._check_stock(lines)
        except (InsufficientStockError, NotFoundError) as exc:
            log.warning("sale_rejected reason=%s actor=%s", exc, actor.user_id)
            raise

        total = sum((ln["unit_price"] * ln["quantity"] - ln["discount"] for ln in lines), ZERO)
        discount_total = sum((ln["discount"] for ln in lines), ZERO)

        ts = now_iso()
        sale = Sale(
            id=new_id(),
            customer_id=customer_id,
            customer_name=customer_name,
            sale_date=ts,
            total_amount=total,
            discount_amount=discount_total,
            payment_method=payment_method,
            payment_status=payment_status,
            notes=notes,
            created_by=actor.user_id,
            created_at=ts,
        )
        sale_items = tuple(
            SaleItem(
                id=new_id(),
                sale_id=sale.id,
                product_id=ln["product_id"],
                quantity=ln["quantity"],
                price=ln["unit_price"],
                discount=ln["discount"],
            )
            for ln in lines
        )

        try:
            with self.repo.unit_of_work() as uow:
                uow.insert_sale(sale)
                for item in sale_items:
                    uow.insert_sale_item(item)
                for idx, item in enumerate(sale_items):
                    try:
                        self.ledger.record_movement(
                            item.product_id,
                            item.quantity,
                            "out",
                            f"Sale: {customer_name}",
                            actor,
                            uow=uow,
                        )
                    except (InsufficientStockError, NotFoundError) as exc:
                        raise PartialSaleFailure(idx, item.product_id, exc) from exc
        except PartialSaleFailure as exc:
            log.warning(
                "sale_rolled_back item_index=%s product_id=%s reason=%s actor=%s",
                exc.item_index,
                exc.product_id,
                exc.cause,
                actor.user_id,
            )
            raise

        log.info(
            "sale_recorded sale_id=%s items=%s total=%s actor=%s",
            sale.id,
            len(sale_items),
            total,
            actor.user_id,
        )
        return self.repo.get_sale(sale.id)

    def get_sale(self, sale_id: str, actor: Actor) -> Sale:
        sale = self.repo.get_sale(sale_id)
        if not sale:
            raise NotFoundError("Sale not found.")
        self.policy.require(actor, "read", sale)
        return sale

    def list_sales(self, actor: Actor, start_iso: Optional[str] = None, end_iso: Optional[str] = None) -> list[Sale]:
        owner = self.policy.owner_filter(actor, "read", "sale")
        return self.repo.list_sales(owner, start_iso, end_iso)
