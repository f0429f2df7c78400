from __future__ import annotations

from typing import Optional

from curuza.domain.errors import AuthorizationError
from curuza.domain.models import (
    Actor,
    Customer,
    InventoryTransaction,
    Product,
    PurchasePlan,
    PurchasePlanItem,
    Sale,
    SaleItem,
    UserRole,
)

ANY = "any"
OWN = "own"

ENTITY_TYPES: dict[type, str] = {
    Product: "product",
    InventoryTransaction: "inventory_transaction",
    Customer: "customer",
    Sale: "sale",
    SaleItem: "sale_item",
    PurchasePlan: "purchase_plan",
    PurchasePlanItem: "purchase_plan_item",
    UserRole: "user_role",
}


def _grant(role: str, entity: str, **actions: str) -> dict[tuple[str, str, str], str]:
    return {(role, action, entity): scope for action, scope in actions.items()}


POLICY: dict[tuple[str, str, str], str] = {
    **_grant("admin", "product", read=ANY, insert=ANY, update=ANY, delete=ANY),
    **_grant("user", "product", read=ANY, insert=ANY, update=OWN, delete=OWN),
    **_grant("admin", "inventory_transaction", read=ANY, insert=ANY),
    **_grant("user", "inventory_transaction", read=ANY, insert=ANY),
    **_grant("admin", "customer", read=ANY, insert=ANY, update=ANY),
    **_grant("user", "customer", read=ANY, insert=ANY),
    **_grant("admin", "sale", read=ANY, insert=ANY),
    **_grant("user", "sale", read=ANY, insert=ANY),
    **_grant("admin", "sale_item", read=ANY, insert=ANY),
    **_grant("user", "sale_item", read=ANY, insert=ANY),
    **_grant("admin", "purchase_plan", read=ANY, insert=ANY, update=ANY, delete=ANY),
    **_grant("user", "purchase_plan", read=OWN, insert=ANY, update=OWN, delete=OWN),
    **_grant("admin", "purchase_plan_item", read=ANY, insert=ANY, update=ANY, delete=ANY),
    **_grant("user", "purchase_plan_item", read=OWN, insert=ANY, update=OWN, delete=OWN),
    **_grant("admin", "user_role", read=ANY, update=ANY),
    **_grant("user", "user_role", read=OWN),
}


def entity_type(entity: object) -> str:
    if isinstance(entity, str):
        return entity
    name = ENTITY_TYPES.get(type(entity))
    if name is None:
        raise TypeError(f"No access policy for {type(entity).__name__}")
    return name


def owner_of(entity: object) -> Optional[str]:
    if isinstance(entity, UserRole):
        return entity.user_id
    return getattr(entity, "created_by", None)


class AccessPolicy:
    """Row-level authorization.

    ``entity`` is either an entity-type name (type-level check, used before
    inserts and listings) or a record, in which case ``own`` scopes compare
    the record's owner with the actor.
    """

    def __init__(self, table: dict[tuple[str, str, str], str] | None = None):
        self.table = POLICY if table is None else table

    def scope(self, actor: Actor | None, action: str, entity: object) -> Optional[str]:
        if actor is None or not actor.user_id:
            return None
        return self.table.get((actor.role, action, entity_type(entity)))

    def can(self, actor: Actor | None, action: str, entity: object) -> bool:
        scope = self.scope(actor, action, entity)
        if scope is None:
            return False
        if scope == ANY or isinstance(entity, str):
            return True
        return owner_of(entity) == actor.user_id

    def require(self, actor: Actor | None, action: str, entity: object) -> None:
        if not self.can(actor, action, entity):
            role = actor.role if actor else "anonymous"
            raise AuthorizationError(f"Role '{role}' is not allowed to {action} this {entity_type(entity)}.")

    def owner_filter(self, actor: Actor | None, action: str, entity_name: str) -> Optional[str]:
        """None when the actor may see every row, else the user id to filter by."""
        self.require(actor, action, entity_name)
        return None if self.scope(actor, action, entity_name) == ANY else actor.user_id
