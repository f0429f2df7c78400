from __future__ import annotations

import logging
from typing import Optional

from curuza.domain.errors import NotFoundError, ValidationError
from curuza.domain.models import Actor, Customer
from curuza.repositories.rows import new_id, now_iso
from curuza.services.access_policy import AccessPolicy

log = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, repo, policy: AccessPolicy | None = None):
        self.repo = repo
        self.policy = policy or AccessPolicy()

    def create_customer(
        self,
        name: str,
        actor: Actor,
        contact: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Customer:
        self.policy.require(actor, "insert", "customer")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Customer name is required.")
        contact = (contact or "").strip() or None
        email = (email or "").strip() or None
        if email is not None and "@" not in email:
            raise ValidationError("Email address is not valid.")

        customer = Customer(
            id=new_id(),
            name=name,
            contact=contact,
            email=email,
            created_by=actor.user_id,
            created_at=now_iso(),
        )
        with self.repo.unit_of_work() as uow:
            uow.insert_customer(customer)
        log.info("customer_created customer_id=%s actor=%s", customer.id, actor.user_id)
        return customer

    def get_customer(self, customer_id: str, actor: Actor) -> Customer:
        self.policy.require(actor, "read", "customer")
        customer = self.repo.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Customer not found.")
        return customer

    def list_customers(self, actor: Actor) -> list[Customer]:
        self.policy.require(actor, "read", "customer")
        return self.repo.list_customers()
