# Overview: Customer directory operations; plain CRUD over the customer store.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from .errors import CustomerNotFound
from .repositories import CustomerStore

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "loyalty_points", "is_active"}


def list_customers(*, include_inactive: bool = False, search: str | None = None, session=None) -> dict:
    customers = CustomerStore(session or db.session).list(include_inactive=include_inactive, search=search)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


def get_customer(customer_id: int, *, session=None) -> Customer:
    customer = CustomerStore(session or db.session).get(customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def create_customer(*, patch: dict, session=None) -> dict:
    session = session or db.session
    customer = Customer()
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    CustomerStore(session).add(customer)
    session.commit()
    return customer.to_dict()


def update_customer(*, customer_id: int, patch: dict, session=None) -> dict:
    """
    Update contact details.

    ``total_purchases_cents`` is maintained by the transaction engine and is
    never client-writable.
    """
    session = session or db.session
    customer = get_customer(customer_id, session=session)
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    session.commit()
    return customer.to_dict()
