"""
verification.py
Turns the payload printed on a membership card back into a customer.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from models import Customer
from stores import CustomerStore


@dataclass(frozen=True)
class VerificationTarget:
    membership_number: str | None = None
    customer_id: str | None = None
    error: str | None = None


def parse_payload(payload: str) -> VerificationTarget:
    """
    Accepts "/verify?membershipNumber=P123456", "/verify?customerId=<id>"
    (absolute URLs too) or a bare membership number.
    """
    payload = (payload or "").strip()
    if not payload:
        return VerificationTarget(error="empty_payload")

    parts = urlsplit(payload)
    if not parts.query and "/" not in payload:
        return VerificationTarget(membership_number=payload)

    params = parse_qs(parts.query)
    if params.get("error"):
        return VerificationTarget(error=params["error"][0])
    if params.get("membershipNumber"):
        return VerificationTarget(membership_number=params["membershipNumber"][0])
    if params.get("customerId"):
        return VerificationTarget(customer_id=params["customerId"][0])
    return VerificationTarget(error="unrecognised_payload")


def resolve_payload(store: CustomerStore, payload: str) -> Customer | None:
    target = parse_payload(payload)
    if target.membership_number:
        return store.get_by_membership_number(target.membership_number)
    if target.customer_id:
        return store.get_by_id(target.customer_id)
    return None
