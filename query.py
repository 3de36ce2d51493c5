"""
query.py
Search / membership filter / pagination over customer lists, plus the
dashboard counts. Backends that cannot push a filter down to their storage
run their records through these functions.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Iterable

from errors import ValidationError
from models import MEMBERSHIP_FILTERS, PLANS, Customer, Page, Stats

EXPIRING_SOON_DAYS = 30


def days_until(expiry: date, today: date) -> int:
    """
    Whole calendar days from today to the expiry date. Same as rounding the
    fractional difference from the current instant up.
    """
    return (expiry - today).days


def is_expiring_soon(expiry: date, today: date) -> bool:
    return 0 < days_until(expiry, today) <= EXPIRING_SOON_DAYS


def expiring_window(today: date) -> tuple[date, date]:
    """Inclusive expiry-date bounds selecting exactly the expiring-soon set."""
    return today + timedelta(days=1), today + timedelta(days=EXPIRING_SOON_DAYS)


def check_membership_filter(membership_filter: str) -> str:
    if membership_filter not in MEMBERSHIP_FILTERS:
        raise ValidationError(f"Unknown membership filter: {membership_filter!r}.")
    return membership_filter


def check_page_size(page_size: int) -> int:
    if page_size < 1:
        raise ValidationError("Page size must be at least 1.")
    return page_size


def matches_search(customer: Customer, term: str) -> bool:
    term = (term or "").strip().lower()
    if not term:
        return True
    return (
        term in customer.full_name.lower()
        or term in customer.email.lower()
        or term in customer.membership_number.lower()
    )


def matches_filter(customer: Customer, membership_filter: str, today: date) -> bool:
    check_membership_filter(membership_filter)
    if membership_filter == "all":
        return True
    if membership_filter == "expiring":
        return is_expiring_soon(customer.expiry_date, today)
    return customer.membership_type == membership_filter


def sort_newest_first(customers: Iterable[Customer]) -> list[Customer]:
    return sorted(customers, key=lambda c: c.created_at, reverse=True)


def clamp_page(page: int, total_pages: int) -> int:
    # an empty result set still has a page 1
    last = max(total_pages, 1)
    return min(max(page, 1), last)


def page_count(total_items: int, page_size: int) -> int:
    return math.ceil(total_items / page_size)


def paginate(
    customers: Iterable[Customer],
    page: int,
    page_size: int,
    search: str = "",
    membership_filter: str = "all",
    today: date | None = None,
) -> Page:
    check_page_size(page_size)
    check_membership_filter(membership_filter)
    today = today or date.today()

    matched = [
        c for c in customers
        if matches_search(c, search) and matches_filter(c, membership_filter, today)
    ]
    matched = sort_newest_first(matched)

    total_items = len(matched)
    total_pages = page_count(total_items, page_size)
    current = clamp_page(page, total_pages)
    start = (current - 1) * page_size

    return Page(
        customers=matched[start:start + page_size],
        total_pages=total_pages,
        total_items=total_items,
        page=current,
    )


def compute_stats(customers: Iterable[Customer], today: date | None = None) -> Stats:
    today = today or date.today()
    customers = list(customers)
    counts = {plan: 0 for plan in PLANS}
    expiring = 0
    for c in customers:
        if c.membership_type in counts:
            counts[c.membership_type] += 1
        if is_expiring_soon(c.expiry_date, today):
            expiring += 1
    return Stats(
        total=len(customers),
        prestige=counts["prestige"],
        premier=counts["premier"],
        expiring_soon=expiring,
    )
