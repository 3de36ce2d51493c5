"""
reports.py
Customer CSV reports by creation period and plan.

Every exported field is written as ="value" so spreadsheet apps keep it
as text (leading zeros, "+" prefixes on phone numbers, dates as typed).
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from errors import ValidationError
from models import PLANS, Customer
from stores import CustomerStore

logger = logging.getLogger(__name__)

REPORT_TYPES = ("daily", "weekly", "monthly", "yearly", "custom")
PLAN_FILTERS = ("all",) + PLANS

HEADERS = [
    "Membership Number",
    "First Name",
    "Last Name",
    "Email",
    "Phone",
    "Membership Type",
    "Visits Remaining",
    "Expiry Date",
    "Created Date",
]


@dataclass(frozen=True)
class Report:
    filename: str
    content: bytes
    row_count: int


def report_range(
    report_type: str,
    today: date,
    from_date: date | None = None,
    to_date: date | None = None,
) -> tuple[date, date]:
    if report_type == "daily":
        return today, today
    if report_type == "weekly":
        # weeks start on Sunday
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if report_type == "monthly":
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    if report_type == "yearly":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if report_type == "custom":
        if from_date is None or to_date is None:
            raise ValidationError("Custom reports need both a from and a to date.")
        if from_date > to_date:
            raise ValidationError("The from date must not be after the to date.")
        return from_date, to_date
    raise ValidationError(f"Unknown report type: {report_type!r}.")


def select_customers(
    customers: Iterable[Customer], start: date, end: date, plan_filter: str = "all"
) -> list[Customer]:
    if plan_filter not in PLAN_FILTERS:
        raise ValidationError(f"Unknown plan filter: {plan_filter!r}.")
    return [
        c for c in customers
        if start <= c.created_at.date() <= end
        and (plan_filter == "all" or c.membership_type == plan_filter)
    ]


def format_as_text(value) -> str:
    if value is None:
        return '=""'
    text = str(value).replace('"', '""')
    return f'="{text}"'


def _row(customer: Customer) -> list[str]:
    return [
        customer.membership_number,
        customer.first_name,
        customer.last_name,
        customer.email,
        customer.phone,
        customer.membership_type,
        str(customer.visits or 0),
        customer.expiry_date.strftime("%d/%m/%Y"),
        customer.created_at.strftime("%d/%m/%Y %H:%M:%S"),
    ]


def render_csv(customers: Iterable[Customer]) -> str:
    rows = [HEADERS] + [_row(c) for c in customers]
    return "\n".join(",".join(format_as_text(v) for v in row) for row in rows)


def report_filename(
    plan_filter: str,
    report_type: str,
    today: date,
    from_date: date | None = None,
    to_date: date | None = None,
) -> str:
    if report_type == "custom" and from_date and to_date:
        period = f"{from_date:%d-%m-%Y}-to-{to_date:%d-%m-%Y}"
    else:
        period = report_type
    return f"customers-report-{plan_filter}-{period}-{today:%d%m%Y}.csv"


def generate_report(
    store: CustomerStore,
    report_type: str,
    plan_filter: str = "all",
    from_date: date | None = None,
    to_date: date | None = None,
    today: date | None = None,
) -> Report:
    """
    Validates the period before touching the store; a store failure
    propagates and no report is produced.
    """
    today = today or date.today()
    start, end = report_range(report_type, today, from_date, to_date)
    if plan_filter not in PLAN_FILTERS:
        raise ValidationError(f"Unknown plan filter: {plan_filter!r}.")

    selected = select_customers(store.list(sort=True), start, end, plan_filter)
    content = render_csv(selected).encode("utf-8")
    filename = report_filename(plan_filter, report_type, today, from_date, to_date)

    logger.info("Generated %s with %d customers (%s to %s)", filename, len(selected), start, end)
    return Report(filename=filename, content=content, row_count=len(selected))
