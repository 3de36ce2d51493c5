"""
sqlite_store.py
Relational customer store: search, filter, counts and paging are pushed
down into SQL instead of scanning the collection in Python.
"""

from __future__ import annotations

import logging
import uuid

import db
from errors import NotFoundError
from models import Customer, CustomerFormData, Page, Stats
from query import check_membership_filter, check_page_size, clamp_page, expiring_window, page_count
from stores import Clock, CustomerStore, generate_membership_number

logger = logging.getLogger(__name__)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqliteCustomerStore(CustomerStore):
    """
    Expects db.init_db() to have run against the configured database file.
    """

    def __init__(self, clock: Clock | None = None):
        super().__init__(clock)

    def _where(self, search: str, membership_filter: str) -> tuple[str, list]:
        sql = " WHERE 1=1"
        params: list = []

        term = (search or "").strip()
        if term:
            sql += (
                " AND (py_lower(first_name || ' ' || last_name) LIKE ? ESCAPE '\\'"
                " OR py_lower(email) LIKE ? ESCAPE '\\'"
                " OR py_lower(membership_number) LIKE ? ESCAPE '\\')"
            )
            like = _like_pattern(term.lower())
            params.extend([like, like, like])

        if membership_filter == "expiring":
            first, last = expiring_window(self.now().date())
            sql += " AND expiry_date BETWEEN ? AND ?"
            params.extend([first.isoformat(), last.isoformat()])
        elif membership_filter != "all":
            sql += " AND membership_type = ?"
            params.append(membership_filter)

        return sql, params

    def list(self, sort: bool = True) -> list[Customer]:
        sql = "SELECT * FROM customers"
        if sort:
            sql += " ORDER BY created_at DESC"
        return [Customer.from_row(r) for r in db.fetch_all(sql)]

    def paginated_list(self, page, page_size, search="", membership_filter="all") -> Page:
        check_page_size(page_size)
        check_membership_filter(membership_filter)
        where, params = self._where(search, membership_filter)

        total_items = db.fetch_one(f"SELECT COUNT(*) AS c FROM customers{where}", tuple(params))["c"]
        total_pages = page_count(total_items, page_size)
        current = clamp_page(page, total_pages)

        rows = db.fetch_all(
            f"SELECT * FROM customers{where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            tuple(params + [page_size, (current - 1) * page_size]),
        )
        return Page(
            customers=[Customer.from_row(r) for r in rows],
            total_pages=total_pages,
            total_items=total_items,
            page=current,
        )

    def get_by_id(self, customer_id):
        row = db.fetch_one("SELECT * FROM customers WHERE id = ?", (customer_id,))
        return Customer.from_row(row) if row else None

    def get_by_membership_number(self, membership_number):
        row = db.fetch_one("SELECT * FROM customers WHERE membership_number = ?", (membership_number,))
        return Customer.from_row(row) if row else None

    def create(self, data: CustomerFormData) -> Customer:
        data.validate()
        customer_id = str(uuid.uuid4())
        db.execute(
            """
            INSERT INTO customers(id, first_name, last_name, email, phone, membership_type,
                membership_number, expiry_date, created_at, visits)
            VALUES(?,?,?,?,?,?,?,?,?,?)
            """,
            (
                customer_id,
                data.first_name.strip(),
                data.last_name.strip(),
                data.email.strip(),
                (data.phone or "").strip() or None,
                data.membership_type,
                generate_membership_number(data.membership_type),
                data.expiry_date.isoformat(),
                self.now().isoformat(timespec="seconds"),
                data.visits or 0,
            ),
        )
        logger.info("Created customer %s", customer_id)
        return self.get_by_id(customer_id)

    def update(self, customer_id: str, data: CustomerFormData) -> Customer:
        data.validate()
        touched = db.execute(
            """
            UPDATE customers SET first_name=?, last_name=?, email=?, phone=?,
                membership_type=?, expiry_date=?, visits=?
            WHERE id=?
            """,
            (
                data.first_name.strip(),
                data.last_name.strip(),
                data.email.strip(),
                (data.phone or "").strip() or None,
                data.membership_type,
                data.expiry_date.isoformat(),
                data.visits or 0,
                customer_id,
            ),
        )
        if not touched:
            raise NotFoundError(f"Customer {customer_id} not found.")
        logger.info("Updated customer %s", customer_id)
        return self.get_by_id(customer_id)

    def delete(self, customer_id: str) -> None:
        if not db.execute("DELETE FROM customers WHERE id = ?", (customer_id,)):
            raise NotFoundError(f"Customer {customer_id} not found.")
        logger.info("Deleted customer %s", customer_id)

    def stats(self) -> Stats:
        first, last = expiring_window(self.now().date())
        row = db.fetch_one(
            """
            SELECT COUNT(*) AS total,
                COALESCE(SUM(membership_type = 'prestige'), 0) AS prestige,
                COALESCE(SUM(membership_type = 'premier'), 0) AS premier,
                COALESCE(SUM(expiry_date BETWEEN ? AND ?), 0) AS expiring_soon
            FROM customers
            """,
            (first.isoformat(), last.isoformat()),
        )
        return Stats(
            total=int(row["total"]),
            prestige=int(row["prestige"]),
            premier=int(row["premier"]),
            expiring_soon=int(row["expiring_soon"]),
        )

    def decrement_visits(self, customer_id: str) -> Customer | None:
        # the visits > 0 guard keeps the counter at its floor
        db.execute("UPDATE customers SET visits = visits - 1 WHERE id = ? AND visits > 0", (customer_id,))
        return self.get_by_id(customer_id)

    def qr_payload(self, customer_id: str) -> str:
        return f"/verify?customerId={customer_id}"
