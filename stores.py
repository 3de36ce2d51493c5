"""
stores.py
Customer store contract, membership numbers, the JSON-file store and the
factory that picks a backend from settings.
"""

from __future__ import annotations

import json
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from errors import BackendError, NotFoundError
from models import Customer, CustomerFormData, Page, Stats
from query import compute_stats, paginate, sort_newest_first

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def generate_membership_number(membership_type: str) -> str:
    """
    First letter of the plan + 6 random digits, e.g. "P482913".
    Not checked for collisions against existing customers.
    """
    prefix = membership_type[:1].upper()
    return f"{prefix}{random.randint(100000, 999999)}"


class CustomerStore(ABC):
    """
    Everything the app does with customers goes through this interface.
    Lookups return None on a miss; update/delete raise NotFoundError.
    """

    def __init__(self, clock: Clock | None = None):
        self.clock: Clock = clock or datetime.now

    def now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    @abstractmethod
    def list(self, sort: bool = True) -> list[Customer]: ...

    @abstractmethod
    def paginated_list(
        self, page: int, page_size: int, search: str = "", membership_filter: str = "all"
    ) -> Page: ...

    @abstractmethod
    def get_by_id(self, customer_id: str) -> Customer | None: ...

    @abstractmethod
    def get_by_membership_number(self, membership_number: str) -> Customer | None: ...

    @abstractmethod
    def create(self, data: CustomerFormData) -> Customer: ...

    @abstractmethod
    def update(self, customer_id: str, data: CustomerFormData) -> Customer: ...

    @abstractmethod
    def delete(self, customer_id: str) -> None: ...

    @abstractmethod
    def stats(self) -> Stats: ...

    @abstractmethod
    def decrement_visits(self, customer_id: str) -> Customer | None: ...

    @abstractmethod
    def qr_payload(self, customer_id: str) -> str: ...


class LocalCustomerStore(CustomerStore):
    """
    Whole collection kept as one JSON document; every write rewrites it.
    """

    def __init__(self, path: Path | str, clock: Clock | None = None):
        super().__init__(clock)
        self.path = Path(path)

    # ---------- document I/O ----------

    def _load(self) -> list[Customer]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            raise BackendError(f"Could not read {self.path}: {e}") from e
        try:
            return [Customer.from_dict(item) for item in raw]
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise BackendError(f"Malformed customer record in {self.path}: {e!r}") from e

    def _save(self, customers: list[Customer]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps([c.to_dict() for c in customers], indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise BackendError(f"Could not write {self.path}: {e}") from e

    def _index_of(self, customers: list[Customer], customer_id: str) -> int:
        for i, c in enumerate(customers):
            if c.id == customer_id:
                return i
        return -1

    # ---------- contract ----------

    def list(self, sort: bool = True) -> list[Customer]:
        customers = self._load()
        return sort_newest_first(customers) if sort else customers

    def paginated_list(self, page, page_size, search="", membership_filter="all") -> Page:
        logger.debug("Local page %s (size %s, search=%r, filter=%s)", page, page_size, search, membership_filter)
        return paginate(self._load(), page, page_size, search, membership_filter, today=self.now().date())

    def get_by_id(self, customer_id):
        return next((c for c in self._load() if c.id == customer_id), None)

    def get_by_membership_number(self, membership_number):
        return next((c for c in self._load() if c.membership_number == membership_number), None)

    def create(self, data: CustomerFormData) -> Customer:
        data.validate()
        customers = self._load()
        customer = Customer(
            id=str(uuid.uuid4()),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            email=data.email.strip(),
            phone=(data.phone or "").strip() or None,
            membership_type=data.membership_type,
            membership_number=generate_membership_number(data.membership_type),
            expiry_date=data.expiry_date,
            created_at=self.now(),
            visits=data.visits or 0,
        )
        customers.append(customer)
        self._save(customers)
        logger.info("Created customer %s (%s)", customer.id, customer.membership_number)
        return customer

    def update(self, customer_id: str, data: CustomerFormData) -> Customer:
        data.validate()
        customers = self._load()
        index = self._index_of(customers, customer_id)
        if index == -1:
            raise NotFoundError(f"Customer {customer_id} not found.")
        current = customers[index]
        updated = Customer(
            id=current.id,
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            email=data.email.strip(),
            phone=(data.phone or "").strip() or None,
            membership_type=data.membership_type,
            membership_number=current.membership_number,
            expiry_date=data.expiry_date,
            created_at=current.created_at,
            visits=data.visits or 0,
        )
        customers[index] = updated
        self._save(customers)
        logger.info("Updated customer %s", customer_id)
        return updated

    def delete(self, customer_id: str) -> None:
        customers = self._load()
        remaining = [c for c in customers if c.id != customer_id]
        if len(remaining) == len(customers):
            raise NotFoundError(f"Customer {customer_id} not found.")
        self._save(remaining)
        logger.info("Deleted customer %s", customer_id)

    def stats(self) -> Stats:
        return compute_stats(self._load(), today=self.now().date())

    def decrement_visits(self, customer_id: str) -> Customer | None:
        customers = self._load()
        index = self._index_of(customers, customer_id)
        if index == -1:
            return None
        customer = customers[index]
        if customer.visits > 0:
            customer = replace(customer, visits=customer.visits - 1)
            customers[index] = customer
            self._save(customers)
        return customer

    def qr_payload(self, customer_id: str) -> str:
        customer = self.get_by_id(customer_id)
        if not customer:
            logger.error("Could not build verification payload: customer %s not found", customer_id)
            return "/verify?error=customer_not_found"
        return f"/verify?membershipNumber={customer.membership_number}"

    def clear(self) -> None:
        """Drop the whole document (used after a completed migration)."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise BackendError(f"Could not remove {self.path}: {e}") from e


def make_store(settings, token_provider: Callable[[], str | None] | None = None) -> CustomerStore:
    if settings.backend == "sqlite":
        import db
        from sqlite_store import SqliteCustomerStore

        db.configure(settings.db_file)
        db.init_db()
        return SqliteCustomerStore()
    if settings.backend == "rest":
        from rest_store import RestCustomerStore

        return RestCustomerStore(
            settings.api_base_url,
            timeout=settings.api_timeout,
            token_provider=token_provider,
        )
    return LocalCustomerStore(settings.store_file)
