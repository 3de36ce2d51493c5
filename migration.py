"""
migration.py
Copy customers kept in the local JSON file into another store (SQLite or the API).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from errors import MembershipError
from stores import CustomerStore, LocalCustomerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationResult:
    migrated: int
    failed: int

    @property
    def complete(self) -> bool:
        return self.migrated > 0 and self.failed == 0


def migrate_customers(source: LocalCustomerStore, target: CustomerStore) -> MigrationResult:
    """
    Each record is created fresh in the target, so it gets a new id,
    membership number and creation time there. The local file is removed
    only when every record made it across.
    """
    customers = source.list(sort=False)
    if not customers:
        logger.info("No local customers to migrate")
        return MigrationResult(migrated=0, failed=0)

    migrated = failed = 0
    for customer in customers:
        try:
            target.create(customer.form_data())
            migrated += 1
        except MembershipError as e:
            logger.error("Failed to migrate customer %s: %s", customer.email, e)
            failed += 1

    result = MigrationResult(migrated=migrated, failed=failed)
    logger.info("Migrated %d customers, %d failed", migrated, failed)
    if result.complete:
        source.clear()
        logger.info("Local store cleared after successful migration")
    return result
