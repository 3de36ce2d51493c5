from datetime import date, datetime

import pytest

import db
from models import CustomerFormData
from sqlite_store import SqliteCustomerStore
from stores import LocalCustomerStore

TODAY = date(2024, 6, 15)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_form(**overrides) -> CustomerFormData:
    values = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "membership_type": "prestige",
        "expiry_date": date(2025, 1, 1),
        "phone": "+441234567890",
        "visits": 5,
    }
    values.update(overrides)
    return CustomerFormData(**values)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 15, 10, 30, 0))


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "membership.db")
    db.init_db()
    return db.DB_FILE


@pytest.fixture
def local_store(tmp_path, clock):
    return LocalCustomerStore(tmp_path / "customers.json", clock=clock)


@pytest.fixture
def sqlite_store(sqlite_db, clock):
    return SqliteCustomerStore(clock=clock)


@pytest.fixture(params=["local", "sqlite"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")
