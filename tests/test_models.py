from datetime import date, datetime, timedelta, timezone

import pandas as pd
import pytest

from conftest import TODAY, make_form
from errors import ValidationError
from models import Customer, parse_timestamp
from utils import customers_to_frame, insert_sample_data


def test_form_validation_lists_every_problem():
    with pytest.raises(ValidationError) as exc:
        make_form(first_name="", last_name="", email="x@", membership_type="gold", visits=-2).validate()

    assert len(exc.value.errors) == 5


def test_customer_document_round_trip():
    customer = Customer(
        id="c1", first_name="Ada", last_name="Lovelace", email="ada@example.com",
        membership_type="premier", membership_number="P100001",
        expiry_date=date(2025, 1, 1), created_at=datetime(2024, 6, 15, 10, 30), phone=None, visits=0,
    )

    assert Customer.from_dict(customer.to_dict()) == customer


def test_missing_visits_default_to_zero():
    doc = {
        "id": "c1", "firstName": "A", "lastName": "B", "email": "a@b.co", "membershipType": "prestige",
        "membershipNumber": "P111111", "expiryDate": "2025-01-01", "createdAt": "2024-01-01T00:00:00",
    }

    assert Customer.from_dict(doc).visits == 0


def test_aware_timestamps_become_local_naive():
    ts = parse_timestamp("2024-06-15T10:30:00Z")

    assert ts.tzinfo is None
    assert ts == datetime(2024, 6, 15, 10, 30, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)


def test_customers_frame_has_days_left(local_store):
    created = local_store.create(make_form(expiry_date=TODAY + timedelta(days=12)))

    df = customers_to_frame([created], today=TODAY)

    assert isinstance(df, pd.DataFrame)
    assert df.loc[0, "days_left"] == 12
    assert df.loc[0, "membership_number"] == created.membership_number


def test_empty_frame_keeps_columns():
    assert list(customers_to_frame([]).columns)[0] == "membership_number"


def test_sample_data_covers_expiring_and_expired(local_store):
    insert_sample_data(local_store, today=TODAY)

    stats = local_store.stats()

    assert stats.total == 4
    assert stats.expiring_soon == 1
