"""
utils.py
Dates, display frames, sample data.
"""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd

from models import Customer, CustomerFormData, User
from query import days_until
from stores import CustomerStore

CUSTOMER_COLUMNS = [
    "membership_number", "first_name", "last_name", "email", "phone",
    "membership_type", "visits", "expiry_date", "days_left", "created_at", "id",
]


def customers_to_frame(customers: list[Customer], today: date | None = None) -> pd.DataFrame:
    if not customers:
        return pd.DataFrame(columns=CUSTOMER_COLUMNS)
    today = today or date.today()
    df = pd.DataFrame([
        {
            "membership_number": c.membership_number,
            "first_name": c.first_name,
            "last_name": c.last_name,
            "email": c.email,
            "phone": c.phone or "",
            "membership_type": c.membership_type,
            "visits": c.visits,
            "expiry_date": c.expiry_date.isoformat(),
            "days_left": days_until(c.expiry_date, today),
            "created_at": c.created_at.strftime("%Y-%m-%d %H:%M"),
            "id": c.id,
        }
        for c in customers
    ])
    return df[CUSTOMER_COLUMNS]


def users_to_frame(users: list[User]) -> pd.DataFrame:
    df = pd.DataFrame([u.to_dict() for u in users])
    if df.empty:
        return pd.DataFrame(columns=["id", "email", "full_name", "role", "created_at"])
    return df


def insert_sample_data(store: CustomerStore, today: date | None = None) -> list[Customer]:
    """
    Insert 4 customers (safe to run multiple times: adds new rows each time).
    """
    today = today or date.today()
    samples = [
        # expires in ~5 days (shows up under "expiring")
        CustomerFormData("Ahmed", "Hassan", "ahmed.hassan@example.com", "prestige",
                         today + timedelta(days=5), phone="+201000000001", visits=3),
        CustomerFormData("Mona", "Ali", "mona.ali@example.com", "premier",
                         today + timedelta(days=90), phone="01000000002", visits=10),
        # already expired
        CustomerFormData("Omar", "Samy", "omar.samy@example.com", "premier",
                         today - timedelta(days=2), visits=0),
        CustomerFormData("Laila", "Nour", "laila.nour@example.com", "prestige",
                         today + timedelta(days=365), phone="01000000004", visits=24),
    ]
    return [store.create(s) for s in samples]
