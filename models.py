"""
models.py
Lightweight domain helpers (plans, filters, dataclasses).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime

from errors import ValidationError

PLANS = ("prestige", "premier")

# Values accepted by the customer list filter ("expiring" is synthetic)
MEMBERSHIP_FILTERS = ("all",) + PLANS + ("expiring",)

ROLES = ("staff", "admin")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_timestamp(value) -> datetime:
    """
    Accepts datetimes or ISO strings (with or without offset / trailing Z).
    Aware values are converted to local time and made naive so calendar
    bucketing matches what staff see on screen.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, date):
        ts = datetime(value.year, value.month, value.day)
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is not None:
        ts = ts.astimezone().replace(tzinfo=None)
    return ts


@dataclass(frozen=True)
class CustomerFormData:
    first_name: str
    last_name: str
    email: str
    membership_type: str
    expiry_date: date
    phone: str | None = None
    visits: int = 0

    def validate(self) -> None:
        errors: list[str] = []
        if not self.first_name.strip():
            errors.append("First name is required.")
        if not self.last_name.strip():
            errors.append("Last name is required.")
        if not EMAIL_RE.match(self.email.strip()):
            errors.append("Email must be a valid address.")
        if self.membership_type not in PLANS:
            errors.append(f"Membership type must be one of: {', '.join(PLANS)}.")
        if not isinstance(self.expiry_date, date):
            errors.append("Expiry date must be a calendar date.")
        if not isinstance(self.visits, int) or self.visits < 0:
            errors.append("Visits must be a non-negative whole number.")
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "membershipType": self.membership_type,
            "expiryDate": self.expiry_date.isoformat(),
            "visits": self.visits,
        }


@dataclass(frozen=True)
class Customer:
    id: str
    first_name: str
    last_name: str
    email: str
    membership_type: str
    membership_number: str
    expiry_date: date
    created_at: datetime
    phone: str | None = None
    visits: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def form_data(self) -> CustomerFormData:
        return CustomerFormData(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            membership_type=self.membership_type,
            expiry_date=self.expiry_date,
            phone=self.phone,
            visits=self.visits,
        )

    def to_dict(self) -> dict:
        # camelCase document shape shared by the JSON store and the REST API
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "membershipType": self.membership_type,
            "membershipNumber": self.membership_number,
            "expiryDate": self.expiry_date.isoformat(),
            "createdAt": self.created_at.isoformat(timespec="seconds"),
            "visits": self.visits,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Customer":
        return cls(
            id=str(data["id"]),
            first_name=data["firstName"],
            last_name=data["lastName"],
            email=data["email"],
            phone=data.get("phone") or None,
            membership_type=data["membershipType"],
            membership_number=data["membershipNumber"],
            expiry_date=parse_date(data["expiryDate"]),
            created_at=parse_timestamp(data["createdAt"]),
            visits=int(data.get("visits") or 0),
        )

    @classmethod
    def from_row(cls, row) -> "Customer":
        return cls(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            phone=row["phone"] or None,
            membership_type=row["membership_type"],
            membership_number=row["membership_number"],
            expiry_date=parse_date(row["expiry_date"]),
            created_at=parse_timestamp(row["created_at"]),
            visits=int(row["visits"] or 0),
        )


@dataclass(frozen=True)
class Stats:
    total: int = 0
    prestige: int = 0
    premier: int = 0
    expiring_soon: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Stats":
        return cls(
            total=int(data.get("total", 0)),
            prestige=int(data.get("prestige", 0)),
            premier=int(data.get("premier", 0)),
            expiring_soon=int(data.get("expiringSoon", 0)),
        )


@dataclass(frozen=True)
class Page:
    customers: list[Customer] = field(default_factory=list)
    total_pages: int = 0
    total_items: int = 0
    page: int = 1


@dataclass(frozen=True)
class User:
    id: str
    email: str
    role: str = "staff"
    full_name: str | None = None
    created_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=str(data["id"]),
            email=data["email"],
            role=data.get("role") or "staff",
            full_name=data.get("full_name"),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class Session:
    access_token: str
    expires_at: datetime
