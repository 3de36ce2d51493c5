"""
errors.py
Error taxonomy shared by the stores, the report generator and the auth gate.
"""

from __future__ import annotations


class MembershipError(Exception):
    """Base class for every error the app shows to staff as a notification."""


class NotFoundError(MembershipError):
    pass


class ValidationError(MembershipError):
    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AuthError(MembershipError):
    pass


class BackendError(MembershipError):
    """Storage or network failure, message kept as the backend reported it."""
