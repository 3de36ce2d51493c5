import pytest

from conftest import make_form
from verification import parse_payload, resolve_payload


@pytest.mark.parametrize(
    "payload, number, customer_id, error",
    [
        ("/verify?membershipNumber=P123456", "P123456", None, None),
        ("https://desk.example.com/verify?customerId=abc-123", None, "abc-123", None),
        ("P654321", "P654321", None, None),
        ("/verify?error=customer_not_found", None, None, "customer_not_found"),
        ("/verify?foo=bar", None, None, "unrecognised_payload"),
        ("   ", None, None, "empty_payload"),
    ],
)
def test_parse_payload(payload, number, customer_id, error):
    target = parse_payload(payload)

    assert target.membership_number == number
    assert target.customer_id == customer_id
    assert target.error == error


def test_card_payload_resolves_back_to_customer(store):
    created = store.create(make_form())

    assert resolve_payload(store, store.qr_payload(created.id)) == created


def test_unknown_payload_resolves_to_none(local_store):
    local_store.create(make_form())

    assert resolve_payload(local_store, "/verify?membershipNumber=P000000") is None
    assert resolve_payload(local_store, local_store.qr_payload("missing")) is None
