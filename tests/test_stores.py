import math
import re
from datetime import datetime, timedelta

import pytest

from conftest import TODAY, make_form
from errors import BackendError, NotFoundError, ValidationError


def _create_at(store, clock, when: datetime, **overrides):
    clock.now = when
    return store.create(make_form(**overrides))


def test_create_then_get_round_trip(store):
    created = store.create(make_form(visits=0))

    fetched = store.get_by_id(created.id)

    assert fetched == created
    assert fetched.first_name == "Ada"
    assert fetched.email == "ada@example.com"
    assert fetched.phone == "+441234567890"
    assert fetched.visits == 0
    assert fetched.created_at == datetime(2024, 6, 15, 10, 30, 0)
    assert re.fullmatch(r"P\d{6}", fetched.membership_number)


def test_membership_number_prefix_follows_plan(store):
    created = store.create(make_form(membership_type="premier"))

    assert re.fullmatch(r"P\d{6}", created.membership_number)
    assert created.membership_number[1:].isdigit()


def test_create_rejects_invalid_record(store):
    with pytest.raises(ValidationError) as exc:
        store.create(make_form(first_name=" ", email="not-an-email", visits=-1))

    assert len(exc.value.errors) == 3
    assert store.list() == []


def test_lookup_misses_return_none(store):
    assert store.get_by_id("missing") is None
    assert store.get_by_membership_number("P000000") is None
    assert store.decrement_visits("missing") is None


def test_get_by_membership_number(store):
    created = store.create(make_form())

    assert store.get_by_membership_number(created.membership_number).id == created.id


def test_update_keeps_identity_fields(store, clock):
    created = store.create(make_form())
    clock.now = datetime(2024, 7, 1, 9, 0, 0)

    updated = store.update(created.id, make_form(first_name="Augusta", membership_type="premier", visits=2))

    assert updated.id == created.id
    assert updated.first_name == "Augusta"
    assert updated.membership_type == "premier"
    assert updated.visits == 2
    assert updated.membership_number == created.membership_number
    assert updated.created_at == created.created_at
    assert store.get_by_id(created.id) == updated


def test_update_missing_raises(store):
    with pytest.raises(NotFoundError):
        store.update("missing", make_form())


def test_delete(store):
    created = store.create(make_form())

    store.delete(created.id)

    assert store.get_by_id(created.id) is None
    with pytest.raises(NotFoundError):
        store.delete(created.id)


def test_list_sorted_newest_first(store, clock):
    old = _create_at(store, clock, datetime(2024, 1, 1, 8, 0), first_name="Old")
    new = _create_at(store, clock, datetime(2024, 6, 1, 8, 0), first_name="New")

    assert [c.id for c in store.list()] == [new.id, old.id]
    assert {c.id for c in store.list(sort=False)} == {old.id, new.id}


def test_plan_filter_example(store, clock):
    a = _create_at(store, clock, datetime(2024, 1, 1, 12, 0), membership_type="prestige", email="a@example.com")
    _create_at(store, clock, datetime(2024, 6, 1, 12, 0), membership_type="premier", email="b@example.com")

    page = store.paginated_list(1, 10, "", "prestige")

    assert [c.id for c in page.customers] == [a.id]
    assert page.total_pages == 1
    assert page.total_items == 1


@pytest.mark.parametrize("page_size", [1, 2, 3, 7, 100])
def test_page_size_bound_and_page_count(store, clock, page_size):
    for i in range(7):
        _create_at(store, clock, datetime(2024, 1, 1 + i, 9, 0), email=f"user{i}@example.com")

    for page_number in range(1, 9):
        page = store.paginated_list(page_number, page_size)
        assert len(page.customers) <= page_size
        assert page.total_items == 7
        assert page.total_pages == math.ceil(7 / page_size)


def test_pages_are_disjoint_and_newest_first(store, clock):
    created = [
        _create_at(store, clock, datetime(2024, 1, 1 + i, 9, 0), email=f"user{i}@example.com")
        for i in range(5)
    ]

    first = store.paginated_list(1, 2)
    second = store.paginated_list(2, 2)
    third = store.paginated_list(3, 2)

    ids = [c.id for p in (first, second, third) for c in p.customers]
    assert ids == [c.id for c in reversed(created)]


def test_page_number_clamps(store, clock):
    for i in range(3):
        _create_at(store, clock, datetime(2024, 1, 1 + i, 9, 0), email=f"user{i}@example.com")

    low = store.paginated_list(-4, 2)
    high = store.paginated_list(99, 2)

    assert low.page == 1
    assert len(low.customers) == 2
    assert high.page == 2
    assert len(high.customers) == 1


def test_empty_result_is_page_one(store):
    page = store.paginated_list(5, 10, "nobody")

    assert page.customers == []
    assert page.total_items == 0
    assert page.total_pages == 0
    assert page.page == 1


def test_invalid_page_size_rejected(store):
    with pytest.raises(ValidationError):
        store.paginated_list(1, 0)


def test_search_by_exact_email_ignores_case(store):
    created = store.create(make_form(email="Grace.Hopper@Example.com"))
    store.create(make_form(email="someone@example.com", first_name="Other", last_name="Person"))

    page = store.paginated_list(1, 10, "GRACE.HOPPER@EXAMPLE.COM")

    assert [c.id for c in page.customers] == [created.id]


def test_search_by_full_name_and_membership_number(store):
    created = store.create(make_form(first_name="Ada", last_name="Lovelace"))
    store.create(make_form(first_name="Alan", last_name="Turing", email="alan@example.com"))

    by_name = store.paginated_list(1, 10, "ada love")
    by_number = store.paginated_list(1, 10, created.membership_number.lower())

    assert [c.id for c in by_name.customers] == [created.id]
    assert created.id in [c.id for c in by_number.customers]


def test_search_folds_non_ascii_case(store):
    created = store.create(make_form(first_name="Élodie", last_name="Ångström", email="elodie@example.com"))
    store.create(make_form(first_name="Elodie", last_name="Angstrom", email="other@example.com"))

    lower = store.paginated_list(1, 10, "élodie ångström")
    upper = store.paginated_list(1, 10, "ÉLODIE ÅNG")

    assert [c.id for c in lower.customers] == [created.id]
    assert [c.id for c in upper.customers] == [created.id]


def test_search_treats_wildcards_literally(store):
    store.create(make_form())

    assert store.paginated_list(1, 10, "%").total_items == 0
    assert store.paginated_list(1, 10, "_").total_items == 0


def test_search_and_filter_are_combined(store):
    store.create(make_form(email="ada@example.com", membership_type="prestige"))
    premier = store.create(make_form(email="ada.two@example.com", membership_type="premier"))

    page = store.paginated_list(1, 10, "ada", "premier")

    assert [c.id for c in page.customers] == [premier.id]


def test_expiring_window_boundaries(store):
    days = {0: "today", 1: "tomorrow", 30: "day30", 31: "day31", -3: "past"}
    ids = {}
    for offset, name in days.items():
        c = store.create(make_form(email=f"{name}@example.com", expiry_date=TODAY + timedelta(days=offset)))
        ids[c.id] = name

    page = store.paginated_list(1, 100, "", "expiring")

    assert sorted(ids[c.id] for c in page.customers) == ["day30", "tomorrow"]


def test_stats_match_expiring_filter(store):
    store.create(make_form(email="a@example.com", membership_type="prestige", expiry_date=TODAY + timedelta(days=5)))
    store.create(make_form(email="b@example.com", membership_type="premier", expiry_date=TODAY + timedelta(days=30)))
    store.create(make_form(email="c@example.com", membership_type="premier", expiry_date=TODAY + timedelta(days=45)))
    store.create(make_form(email="d@example.com", membership_type="premier", expiry_date=TODAY))

    stats = store.stats()

    assert stats.total == 4
    assert stats.prestige == 1
    assert stats.premier == 3
    assert stats.expiring_soon == 2
    assert stats.expiring_soon == store.paginated_list(1, 10_000, "", "expiring").total_items


def test_stats_on_empty_store(store):
    stats = store.stats()

    assert (stats.total, stats.prestige, stats.premier, stats.expiring_soon) == (0, 0, 0, 0)


def test_decrement_visits_stops_at_zero(store):
    created = store.create(make_form(visits=1))

    assert store.decrement_visits(created.id).visits == 0
    assert store.decrement_visits(created.id).visits == 0
    assert store.decrement_visits(created.id).visits == 0
    assert store.get_by_id(created.id).visits == 0


def test_local_qr_payload_uses_membership_number(local_store):
    created = local_store.create(make_form())

    assert local_store.qr_payload(created.id) == f"/verify?membershipNumber={created.membership_number}"
    assert local_store.qr_payload("missing") == "/verify?error=customer_not_found"


def test_sqlite_qr_payload_uses_customer_id(sqlite_store):
    created = sqlite_store.create(make_form())

    assert sqlite_store.qr_payload(created.id) == f"/verify?customerId={created.id}"


def test_local_store_persists_camel_case_document(local_store):
    created = local_store.create(make_form())

    text = local_store.path.read_text(encoding="utf-8")

    assert '"membershipNumber"' in text
    assert '"expiryDate": "2025-01-01"' in text
    assert created.id in text


def test_local_store_corrupt_file_is_backend_error(local_store):
    local_store.path.write_text("{not json", encoding="utf-8")

    with pytest.raises(BackendError):
        local_store.list()


def test_local_store_clear(local_store):
    local_store.create(make_form())

    local_store.clear()

    assert local_store.list() == []


def test_local_store_malformed_record_is_backend_error(local_store):
    local_store.path.write_text('[{"id": "x", "firstName": "A"}]', encoding="utf-8")

    with pytest.raises(BackendError, match="Malformed customer record"):
        local_store.list()


def test_local_store_bad_date_is_backend_error(local_store):
    created = local_store.create(make_form())
    text = local_store.path.read_text(encoding="utf-8").replace('"2025-01-01"', '"first of january"')
    local_store.path.write_text(text, encoding="utf-8")

    with pytest.raises(BackendError):
        local_store.get_by_id(created.id)
