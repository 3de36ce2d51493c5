from pathlib import Path

import pytest

import config
from errors import ValidationError

ENV_VARS = [
    "MEMBERSHIP_BACKEND", "MEMBERSHIP_DATA_DIR", "MEMBERSHIP_DB_FILE", "MEMBERSHIP_STORE_FILE",
    "MEMBERSHIP_API_BASE_URL", "MEMBERSHIP_API_TIMEOUT", "MEMBERSHIP_SESSION_HOURS",
    "MEMBERSHIP_PAGE_SIZE", "MEMBERSHIP_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("MEMBERSHIP_DATA_DIR", str(tmp_path))

    settings = config.load_settings()

    assert settings.backend == "local"
    assert settings.db_file == tmp_path / "membership.db"
    assert settings.store_file == tmp_path / "customers.json"
    assert settings.api_base_url == "http://localhost:3001/api"
    assert settings.session_hours == 24
    assert settings.page_size == 10
    assert settings.log_level == "INFO"


def test_overrides(monkeypatch):
    monkeypatch.setenv("MEMBERSHIP_BACKEND", "REST")
    monkeypatch.setenv("MEMBERSHIP_API_BASE_URL", "https://members.example.com/api/")
    monkeypatch.setenv("MEMBERSHIP_DB_FILE", "/data/desk.db")
    monkeypatch.setenv("MEMBERSHIP_PAGE_SIZE", "25")

    settings = config.load_settings()

    assert settings.backend == "rest"
    assert settings.api_base_url == "https://members.example.com/api"
    assert settings.db_file == Path("/data/desk.db")
    assert settings.page_size == 25


@pytest.mark.parametrize(
    "name, value",
    [("MEMBERSHIP_BACKEND", "mongo"), ("MEMBERSHIP_PAGE_SIZE", "0"), ("MEMBERSHIP_API_TIMEOUT", "soon")],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        config.load_settings()


def test_make_store_picks_backend(tmp_path, monkeypatch):
    import db
    from sqlite_store import SqliteCustomerStore
    from stores import LocalCustomerStore, make_store

    monkeypatch.setattr(db, "DB_FILE", db.DB_FILE)
    monkeypatch.setenv("MEMBERSHIP_DATA_DIR", str(tmp_path))
    local = make_store(config.load_settings())

    monkeypatch.setenv("MEMBERSHIP_BACKEND", "sqlite")
    relational = make_store(config.load_settings())

    assert isinstance(local, LocalCustomerStore)
    assert local.path == tmp_path / "customers.json"
    assert isinstance(relational, SqliteCustomerStore)
    assert db.DB_FILE == tmp_path / "membership.db"
    assert (tmp_path / "membership.db").exists()
