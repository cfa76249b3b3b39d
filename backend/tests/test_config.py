import logging

import pytest

from clubrank import config
from clubrank.db import create_engine_for_url
from clubrank.stores import MemoryStoreBackend, SqlStoreBackend, build_backend


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "/api"), ("", "/api"), ("api/", "/api"), ("/v2/api/", "/v2/api"), ("/", "/")],
)
def test_canon_prefix(raw, expected):
    assert config._canon_prefix(raw) == expected


def test_rating_settings_default(monkeypatch):
    monkeypatch.delenv("RATING_K_FACTOR", raising=False)
    monkeypatch.delenv("RATING_DEFAULT", raising=False)

    assert config.rating_k_factor() == 32
    assert config.starting_rating() == 1200


def test_invalid_numbers_fall_back_with_a_warning(monkeypatch, caplog):
    monkeypatch.setenv("RATING_K_FACTOR", "lots")
    monkeypatch.setenv("RATING_DEFAULT", "-5")

    with caplog.at_level(logging.WARNING):
        assert config.rating_k_factor() == 32
        assert config.starting_rating() == 1200
    assert "RATING_K_FACTOR is not a valid integer" in caplog.text
    assert "RATING_DEFAULT cannot be below 0" in caplog.text


def test_k_factor_override(monkeypatch):
    monkeypatch.setenv("RATING_K_FACTOR", "24")
    assert config.rating_k_factor() == 24


def test_database_url_is_returned_as_configured(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", " postgresql://u:p@db/club ")
    assert config.database_url() == "postgresql://u:p@db/club"

    monkeypatch.setenv("DATABASE_URL", "")
    assert config.database_url() is None


def test_engine_uses_asyncpg_for_postgres_urls():
    engine = create_engine_for_url("postgresql://u:p@db/club")
    assert engine.url.drivername == "postgresql+asyncpg"


def test_backend_selection(monkeypatch):
    monkeypatch.delenv("STORE_BACKEND", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert config.store_backend_name() == "memory"
    assert isinstance(build_backend(), MemoryStoreBackend)

    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    assert config.store_backend_name() == "sql"
    assert isinstance(build_backend(), SqlStoreBackend)

    monkeypatch.setenv("STORE_BACKEND", "memory")
    assert config.store_backend_name() == "memory"

    monkeypatch.setenv("STORE_BACKEND", "redis")
    with pytest.raises(RuntimeError):
        config.store_backend_name()


def test_sql_backend_requires_database_url(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "sql")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        build_backend()


def test_starting_rating_is_used_by_backends(monkeypatch, loop):
    monkeypatch.delenv("STORE_BACKEND", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("RATING_DEFAULT", "1500")
    backend = build_backend()

    async def run():
        async with backend.transaction() as tx:
            return await tx.ratings.get("u1", "c1", "mens_singles")

    assert loop.run_until_complete(run()).rating == 1500
