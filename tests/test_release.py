import pytest

from scripts import release


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
        release.run_release()


def test_release_refuses_sqlite_in_production(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///fyndr.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="SQLite is not supported in production"):
        release.run_release()


def test_release_migrates_then_seeds(monkeypatch):
    calls = []
    monkeypatch.setenv("DATABASE_URL", "sqlite:///fyndr.db")
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setattr(release, "migrate", lambda url: calls.append(("migrate", url)))

    from scripts import init_db

    monkeypatch.setattr(init_db, "seed_only", lambda database_url: calls.append(("seed", database_url)))
    release.run_release()
    assert calls == [("migrate", "sqlite:///fyndr.db"), ("seed", "sqlite:///fyndr.db")]


def test_alembic_config_points_at_migrations(monkeypatch):
    cfg = release._alembic_config("sqlite:///x.db")
    assert cfg.get_main_option("sqlalchemy.url") == "sqlite:///x.db"
    assert cfg.get_main_option("script_location").endswith("migrations")
