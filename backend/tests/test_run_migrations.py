from __future__ import annotations

import io
import types

import pytest
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner


def _load_test_config(url: str = "") -> runner.Config:
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", url)
    return config


def test_resolve_database_url_prefers_explicit_url(monkeypatch) -> None:
    monkeypatch.setenv("STUDY_BUDDY_DATABASE_URL", "sqlite:///from-env.sqlite")
    config = _load_test_config("sqlite:///explicit.sqlite")

    assert runner.resolve_database_url(config) == "sqlite:///explicit.sqlite"


def test_resolve_database_url_falls_back_to_env(monkeypatch) -> None:
    monkeypatch.setenv("STUDY_BUDDY_DATABASE_URL", "sqlite://")
    config = _load_test_config()

    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_configuration(monkeypatch) -> None:
    monkeypatch.delenv("STUDY_BUDDY_DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError):
        runner.resolve_database_url(_load_test_config())


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    db_path = tmp_path / "test.sqlite"
    url = f"sqlite:///{db_path}"
    runner.wait_for_database(url, timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_creates_profile_tables(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"

    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=_load_test_config(url))

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        assert {"study_profile_documents", "profile_audit_events", "alembic_version"} <= set(
            inspector.get_table_names()
        )
        indexes = {index["name"] for index in inspector.get_indexes("profile_audit_events")}
        assert "ix_profile_audit_events_user_created" in indexes
    finally:
        engine.dispose()


def test_main_reports_failure(monkeypatch) -> None:
    monkeypatch.delenv("STUDY_BUDDY_DATABASE_URL", raising=False)

    assert runner.main(["--timeout", "0", "--poll-interval", "0"]) == 1


def test_sql_mode_prints_ddl_without_connecting(tmp_path) -> None:
    db_path = tmp_path / "never-created.sqlite"
    config = _load_test_config(f"sqlite:///{db_path}")
    config.output_buffer = io.StringIO()

    runner.run_migrations("head", timeout=0, poll_interval=0, config=config, sql=True)

    output = config.output_buffer.getvalue()
    assert "CREATE TABLE study_profile_documents" in output
    assert "CREATE INDEX ix_profile_audit_events_user_created" in output
    assert not db_path.exists()
