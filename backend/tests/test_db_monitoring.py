from __future__ import annotations

from sqlalchemy import create_engine, text

from study_buddy.db import monitoring


def test_instrument_engine_emits_pool_status(monkeypatch) -> None:
    emitted: list[tuple[str, dict[str, object]]] = []

    def record(event_name: str, **payload: object) -> None:
        emitted.append((event_name, payload))

    monkeypatch.setattr(monitoring, "_EMIT_INTERVAL", 0)
    monkeypatch.setattr(monitoring, "emit_event", record)

    engine = create_engine("sqlite:///:memory:", future=True)
    try:
        monitoring.instrument_engine(engine)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        assert emitted, "Expected a pool status event once the engine is instrumented."
        event_name, payload = emitted[0]
        assert event_name == "db_pool_status"
        assert payload["trigger"] == "connect"
        assert payload["connects"] >= 1
    finally:
        engine.dispose()


def test_pool_snapshot_counts_checkouts() -> None:
    engine = create_engine("sqlite:///:memory:", future=True)
    try:
        monitoring.instrument_engine(engine)
        monitoring.instrument_engine(engine)
        for _ in range(2):
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))

        snapshot = monitoring.get_pool_snapshot(engine)
        assert snapshot["connects"] >= 1
        assert snapshot["checkouts"] >= 2
        assert isinstance(snapshot["status"], str)
    finally:
        engine.dispose()
