"""Upgrade the Study Buddy schema with Alembic once the database answers.

Deploys run this before starting the API. ``--sql`` prints the upgrade SQL
instead of applying it, for databases migrated by hand.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

LOGGER = logging.getLogger("study_buddy.migrations")
DATABASE_URL_ENV = "STUDY_BUDDY_DATABASE_URL"
BACKEND_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG = BACKEND_ROOT / "alembic.ini"
DEFAULT_TIMEOUT = int(os.getenv("STUDY_BUDDY_DB_MIGRATION_TIMEOUT", "60"))
DEFAULT_POLL_INTERVAL = float(os.getenv("STUDY_BUDDY_DB_MIGRATION_POLL_INTERVAL", "3"))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade the Study Buddy database schema.")
    parser.add_argument("--revision", default=os.getenv("STUDY_BUDDY_DB_MIGRATION_REVISION", "head"))
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait for the database (default: {DEFAULT_TIMEOUT}).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between readiness probes (default: {DEFAULT_POLL_INTERVAL}).",
    )
    parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to alembic.ini.")
    parser.add_argument("--sql", action="store_true", help="Print the upgrade SQL instead of running it.")
    return parser.parse_args(argv)


def get_alembic_config(config_path: str) -> Config:
    config = Config(config_path)
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    """Use ``sqlalchemy.url`` when set literally, else ``STUDY_BUDDY_DATABASE_URL``."""
    configured = config.get_main_option("sqlalchemy.url")
    if configured and not configured.startswith("%("):
        return configured
    env_url = os.getenv(DATABASE_URL_ENV)
    if not env_url:
        raise RuntimeError(f"{DATABASE_URL_ENV} must be set before running migrations.")
    config.set_main_option("sqlalchemy.url", env_url)
    return env_url


def _probe(engine: Engine) -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def wait_for_database(database_url: str, *, timeout: int, poll_interval: float) -> None:
    """Probe until the database answers; always probes at least once."""
    deadline = time.time() + timeout
    engine = create_engine(database_url, pool_pre_ping=True)
    last_error: Optional[Exception] = None
    try:
        while True:
            try:
                _probe(engine)
            except OperationalError as exc:
                last_error = exc
                LOGGER.warning("Database not ready yet: %s", exc)
            except SQLAlchemyError as exc:
                LOGGER.error("Database readiness probe failed: %s", exc)
                raise RuntimeError("Database readiness probe failed.") from exc
            else:
                LOGGER.info("Database is reachable.")
                return
            if time.time() + poll_interval >= deadline:
                raise RuntimeError(f"Database not ready after {timeout}s.") from last_error
            time.sleep(poll_interval)
    finally:
        engine.dispose()


def run_migrations(
    revision: str,
    *,
    timeout: int,
    poll_interval: float,
    config: Optional[Config] = None,
    sql: bool = False,
) -> None:
    config = config or get_alembic_config(str(DEFAULT_CONFIG))
    database_url = resolve_database_url(config)
    if sql:
        command.upgrade(config, revision, sql=True)
        return
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)
    LOGGER.info("Upgrading schema to %s", revision)
    command.upgrade(config, revision)
    LOGGER.info("Schema is at %s.", revision)


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("STUDY_BUDDY_DB_MIGRATION_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        run_migrations(
            args.revision,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            config=get_alembic_config(args.config),
            sql=args.sql,
        )
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Migration run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
