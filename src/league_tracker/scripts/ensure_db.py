"""Provision the configured Postgres database and bring its schema up to date."""
from __future__ import annotations

import argparse
import logging
import sys
from urllib.parse import urlsplit, urlunsplit

import psycopg
from psycopg import sql

from league_tracker.core.logging import configure_logging
from league_tracker.core.settings import settings
from league_tracker.scripts.migrate import run_upgrade_head

logger = logging.getLogger(__name__)


def is_postgres_url(url: str) -> bool:
    return url.strip().strip("'\"").split("://", 1)[0].startswith("postgresql")


def to_libpq_url(url: str) -> str:
    """Return ``url`` with any SQLAlchemy driver suffix removed.

    ``postgresql+psycopg://...`` becomes ``postgresql://...``; surrounding
    quotes left over from ``.env`` files are stripped.
    """
    url = url.strip().strip("'\"")
    if not url:
        raise ValueError("DATABASE_URL is empty")
    if not is_postgres_url(url):
        raise ValueError(f"Not a PostgreSQL URL: {url!r}")

    parts = urlsplit(url)
    return urlunsplit(("postgresql", parts.netloc, parts.path, parts.query, parts.fragment))


def maintenance_target(url: str) -> tuple[str, str]:
    """Split ``url`` into the ``postgres`` maintenance URL and the target database name."""
    parts = urlsplit(to_libpq_url(url))
    target = parts.path.lstrip("/") or "postgres"
    admin_url = urlunsplit(("postgresql", parts.netloc, "/postgres", parts.query, ""))
    return admin_url, target


def ensure_database_exists(url: str) -> bool:
    """Create the database named in ``url`` if missing; return True when created."""
    admin_url, target = maintenance_target(url)

    with psycopg.connect(admin_url, autocommit=True) as conn, conn.cursor() as cur:
        cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (target,))
        if cur.fetchone() is not None:
            logger.info("Database %s already exists", target)
            return False
        cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(target)))

    logger.info("Created database %s", target)
    return True


def reset_schema(url: str) -> None:
    """Drop every table by recreating the ``public`` schema."""
    with psycopg.connect(to_libpq_url(url), autocommit=True) as conn, conn.cursor() as cur:
        cur.execute("DROP SCHEMA IF EXISTS public CASCADE")
        cur.execute("CREATE SCHEMA public")
        cur.execute("GRANT ALL ON SCHEMA public TO CURRENT_USER")
    logger.warning("Recreated public schema; all tables dropped")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Provision and migrate the league tracker database"
    )
    parser.add_argument("--url", default=None, help="Override the configured database URL")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop all tables before migrating.",
    )
    parser.add_argument(
        "--skip-migrate",
        action="store_true",
        help="Only make sure the database exists.",
    )
    args = parser.parse_args(argv)
    configure_logging()

    url = args.url or settings.database_url_sync
    try:
        if is_postgres_url(url):
            ensure_database_exists(url)
            if args.reset:
                reset_schema(url)
        else:
            logger.info("Non-PostgreSQL database configured, skipping provisioning")
        if not args.skip_migrate:
            run_upgrade_head(url)
    except (psycopg.Error, ValueError) as exc:
        logger.error("Database provisioning failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
