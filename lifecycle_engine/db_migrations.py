from __future__ import annotations

import logging
from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask


logger = logging.getLogger("lifecycle.migrations")

# Backends Database supports: SQLite, and PostgreSQL through psycopg2.
_SQLITE_PREFIXES = ("sqlite://", "sqlite+pysqlite://")
_POSTGRES_PREFIXES = ("postgresql://", "postgresql+psycopg2://")

DB_URL_ATTRIBUTE = "lifecycle_database_url"


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(raw_db_path: str) -> str:
    """Translate a ``DB_PATH``/``DATABASE_URL`` value into the URL alembic connects with.

    Plain paths are SQLite files. ``postgres://`` is the spelling most hosting
    providers hand out, SQLAlchemy only accepts ``postgresql://``.
    """
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH is not set; cannot run migrations.")

    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://") :]
    if raw.startswith(_POSTGRES_PREFIXES + _SQLITE_PREFIXES):
        return raw
    if "://" in raw:
        scheme = raw.split("://", 1)[0]
        raise RuntimeError(f"Unsupported database scheme for migrations: {scheme}.")

    sqlite_path = Path(raw).expanduser().resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    root = _project_root()
    alembic_ini = root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError("alembic.ini not found at the project root.")

    url = to_sqlalchemy_url(app.config.get("DATABASE_URL") or app.config["DB_PATH"])
    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str((root / "migrations").as_posix()))
    alembic_cfg.set_main_option("sqlalchemy.url", url)
    # migrations/env.py prefers this over the DATABASE_URL environment variable.
    alembic_cfg.attributes[DB_URL_ATTRIBUTE] = url
    return alembic_cfg


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Lifecycle schema migrations (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app), revision)
        logger.info("schema_upgraded", extra={"revision": revision})
        click.echo(f"Upgraded to {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app), revision)
        logger.info("schema_downgraded", extra={"revision": revision})
        click.echo(f"Downgraded to {revision}.")

    @db_group.command("stamp")
    @click.argument("revision", required=False, default="head")
    def db_stamp(revision: str) -> None:
        """Mark a schema created by DB_AUTO_INIT as being at ``revision``."""
        command.stamp(build_alembic_config(app), revision)
        logger.info("schema_stamped", extra={"revision": revision})
        click.echo(f"Stamped {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app), verbose=True)
