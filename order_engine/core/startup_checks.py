from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from order_engine.core.config import DATABASE_URL, ENV_NORMALIZED, IS_PROD

logger = logging.getLogger(__name__)
LOG_PREFIX = "[STARTUP]"
VERSION_TABLE = "alembic_version"


class StartupCheckError(RuntimeError):
    pass


def validate_database_environment() -> None:
    """Os procedimentos de estoque dependem de FOR UPDATE; SQLite só serve para dev e testes."""
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s sqlite database configured in production", LOG_PREFIX)
        raise StartupCheckError("SQLite is forbidden in production environment")


def expected_revisions(alembic_config_path: Path) -> set[str]:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", LOG_PREFIX, alembic_config_path)
        raise StartupCheckError(f"alembic config not found: {alembic_config_path}")
    scripts = ScriptDirectory.from_config(Config(str(alembic_config_path)))
    return set(scripts.get_heads())


def applied_revisions(engine: Engine) -> set[str] | None:
    """Revisões gravadas no banco; None quando o banco nunca foi migrado."""
    with engine.connect() as connection:
        if VERSION_TABLE not in inspect(connection).get_table_names():
            return None
        rows = connection.exec_driver_sql(f"SELECT version_num FROM {VERSION_TABLE}").fetchall()
    return {row[0] for row in rows if row[0]}


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if ENV_NORMALIZED == "test":
        logger.info("%s migration check skipped env=test", LOG_PREFIX)
        return

    expected = expected_revisions(alembic_config_path)
    applied = applied_revisions(engine)
    if applied is None:
        logger.critical("%s database has no migration state; run `alembic upgrade head`", LOG_PREFIX)
        raise StartupCheckError("Database has no migration state")
    if applied != expected:
        logger.critical(
            "%s schema out of date applied=%s expected=%s",
            LOG_PREFIX,
            sorted(applied),
            sorted(expected),
        )
        raise StartupCheckError("Pending migrations detected")

    logger.info("%s schema at revision %s", LOG_PREFIX, ",".join(sorted(applied)))
