"""Database migration utilities."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

from dosewatch.logging_config import get_logger

logger = get_logger(__name__)

# Repository root, holding alembic.ini and migrations/
APP_ROOT = Path(__file__).resolve().parent.parent


def get_alembic_config() -> Config:
    """Get Alembic configuration."""
    alembic_ini = APP_ROOT / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(APP_ROOT / "migrations"))

    return config


def get_head_revision() -> str | None:
    """Latest revision in the migration scripts."""
    script = ScriptDirectory.from_config(get_alembic_config())
    return script.get_current_head()


def run_migrations() -> None:
    """Upgrade the database schema to the latest revision.

    Blocking; the Alembic env runs its own event loop, so call this from
    a worker thread when inside the application's loop.
    """
    logger.info("Running database migrations...")

    try:
        command.upgrade(get_alembic_config(), "head")
    except Exception as e:
        logger.error("Database migration failed", error=str(e))
        raise

    logger.info("Database migrations completed successfully")
