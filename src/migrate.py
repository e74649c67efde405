"""
Database migration runner for asyncpg.

Applies the forward-only SQL migrations shipped in migrations/ next to
this module. Every applied migration is recorded with a checksum of its
file; a file that changed after it was applied stops the operator at
startup instead of leaving the schema in an unknown state.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple

import asyncpg

from errors import ConfigurationError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_PATTERN = re.compile(r"^(\d{3})_.+\.sql$")


class Migration(NamedTuple):
    """One migration file."""

    version: str
    filename: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


async def ensure_migration_table(conn: asyncpg.Connection) -> None:
    """Create the schema_migrations tracking table if it doesn't exist."""
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version VARCHAR(16) PRIMARY KEY,
            filename VARCHAR(255) NOT NULL,
            checksum CHAR(64) NOT NULL,
            applied_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
        """)


def discover_migrations() -> List[Migration]:
    """
    Discover migration files, ordered by version.

    Raises:
        FileNotFoundError: If the migrations directory doesn't exist.
        ConfigurationError: If two files share a version number.
    """
    if not MIGRATIONS_DIR.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {MIGRATIONS_DIR}")

    by_version: Dict[str, Migration] = {}
    for entry in sorted(MIGRATIONS_DIR.iterdir()):
        match = MIGRATION_PATTERN.match(entry.name)
        if not match or not entry.is_file():
            continue
        version = match.group(1)
        if version in by_version:
            raise ConfigurationError(
                f"Duplicate migration version {version}: "
                f"{by_version[version].filename} and {entry.name}"
            )
        by_version[version] = Migration(version, entry.name, entry)

    return [by_version[v] for v in sorted(by_version)]


async def get_applied_migrations(conn: asyncpg.Connection) -> Dict[str, str]:
    """Return the checksum of every applied migration, keyed by version."""
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    return {row["version"]: row["checksum"] for row in rows}


def verify_applied(migrations: List[Migration], applied: Dict[str, str]) -> None:
    """
    Check that applied migrations still match their files.

    Raises:
        ConfigurationError: If an applied migration's file was modified.
    """
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is not None and recorded != migration.checksum:
            raise ConfigurationError(
                f"Migration {migration.filename} was modified after it was applied"
            )


async def apply_migration(pool: asyncpg.Pool, migration: Migration) -> None:
    """Apply a single migration and record it, in one transaction."""
    sql = migration.read()

    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, filename, checksum) "
                "VALUES ($1, $2, $3)",
                migration.version,
                migration.filename,
                migration.checksum,
            )

    logger.info(f"Applied migration {migration.filename}")


async def run_migrations(pool: asyncpg.Pool) -> int:
    """
    Discover and apply all pending migrations in order.

    Args:
        pool: An asyncpg connection pool (must already be connected).

    Returns:
        Number of migrations applied.

    Raises:
        FileNotFoundError: If the migrations directory is missing.
        ConfigurationError: If the migration files are inconsistent with
            the database.
        asyncpg.PostgresError: If a migration fails (it is rolled back;
            previously applied migrations remain).
    """
    async with pool.acquire() as conn:
        await ensure_migration_table(conn)

    migrations = discover_migrations()
    if not migrations:
        logger.info("No migration files found")
        return 0

    async with pool.acquire() as conn:
        applied = await get_applied_migrations(conn)

    verify_applied(migrations, applied)
    pending = [m for m in migrations if m.version not in applied]

    if not pending:
        logger.info("Database schema is up to date")
        return 0

    logger.info(f"Applying {len(pending)} pending migration(s)")
    for migration in pending:
        await apply_migration(pool, migration)

    logger.info(f"Successfully applied {len(pending)} migration(s)")
    return len(pending)
