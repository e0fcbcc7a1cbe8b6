"""
Schema management for the cell broadcast table.

The schema version lives in SQLite's `PRAGMA user_version`:

    0 / table absent  ->  create directly at DATABASE_VERSION
    1                 ->  v2 adds slot_index INTEGER DEFAULT 0
    2                 ->  current

Migrations are additive and check the live table before altering it, so
re-running one against an already migrated table is a no-op.
"""

import logging
from typing import Callable, Dict

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable

from cellbroadcast.exceptions import SchemaMigrationError
from cellbroadcast.models import CELL_BROADCASTS_TABLE_NAME, SLOT_INDEX, CellBroadcast
from cellbroadcast.storage import Database

logger = logging.getLogger(__name__)

# Current schema version
DATABASE_VERSION = 2


def create_table_sql(database: Database) -> str:
    """
    Return the CREATE TABLE statement for the latest layout.

    Exposed so tests can build their own databases matching the live table.
    """
    return str(CreateTable(CellBroadcast.__table__).compile(dialect=database.engine.dialect)).strip()


def _upgrade_to_v2(database: Database, conn: Connection) -> None:
    if SLOT_INDEX in database.column_names(conn, CELL_BROADCASTS_TABLE_NAME):
        logger.debug(f"{SLOT_INDEX} column already present, skipping")
        return
    database.alter_table(
        conn,
        f"ALTER TABLE {CELL_BROADCASTS_TABLE_NAME} ADD COLUMN {SLOT_INDEX} INTEGER DEFAULT 0",
    )
    logger.info(f"Added {SLOT_INDEX} column")


# Target version -> migration bringing the table from version - 1 to version
MIGRATIONS: Dict[int, Callable[[Database, Connection], None]] = {
    2: _upgrade_to_v2,
}


class SchemaManager:
    """Creates the cell broadcast table and upgrades it in place."""

    def __init__(self, database: Database, version: int = DATABASE_VERSION):
        self.database = database
        self.version = version

    def open(self) -> int:
        """
        Ensure the table exists at the expected version.

        Creation, every migration step and the version stamp happen in one
        transaction; on failure nothing is committed and the next open
        retries the same steps.

        Returns:
            The schema version now in effect

        Raises:
            SchemaMigrationError: storage rejected the DDL, or the stored
                version is newer than this code supports
        """
        try:
            with self.database.begin() as conn:
                stored = self.database.get_user_version(conn)
                exists = self.database.has_table(conn, CELL_BROADCASTS_TABLE_NAME)

                if not exists:
                    logger.info(f"Creating {CELL_BROADCASTS_TABLE_NAME} at version {self.version}")
                    self.database.create_table(conn, create_table_sql(self.database))
                elif stored > self.version:
                    raise SchemaMigrationError(
                        f"Cannot downgrade {CELL_BROADCASTS_TABLE_NAME} "
                        f"from version {stored} to {self.version}"
                    )
                elif stored < self.version:
                    # A table predating version tracking has the v1 layout
                    self._upgrade(conn, max(stored, 1), self.version)

                if stored != self.version:
                    self.database.set_user_version(conn, self.version)
        except SQLAlchemyError as e:
            logger.error(f"Failed to open {CELL_BROADCASTS_TABLE_NAME}: {e}")
            raise SchemaMigrationError(f"Schema migration failed: {e}") from e

        return self.version

    def upgrade(self, old_version: int, new_version: int) -> None:
        """
        Apply the migrations for (old_version, new_version] in order.

        Safe to invoke redundantly: each step is a no-op on a table that
        already has its changes.
        """
        try:
            with self.database.begin() as conn:
                self._upgrade(conn, old_version, new_version)
        except SQLAlchemyError as e:
            logger.error(f"Upgrade {old_version} -> {new_version} failed: {e}")
            raise SchemaMigrationError(f"Schema migration failed: {e}") from e

    def _upgrade(self, conn: Connection, old_version: int, new_version: int) -> None:
        logger.info(f"Upgrading {CELL_BROADCASTS_TABLE_NAME}: {old_version} -> {new_version}")
        for version in range(old_version + 1, new_version + 1):
            migration = MIGRATIONS.get(version)
            if migration is None:
                raise SchemaMigrationError(f"No migration to version {version}")
            migration(self.database, conn)

    def current_version(self) -> int:
        """Return the stored schema version."""
        with self.database.begin() as conn:
            return self.database.get_user_version(conn)
