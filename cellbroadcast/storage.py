import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _bind_args(args: Optional[Sequence[Any]]) -> Optional[tuple]:
    """Positional bind parameters for a `?`-style statement, or None."""
    if not args:
        return None
    return tuple(args)


def _where(selection: Optional[str]) -> str:
    if selection:
        return f" WHERE {selection}"
    return ""


class Database:
    """
    Explicitly constructed handle over the SQLite storage engine.

    Every operation runs in its own transaction on a pooled connection and
    commits before returning. Predicates use positional `?` placeholders and
    their arguments are always bound, never concatenated into the SQL.
    Table and column names are trusted: callers validate them first.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = self._create_engine(url, echo)

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        connect_args = {}
        kwargs = {}
        if url.startswith("sqlite"):
            # check_same_thread=False is required for SQLite to be shared across
            # FastAPI's threadpool workers
            connect_args["check_same_thread"] = False
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        engine = create_engine(url, connect_args=connect_args, echo=echo, **kwargs)

        if url.startswith("sqlite"):
            # pysqlite neither begins a transaction before DDL nor keeps PRAGMA
            # writes atomic; take over BEGIN so migrations commit as one unit
            @event.listens_for(engine, "connect")
            def _disable_pysqlite_begin(dbapi_connection, connection_record):
                dbapi_connection.isolation_level = None

            @event.listens_for(engine, "begin")
            def _emit_begin(conn):
                conn.exec_driver_sql("BEGIN")

        return engine

    def dispose(self) -> None:
        """Close all pooled connections."""
        logger.debug(f"Disposing database engine: {self.url}")
        self.engine.dispose()

    def begin(self):
        """Transaction context yielding a Connection; commits on success."""
        return self.engine.begin()

    # =========================================================================
    # Schema Primitives
    # =========================================================================

    def create_table(self, conn: Connection, ddl: str) -> None:
        logger.debug(f"create table: {ddl}")
        conn.exec_driver_sql(ddl)

    def alter_table(self, conn: Connection, ddl: str) -> None:
        logger.debug(f"alter table: {ddl}")
        conn.exec_driver_sql(ddl)

    def get_user_version(self, conn: Connection) -> int:
        return conn.exec_driver_sql("PRAGMA user_version").scalar() or 0

    def set_user_version(self, conn: Connection, version: int) -> None:
        # PRAGMA does not accept bound parameters
        conn.exec_driver_sql(f"PRAGMA user_version = {int(version)}")

    def has_table(self, conn: Connection, table: str) -> bool:
        return inspect(conn).has_table(table)

    def column_names(self, conn: Connection, table: str) -> set:
        return {column["name"] for column in inspect(conn).get_columns(table)}

    # =========================================================================
    # Row Operations
    # =========================================================================

    def query(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
        group_by: Optional[str] = None,
        having: Optional[str] = None,
        order_by: Optional[str] = None,
    ) -> list:
        """
        Run a SELECT against a single table.

        Args:
            table: Table name, or an aliased subquery
            columns: Columns to return (None for all)
            selection: WHERE clause with `?` placeholders (None for all rows)
            selection_args: Values bound positionally to the placeholders
            group_by: GROUP BY clause
            having: HAVING clause
            order_by: ORDER BY clause

        Returns:
            List of rows as dictionaries, read within a single transaction
        """
        projection = ", ".join(columns) if columns else "*"
        sql = f"SELECT {projection} FROM {table}{_where(selection)}"
        if group_by:
            sql += f" GROUP BY {group_by}"
        if having:
            sql += f" HAVING {having}"
        if order_by:
            sql += f" ORDER BY {order_by}"

        with self.begin() as conn:
            result = conn.exec_driver_sql(sql, _bind_args(selection_args))
            return [dict(row) for row in result.mappings()]

    def insert(self, table: str, values: Mapping[str, Any]) -> Optional[int]:
        """
        Insert one row.

        Returns:
            The storage-assigned row id. Storage errors are raised, not hidden.
        """
        if values:
            names = ", ".join(values.keys())
            placeholders = ", ".join("?" for _ in values)
            sql = f"INSERT INTO {table} ({names}) VALUES ({placeholders})"
            params = tuple(values.values())
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"
            params = None

        with self.begin() as conn:
            result = conn.exec_driver_sql(sql, params)
            return result.lastrowid

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
    ) -> int:
        """Update matching rows and return the number of rows affected."""
        assignments = ", ".join(f"{name} = ?" for name in values.keys())
        sql = f"UPDATE {table} SET {assignments}{_where(selection)}"
        params = tuple(values.values()) + tuple(selection_args or ())

        with self.begin() as conn:
            return conn.exec_driver_sql(sql, params).rowcount

    def delete(
        self,
        table: str,
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
    ) -> int:
        """Delete matching rows and return the number of rows affected."""
        sql = f"DELETE FROM {table}{_where(selection)}"

        with self.begin() as conn:
            return conn.exec_driver_sql(sql, _bind_args(selection_args)).rowcount

    # =========================================================================
    # Health
    # =========================================================================

    def check_health(self, table: str) -> bool:
        """
        Check if the database is reachable and the table exists.

        Returns:
            True if DB is healthy and schema exists, False otherwise.
        """
        logger.debug("Checking database health...")
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                if not self.has_table(conn, table):
                    logger.error(f"Database schema not applied: '{table}' table not found")
                    return False
            logger.debug("Database health check passed")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
