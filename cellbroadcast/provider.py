"""
Access-controlled store for received cell broadcast messages.

Callers address one of two views:

    content://cellbroadcasts          every message, every column
    content://cellbroadcasts/history  broadcasted messages only

Only the telephony stack may insert, update or delete, and only against the
full collection. Every call is authorized before storage is touched, and
every successful mutation emits exactly one change notification for
CONTENT_URI after the write has committed.
"""

import logging
import re
from typing import Any, Iterable, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from cellbroadcast.exceptions import InvalidArgumentError, PermissionDeniedError
from cellbroadcast.metrics import record_provider_operation
from cellbroadcast.models import (
    ALL_COLUMNS,
    CELL_BROADCASTS_TABLE_NAME,
    ID,
    MESSAGE_BROADCASTED,
    RECEIVED_TIME,
    WRITABLE_COLUMNS,
)
from cellbroadcast.notifications import ChangeNotifier
from cellbroadcast.permissions import (
    Operation,
    PermissionChecker,
    UriMatch,
    check_permission,
)
from cellbroadcast.storage import Database

logger = logging.getLogger(__name__)

# Authority string for content URIs
AUTHORITY = "cellbroadcasts"

# Content uri of this provider
CONTENT_URI = f"content://{AUTHORITY}"

# Broadcasted message history, for the default alert app and messaging apps
HISTORY_URI = f"{CONTENT_URI}/history"

# MIME type for the list of all cell broadcasts
LIST_TYPE = "vnd.android.cursor.dir/cellbroadcast"

DEFAULT_SORT_ORDER = f"{RECEIVED_TIME} DESC"

_SORT_TERM = re.compile(r"^\s*(\w+)(?:\s+(ASC|DESC))?\s*$", re.IGNORECASE)

# Opening quote -> closing quote, per SQLite's tokenizer
_QUOTES = {"'": "'", '"': '"', "`": "`", "[": "]"}

_COMPOUND_KEYWORDS = re.compile(
    r"\b(SELECT|UNION|INTERSECT|EXCEPT|VALUES|WITH)\b", re.IGNORECASE
)

# Broadcasted messages only; history queries read from this instead of the table
_HISTORY_TABLE = (
    f"(SELECT * FROM {CELL_BROADCASTS_TABLE_NAME} WHERE {MESSAGE_BROADCASTED} = 1)"
    f" AS {CELL_BROADCASTS_TABLE_NAME}"
)


# =============================================================================
# Address Resolution
# =============================================================================

def match_uri(uri: str) -> UriMatch:
    """
    Resolve a resource address.

    Total: any string, including malformed ones, maps to exactly one of
    ALL, HISTORY or NO_MATCH. Query strings and fragments are ignored.
    """
    try:
        parts = urlsplit(uri)
    except (TypeError, ValueError):
        return UriMatch.NO_MATCH

    if parts.scheme != "content" or parts.netloc != AUTHORITY:
        return UriMatch.NO_MATCH

    path = parts.path.strip("/")
    if path == "":
        return UriMatch.ALL
    if path == "history":
        return UriMatch.HISTORY
    return UriMatch.NO_MATCH


def content_uri_for(row_id: int) -> str:
    """Address of a single inserted row."""
    return f"{CONTENT_URI}/{row_id}"


# =============================================================================
# Strict Argument Checks
# =============================================================================

def _check_columns(columns: Iterable[str], allowed: frozenset, what: str) -> None:
    unknown = sorted(set(columns) - allowed)
    if unknown:
        raise InvalidArgumentError(f"Invalid {what} column(s): {', '.join(unknown)}")


def _check_selection(selection: str) -> None:
    """
    Reject selections that could break out of the WHERE clause they fill.

    Quoted regions follow SQLite's tokenizer: '...', "..." and `...` with
    doubled quotes as escapes, and [...] with no escape. Outside them the
    text must not close more parentheses than it opened, must end balanced,
    and may not contain statement separators, comments or compound-query
    keywords.
    """
    depth = 0
    closing = None
    unquoted = []
    i = 0
    while i < len(selection):
        ch = selection[i]
        if closing:
            if ch == closing:
                # doubled quote is an escaped quote inside the literal
                if closing != "]" and selection[i + 1:i + 2] == closing:
                    i += 1
                else:
                    closing = None
                    unquoted.append(" ")
        elif ch in _QUOTES:
            closing = _QUOTES[ch]
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise InvalidArgumentError(f"Invalid selection: {selection}")
        elif ch == ";" or selection[i:i + 2] in ("--", "/*"):
            raise InvalidArgumentError(f"Invalid selection: {selection}")
        else:
            unquoted.append(ch)
        i += 1

    if closing or depth != 0:
        raise InvalidArgumentError(f"Invalid selection: {selection}")
    if _COMPOUND_KEYWORDS.search("".join(unquoted)):
        raise InvalidArgumentError(f"Invalid selection: {selection}")


def _check_sort_order(sort_order: str) -> None:
    for term in sort_order.split(","):
        m = _SORT_TERM.match(term)
        if not m or m.group(1) not in ALL_COLUMNS:
            raise InvalidArgumentError(f"Invalid sort order: {sort_order}")


def _check_values(values: Mapping[str, Any]) -> None:
    if ID in values:
        raise InvalidArgumentError(f"Column '{ID}' is assigned by storage and cannot be set")
    _check_columns(values.keys(), WRITABLE_COLUMNS, "value")


def _normalize_broadcasted(values: Mapping[str, Any]) -> dict:
    """
    Copy `values` with the broadcasted flag stored as 0 or 1.

    Booleans and the integers 0 and 1 are accepted. Strings such as "0" or
    "false" are rejected rather than coerced.
    """
    values = dict(values)
    if MESSAGE_BROADCASTED in values:
        flag = values[MESSAGE_BROADCASTED]
        if isinstance(flag, str) or flag not in (True, False):
            raise InvalidArgumentError(f"Invalid {MESSAGE_BROADCASTED} value: {flag!r}")
        values[MESSAGE_BROADCASTED] = int(flag)
    return values


class CellBroadcastProvider:
    """
    The query/mutation layer over the cell broadcast table.

    All collaborators are passed in explicitly: the storage handle, the
    permission checker consulted on every call, and the notifier that
    receives one change event per successful mutation.
    """

    def __init__(
        self,
        database: Database,
        permission_checker: PermissionChecker,
        notifier: ChangeNotifier,
    ):
        self.database = database
        self.permission_checker = permission_checker
        self.notifier = notifier

    def get_type(self, uri: str) -> Optional[str]:
        """Return the MIME type of the data at `uri`, or None."""
        if match_uri(uri) is UriMatch.ALL:
            return LIST_TYPE
        return None

    def _authorize(self, operation: Operation, match: UriMatch, caller: str) -> None:
        try:
            check_permission(self.permission_checker, operation, match, caller)
        except PermissionDeniedError:
            record_provider_operation(operation.value, match.value, "permission_denied")
            raise

    def _reject(self, operation: Operation, match: UriMatch, message: str) -> InvalidArgumentError:
        record_provider_operation(operation.value, match.value, "invalid_argument")
        return InvalidArgumentError(message)

    def _require_all(self, operation: Operation, match: UriMatch, uri: str) -> None:
        if match is not UriMatch.ALL:
            raise self._reject(
                operation, match, f"{operation.value.capitalize()} method doesn't support this uri = {uri}"
            )

    def _validated(self, operation: Operation, match: UriMatch, check, *args):
        try:
            return check(*args)
        except InvalidArgumentError:
            record_provider_operation(operation.value, match.value, "invalid_argument")
            raise

    # =========================================================================
    # Query
    # =========================================================================

    def query(
        self,
        caller: str,
        uri: str,
        projection: Optional[Sequence[str]] = None,
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
        sort_order: Optional[str] = None,
    ) -> list:
        """
        Query cell broadcast messages.

        Args:
            caller: Caller principal
            uri: CONTENT_URI or HISTORY_URI
            projection: Columns to return (None for all)
            selection: WHERE clause with `?` placeholders
            selection_args: Values bound positionally to the placeholders
            sort_order: ORDER BY clause, defaults to received_time DESC

        Returns:
            List of matching rows as dictionaries

        Raises:
            PermissionDeniedError: caller lacks the grant for this view
            InvalidArgumentError: unknown uri or unsafe arguments
        """
        operation = Operation.QUERY
        match = match_uri(uri)
        self._authorize(operation, match, caller)

        logger.debug(
            f"query: uri={uri} projection={projection} selection={selection} "
            f"selection_args={selection_args} sort_order={sort_order}"
        )

        if match is UriMatch.NO_MATCH:
            raise self._reject(operation, match, f"Query method doesn't support this uri = {uri}")

        if projection:
            self._validated(operation, match, _check_columns, projection, ALL_COLUMNS, "projection")
        if selection:
            self._validated(operation, match, _check_selection, selection)
        if sort_order:
            self._validated(operation, match, _check_sort_order, sort_order)

        order_by = sort_order or DEFAULT_SORT_ORDER

        # Limit history to broadcasted messages only; the caller's selection
        # is applied to the restricted rows, never alongside the restriction
        table = _HISTORY_TABLE if match is UriMatch.HISTORY else CELL_BROADCASTS_TABLE_NAME

        rows = self._run(
            operation,
            match,
            self.database.query,
            table,
            projection,
            selection,
            selection_args,
            None,
            None,
            order_by,
        )
        record_provider_operation(operation.value, match.value, "ok")
        return rows

    # =========================================================================
    # Mutations
    # =========================================================================

    def insert(self, caller: str, uri: str, values: Mapping[str, Any]) -> Optional[int]:
        """
        Insert one message.

        Returns:
            The new row id, or None if storage reported no row without raising
        """
        operation = Operation.INSERT
        match = match_uri(uri)
        self._authorize(operation, match, caller)

        logger.debug(f"insert: uri={uri} values={dict(values)}")

        self._require_all(operation, match, uri)
        self._validated(operation, match, _check_values, values)
        values = self._validated(operation, match, _normalize_broadcasted, values)

        row_id = self._run(operation, match, self.database.insert, CELL_BROADCASTS_TABLE_NAME, values)
        if row_id is None or row_id <= 0:
            logger.error(f"Insert record failed because of unknown reason, uri = {uri}")
            record_provider_operation(operation.value, match.value, "soft_failure")
            return None

        self.notifier.notify_change(CONTENT_URI)
        record_provider_operation(operation.value, match.value, "ok")
        logger.info(f"Inserted cell broadcast {row_id}")
        return row_id

    def update(
        self,
        caller: str,
        uri: str,
        values: Mapping[str, Any],
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
    ) -> int:
        """
        Apply `values` to every matching message.

        The broadcasted flag may only be raised, never cleared.

        Returns:
            Number of rows updated
        """
        operation = Operation.UPDATE
        match = match_uri(uri)
        self._authorize(operation, match, caller)

        logger.debug(
            f"update: uri={uri} values={dict(values)} selection={selection} "
            f"selection_args={selection_args}"
        )

        self._require_all(operation, match, uri)
        if not values:
            raise self._reject(operation, match, "Empty values")
        self._validated(operation, match, _check_values, values)
        values = self._validated(operation, match, _normalize_broadcasted, values)
        if values.get(MESSAGE_BROADCASTED) == 0:
            raise self._reject(operation, match, f"{MESSAGE_BROADCASTED} cannot be cleared")
        if selection:
            self._validated(operation, match, _check_selection, selection)

        count = self._run(
            operation, match, self.database.update,
            CELL_BROADCASTS_TABLE_NAME, values, selection, selection_args,
        )
        if count > 0:
            self.notifier.notify_change(CONTENT_URI)
        record_provider_operation(operation.value, match.value, "ok")
        return count

    def delete(
        self,
        caller: str,
        uri: str,
        selection: Optional[str] = None,
        selection_args: Optional[Sequence[Any]] = None,
    ) -> int:
        """
        Delete every matching message.

        Returns:
            Number of rows deleted
        """
        operation = Operation.DELETE
        match = match_uri(uri)
        self._authorize(operation, match, caller)

        logger.debug(f"delete: uri={uri} selection={selection} selection_args={selection_args}")

        self._require_all(operation, match, uri)
        if selection:
            self._validated(operation, match, _check_selection, selection)

        count = self._run(
            operation, match, self.database.delete,
            CELL_BROADCASTS_TABLE_NAME, selection, selection_args,
        )
        if count > 0:
            self.notifier.notify_change(CONTENT_URI)
        record_provider_operation(operation.value, match.value, "ok")
        return count

    def _run(self, operation: Operation, match: UriMatch, fn, *args):
        """Call into storage, counting failures; storage errors propagate unchanged."""
        try:
            return fn(*args)
        except Exception:
            record_provider_operation(operation.value, match.value, "error")
            raise
