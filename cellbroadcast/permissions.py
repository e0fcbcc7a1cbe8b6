"""
Caller authorization for the cell broadcast provider.

A PermissionChecker answers three questions about a caller principal. The
provider never resolves who the caller is; it receives an opaque principal
and asks the checker, through check_permission(), before touching storage.
"""

import logging
from enum import Enum
from typing import Iterable, Protocol

from cellbroadcast.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Kinds of provider call; each is authorized separately."""
    QUERY = "query"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_mutation(self) -> bool:
        return self is not Operation.QUERY


class UriMatch(Enum):
    """Resolved resource address."""

    ALL = "all"
    HISTORY = "history"
    NO_MATCH = "no_match"


class PermissionChecker(Protocol):
    """Interface for read/write permission checks."""

    def has_write_permission(self, caller: str) -> bool:
        """Return True if the caller may insert, update or delete."""

    def has_read_permission(self, caller: str) -> bool:
        """Return True if the caller may query the complete table."""

    def has_read_permission_for_history(self, caller: str) -> bool:
        """Return True if the caller may query broadcasted message history."""


class PrincipalPermissionChecker:
    """
    Grants based on configured principal names.

    Writers (the telephony stack) may write and read everything. History
    readers may only read the history view; being a writer does not imply
    the history grant.
    """

    def __init__(self, writers: Iterable[str], history_readers: Iterable[str] = ()):
        self.writers = frozenset(writers)
        self.history_readers = frozenset(history_readers)

    def has_write_permission(self, caller: str) -> bool:
        return caller in self.writers

    def has_read_permission(self, caller: str) -> bool:
        return caller in self.writers

    def has_read_permission_for_history(self, caller: str) -> bool:
        return caller in self.history_readers


def check_permission(
    checker: PermissionChecker,
    operation: Operation,
    match: UriMatch,
    caller: str,
) -> None:
    """
    Authorize one provider call.

    Mutations need write permission whatever the address. Queries need read
    permission for ALL and the history grant for HISTORY; an unmatched query
    is not checked here and fails later at address resolution.

    Raises:
        PermissionDeniedError: the caller lacks the required grant
    """
    if operation.is_mutation:
        if not checker.has_write_permission(caller):
            logger.warning(f"Write denied: caller={caller} operation={operation.value}")
            raise PermissionDeniedError("No permission to write CellBroadcast provider")
        return

    if match is UriMatch.ALL:
        if not checker.has_read_permission(caller):
            logger.warning(f"Read denied: caller={caller}")
            raise PermissionDeniedError("No permission to read CellBroadcast provider")
    elif match is UriMatch.HISTORY:
        if not checker.has_read_permission_for_history(caller):
            logger.warning(f"History read denied: caller={caller}")
            raise PermissionDeniedError(
                "No permission to read CellBroadcast provider for message history"
            )
