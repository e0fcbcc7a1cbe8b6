"""Tests for the caller permission policy."""

import pytest

from cellbroadcast.exceptions import PermissionDeniedError
from cellbroadcast.permissions import (
    Operation,
    PrincipalPermissionChecker,
    UriMatch,
    check_permission,
)


class RecordingChecker:
    """Checker answering from fixed flags and recording what was asked."""

    def __init__(self, write=False, read=False, history=False):
        self.write = write
        self.read = read
        self.history = history
        self.asked = []

    def has_write_permission(self, caller):
        self.asked.append("write")
        return self.write

    def has_read_permission(self, caller):
        self.asked.append("read")
        return self.read

    def has_read_permission_for_history(self, caller):
        self.asked.append("history")
        return self.history


class TestPrincipalPermissionChecker:

    def test_writer_grants(self):
        checker = PrincipalPermissionChecker(["phone"], ["receiver"])

        assert checker.has_write_permission("phone")
        assert checker.has_read_permission("phone")
        assert not checker.has_read_permission_for_history("phone")

    def test_history_reader_grants(self):
        checker = PrincipalPermissionChecker(["phone"], ["receiver"])

        assert not checker.has_write_permission("receiver")
        assert not checker.has_read_permission("receiver")
        assert checker.has_read_permission_for_history("receiver")

    def test_unknown_caller_has_nothing(self):
        checker = PrincipalPermissionChecker(["phone"])

        assert not checker.has_write_permission("app")
        assert not checker.has_read_permission("app")
        assert not checker.has_read_permission_for_history("app")


class TestCheckPermission:

    @pytest.mark.parametrize("operation", [Operation.INSERT, Operation.UPDATE, Operation.DELETE])
    @pytest.mark.parametrize("match", list(UriMatch))
    def test_mutations_require_write(self, operation, match):
        checker = RecordingChecker(read=True, history=True)

        with pytest.raises(PermissionDeniedError):
            check_permission(checker, operation, match, "app")
        assert checker.asked == ["write"]

    def test_query_all_requires_read(self):
        with pytest.raises(PermissionDeniedError):
            check_permission(RecordingChecker(write=True, history=True), Operation.QUERY, UriMatch.ALL, "app")

        check_permission(RecordingChecker(read=True), Operation.QUERY, UriMatch.ALL, "app")

    def test_query_history_requires_history_grant(self):
        with pytest.raises(PermissionDeniedError):
            check_permission(RecordingChecker(write=True, read=True), Operation.QUERY, UriMatch.HISTORY, "app")

        check_permission(RecordingChecker(history=True), Operation.QUERY, UriMatch.HISTORY, "app")

    def test_unmatched_query_not_checked(self):
        checker = RecordingChecker()

        check_permission(checker, Operation.QUERY, UriMatch.NO_MATCH, "app")

        assert checker.asked == []

    def test_error_is_permission_denied(self):
        with pytest.raises(PermissionDeniedError) as exc_info:
            check_permission(RecordingChecker(), Operation.INSERT, UriMatch.ALL, "app")

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "PERMISSION_DENIED"
