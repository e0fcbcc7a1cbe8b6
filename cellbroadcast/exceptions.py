"""Custom exception classes for the cell broadcast store."""


class CellBroadcastError(Exception):
    """Base exception for the cell broadcast store."""

    def __init__(self, code: str, message: str, status_code: int = 500):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidArgumentError(CellBroadcastError):
    """Unsupported resource address or malformed operation arguments."""

    def __init__(self, message: str):
        super().__init__("INVALID_ARGUMENT", message, status_code=400)


class PermissionDeniedError(CellBroadcastError):
    """Caller lacks the grant required for the requested operation."""

    def __init__(self, message: str):
        super().__init__("PERMISSION_DENIED", message, status_code=403)


class SchemaMigrationError(CellBroadcastError):
    """Table creation or upgrade failed; the stored schema version is unchanged."""

    def __init__(self, message: str):
        super().__init__("SCHEMA_MIGRATION_FAILED", message, status_code=500)
