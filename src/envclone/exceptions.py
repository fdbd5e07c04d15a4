"""
Custom exceptions for the clone pipeline.
"""


class CloneError(Exception):
    """Base exception for all clone pipeline errors."""
    pass


class ConfigurationError(CloneError):
    """Raised for malformed or incomplete credentials and options."""
    pass


class ProductionProtectionError(CloneError):
    """Raised when a destructive operation targets a production environment."""
    pass


class ToolUnavailableError(CloneError):
    """Raised when pg_dump or psql is missing or not runnable."""
    pass


class TransientConnectivityError(CloneError):
    """Raised when a tool fails to resolve the database hostname."""

    def __init__(self, message, host=None, stderr=''):
        super().__init__(message)
        self.host = host
        self.stderr = stderr


class ToolCommandError(CloneError):
    """Raised when a pg_dump/psql invocation exits non-zero."""

    def __init__(self, message, returncode=None, stderr=''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DumpError(ToolCommandError):
    """Raised when pg_dump fails."""
    pass


class TargetResetError(ToolCommandError):
    """Raised when the target reset script fails or leaves auth.users populated."""
    pass


class RestoreTransactionError(ToolCommandError):
    """Raised when the single-transaction restore fails and is rolled back."""
    pass


class PhaseTimeoutError(CloneError):
    """Raised when a phase or external process exceeds its time limit."""
    pass


class OperationCancelledError(CloneError):
    """Raised at a suspension point after cancellation was requested."""
    pass


class AnonymizationError(CloneError):
    """Raised by an anonymizer for a single value; always captured per row."""
    pass


class TableOperationError(CloneError):
    """Raised for a failed copy/delete of one table; always captured per table."""

    def __init__(self, table, message):
        super().__init__(f"{table}: {message}")
        self.table = table
