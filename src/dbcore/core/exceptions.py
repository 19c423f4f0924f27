"""Exception hierarchy for dbcore.

All exceptions carry an exit_code for CLI return value mapping.
Backend driver errors are wrapped into one of these kinds with the
driver's diagnostic text preserved in the message.
"""

from dbcore.core.exit_codes import ExitCode


class DbCoreError(Exception):
    """Base exception for all dbcore errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConnectionError(DbCoreError):
    """Cannot reach or authenticate to the backend, pool closed or crashed."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(ConnectionError):
    """Pool acquisition timeout, connect timeout, statement timeout."""

    exit_code: int = ExitCode.TIMEOUT


class QueryError(DbCoreError):
    """Backend rejected a statement."""

    exit_code: int = ExitCode.QUERY_ERROR


class ConfigError(DbCoreError):
    """Missing required field, unsupported scheme, invalid value."""

    exit_code: int = ExitCode.CONFIG_ERROR


class NotFoundError(DbCoreError):
    """Unknown connection id, or connection not established."""

    exit_code: int = ExitCode.NOT_FOUND


class UnsupportedError(DbCoreError):
    """Backend kind recognized but not implemented."""

    exit_code: int = ExitCode.UNSUPPORTED


class TransactionError(DbCoreError):
    """Operating on an already finalized transaction."""

    exit_code: int = ExitCode.TRANSACTION_ERROR


class ParsingError(DbCoreError):
    """Unbalanced string, identifier or block comment in a script."""

    exit_code: int = ExitCode.INPUT_ERROR


class InputError(DbCoreError):
    """File not found, no script provided."""

    exit_code: int = ExitCode.INPUT_ERROR
