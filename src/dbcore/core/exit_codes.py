"""Standard exit codes for dbcore.

Exit codes follow Unix conventions; one code per error kind.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for dbcore commands."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    INPUT_ERROR = 3
    OUTPUT_ERROR = 4
    NETWORK_ERROR = 5
    TIMEOUT = 6
    CONFIG_ERROR = 7
    QUERY_ERROR = 8
    NOT_FOUND = 9
    UNSUPPORTED = 10
    TRANSACTION_ERROR = 11
