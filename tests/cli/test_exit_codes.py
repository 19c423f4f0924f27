"""Tests for exit code mapping through run()."""

from unittest.mock import patch

import pytest

from dbcore.core.exceptions import (
    ConfigError,
    ConnectionError,
    InputError,
    NotFoundError,
    QueryError,
    TimeoutError,
    TransactionError,
    UnsupportedError,
)
from dbcore.core.exit_codes import ExitCode


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (ConnectionError("connection refused"), ExitCode.NETWORK_ERROR),
        (TimeoutError("pool timeout"), ExitCode.TIMEOUT),
        (InputError("bad input"), ExitCode.INPUT_ERROR),
        (ConfigError("bad config"), ExitCode.CONFIG_ERROR),
        (QueryError("syntax error"), ExitCode.QUERY_ERROR),
        (NotFoundError("not connected"), ExitCode.NOT_FOUND),
        (UnsupportedError("mysql support not yet implemented"), ExitCode.UNSUPPORTED),
        (TransactionError("already committed"), ExitCode.TRANSACTION_ERROR),
    ],
)
def test_run_maps_error_to_exit_code(error, code, capsys):
    from dbcore.cli.main import run

    with patch("dbcore.cli.main.app", side_effect=error):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == code
    assert f"Error: {error.message}" in capsys.readouterr().err


@pytest.mark.unit
def test_run_unexpected_error():
    from dbcore.cli.main import run

    with patch("dbcore.cli.main.app", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == ExitCode.GENERAL_ERROR


@pytest.mark.unit
def test_run_keyboard_interrupt():
    from dbcore.cli.main import run

    with patch("dbcore.cli.main.app", side_effect=KeyboardInterrupt):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 130
