"""SQL script source resolution.

The script text comes from the -e flag, a file path, or stdin, in that
order of priority.
"""

from __future__ import annotations

import sys
from pathlib import Path

from dbcore.core.exceptions import InputError


def resolve_query_source(
    inline: str | None,
    file_path: str | None,
) -> str:
    """Resolve a SQL script from inline text, a file, or stdin.

    Precedence: inline > file > stdin.
    Raises InputError when no source is available or the script is blank.
    """
    if inline is not None:
        script = inline
    elif file_path is not None:
        p = Path(file_path)
        if not p.is_file():
            msg = (
                f"Script file not found: {file_path}\n"
                "Use -e for inline SQL or pipe the script via stdin."
            )
            raise InputError(msg)
        script = p.read_text(encoding="utf-8")
    elif not sys.stdin.isatty():
        script = sys.stdin.read()
    else:
        msg = "No SQL provided. Use -e, a file path, or pipe to stdin."
        raise InputError(msg)

    if not script.strip():
        raise InputError("SQL script is empty")
    return script
