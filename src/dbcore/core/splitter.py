"""Split a SQL script into individual statements.

Single left-to-right scan. A ``;`` ends a statement only outside string
literals, quoted identifiers and comments. Comment text is dropped from
the output; string and identifier contents (including any ``;``) are kept
verbatim. Emitted statements are whitespace-trimmed and keep their
terminating ``;``. Whitespace-only statements are dropped.
"""

from __future__ import annotations

from enum import Enum, auto

from dbcore.core.exceptions import ParsingError


class _Mode(Enum):
    CODE = auto()
    STRING = auto()
    IDENTIFIER = auto()
    LINE_COMMENT = auto()
    BLOCK_COMMENT = auto()


_UNCLOSED: dict[_Mode, str] = {
    _Mode.STRING: "Unclosed string literal in SQL statement",
    _Mode.IDENTIFIER: "Unclosed quoted identifier in SQL statement",
    _Mode.BLOCK_COMMENT: "Unclosed block comment in SQL statement",
}


def split_statements(script: str) -> list[str]:
    """Split ``script`` into statements.

    Raises ParsingError if the input ends inside a string literal, a quoted
    identifier or a block comment. An unterminated line comment is closed
    by end of input.
    """
    statements: list[str] = []
    buf: list[str] = []
    mode = _Mode.CODE
    prev = ""

    def flush() -> None:
        stmt = "".join(buf).strip()
        if stmt and stmt != ";":
            statements.append(stmt)
        buf.clear()

    for ch in script:
        if mode is _Mode.LINE_COMMENT:
            if ch == "\n":
                mode = _Mode.CODE
                buf.append(ch)
            prev = ch
            continue

        if mode is _Mode.BLOCK_COMMENT:
            if ch == "/" and prev == "*":
                mode = _Mode.CODE
                # "*/" must not pair with a following "*" or "-".
                prev = ""
                continue
            prev = ch
            continue

        if mode is _Mode.STRING:
            buf.append(ch)
            if ch == "'" and prev != "\\":
                mode = _Mode.CODE
                prev = ""
                continue
            # An escaped backslash cannot escape the next quote.
            prev = "" if (ch == "\\" and prev == "\\") else ch
            continue

        if mode is _Mode.IDENTIFIER:
            buf.append(ch)
            if ch == '"' and prev != "\\":
                mode = _Mode.CODE
                prev = ""
                continue
            prev = "" if (ch == "\\" and prev == "\\") else ch
            continue

        # CODE
        if ch == "-" and prev == "-":
            buf.pop()
            mode = _Mode.LINE_COMMENT
            prev = ""
            continue
        if ch == "*" and prev == "/":
            buf.pop()
            mode = _Mode.BLOCK_COMMENT
            prev = ""
            continue

        buf.append(ch)
        if ch == "'":
            mode = _Mode.STRING
        elif ch == '"':
            mode = _Mode.IDENTIFIER
        elif ch == ";":
            flush()
        prev = ch

    if mode in _UNCLOSED:
        raise ParsingError(_UNCLOSED[mode])

    flush()
    return statements
