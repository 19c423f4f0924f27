"""JSON output for CLI commands.

Data goes to stdout; logs and errors go to stderr.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from pydantic import BaseModel


def to_jsonable(data: Any) -> Any:
    """Convert models (or lists/dicts of models) to JSON-ready values."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [to_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {key: to_jsonable(value) for key, value in data.items()}
    return data


def write_json(data: Any, *, compact: bool = False) -> None:
    """Write ``data`` as JSON to stdout."""
    payload = to_jsonable(data)
    if compact:
        text = json.dumps(payload, default=str, separators=(",", ":"))
    else:
        text = json.dumps(payload, indent=2, default=str)
    sys.stdout.write(text + "\n")
