from __future__ import annotations

import collections.abc
import datetime
import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def detect_format(path: str | Path) -> Optional[str]:
    """Returns 'json' or 'yaml' from a file extension, or None."""
    ext = Path(path).suffix.lower()
    if ext == '.json':
        return 'json'
    if ext in ('.yaml', '.yml'):
        return 'yaml'
    return None


def to_value(value: Any, name: str) -> Any:
    """Convert one deserialized scalar into an Osun Value."""
    match value:
        case None | bool() | str():
            return value
        case int() | float():
            # Osun numbers are always floats
            return float(value)
        case datetime.date() | datetime.datetime():
            return value.isoformat()
        case _:
            raise ValueError(f"seed value '{name}' must be a scalar, got {type(value).__name__}")


def to_variables(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, collections.abc.Mapping):
        raise ValueError("seed data must be a mapping of variable names to values")
    return {str(k): to_value(v, str(k)) for k, v in data.items()}


def load_variables(path: str | Path) -> Dict[str, Any]:
    """
    Read a YAML or JSON file of `name: value` pairs to seed a runner with.

    Only scalars are accepted since the Value model has no containers.
    """
    fmt = detect_format(path)
    if fmt is None:
        raise ValueError(f"unsupported seed file format: {path}")
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text) if fmt == 'json' else yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML in {path}: {e}") from e
    return to_variables(data)
