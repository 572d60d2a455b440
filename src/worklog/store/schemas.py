"""JSON schema validation for ``scope.json`` and ``index.json``.

Schemas ship as package data under ``worklog.store.schema_files`` and are
loaded through ``importlib.resources`` so validation never depends on the
current working directory.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib.resources import files
from typing import Any

from jsonschema.validators import Draft202012Validator

SCHEMA_PACKAGE = "worklog.store.schema_files"
SCOPE_SCHEMA = "scope"
INDEX_SCHEMA = "index"


@lru_cache(maxsize=None)
def load_schema(schema_name: str) -> dict[str, Any]:
    """Load a schema by canonical name (without ``.schema.json``).

    Raises:
        KeyError: If no such schema ships with the package.
    """
    resource = files(SCHEMA_PACKAGE).joinpath(f"{schema_name}.schema.json")
    if not resource.is_file():
        raise KeyError(f"Schema '{schema_name}' not found in worklog package data")
    return json.loads(resource.read_text(encoding="utf-8"))


def validate_data(data: Any, schema_name: str) -> tuple[bool, list[str]]:
    """Validate data against a packaged schema.

    Args:
        data: Parsed JSON document.
        schema_name: Canonical schema name.

    Returns:
        Tuple of (is_valid, error_messages)
    """
    validator = Draft202012Validator(load_schema(schema_name))
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if not errors:
        return True, []

    messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]
    return False, messages
