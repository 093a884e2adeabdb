"""
Schema checks for treestate configuration.

Every violation in a document is reported at once, ordered by location,
so a config file with several mistakes can be fixed in one pass.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"

ROOT = "(root)"


class SchemaError(Exception):
    """Document does not match its schema.

    `problems` holds (location, message) pairs; `path` is the location of
    the first one.
    """

    def __init__(self, schema_name: str, problems: list[tuple[str, str]]):
        self.schema_name = schema_name
        self.problems = problems
        self.path = problems[0][0] if problems else None
        lines = [f"{message} at {location}" for location, message in problems]
        super().__init__(f"[{schema_name}] " + "; ".join(lines))


def schema_path(schema_name: str) -> Path:
    return SCHEMAS_DIR / f"{schema_name}.schema.json"


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.protocols.Validator:
    path = schema_path(schema_name)
    if not path.exists():
        raise SchemaError(schema_name, [(ROOT, f"Schema file not found: {path}")])
    schema = json.loads(path.read_text())
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def _location(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) or ROOT


def problems(data: Any, schema_name: str) -> list[tuple[str, str]]:
    """(location, message) for every violation, sorted by location."""
    errors = _validator(schema_name).iter_errors(data)
    found = [(_location(e), e.message) for e in errors]
    return sorted(found, key=lambda p: (p[0] != ROOT, p[0]))


def validate(data: Any, schema_name: str) -> None:
    """
    Check data against treestate/schemas/<schema_name>.schema.json.

    Raises:
        SchemaError: listing every violation
    """
    found = problems(data, schema_name)
    if found:
        raise SchemaError(schema_name, found)
