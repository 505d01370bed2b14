"""
JSON Schema checks at depflow's storage boundaries.

Entity records and events are checked before they are written; the
workspace and project schema files are checked when they are loaded.
Schemas ship as package data in depflow/schemas/<name>.schema.json.
"""

import json
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import best_match
from jsonschema.protocols import Validator

from depflow.lib.errors import SystemFailure, ValidationError

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"

# Compiled validators, keyed by schema name
_validators: dict[str, Validator] = {}


class SchemaViolation(ValidationError):
    """Data does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        located = f"{message} at {path}" if path else message
        super().__init__(f"[{schema_name}] {located}")


def _validator(schema_name: str) -> Validator:
    validator = _validators.get(schema_name)
    if validator is None:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        try:
            schema = json.loads(schema_path.read_text())
        except FileNotFoundError:
            raise SystemFailure(f"Schema file not found: {schema_path}") from None
        cls = jsonschema.validators.validator_for(schema)
        validator = _validators[schema_name] = cls(schema)
    return validator


def _violation(data: Any, schema_name: str) -> tuple[str, str] | None:
    """Most relevant (message, path) for invalid data, or None if it's valid."""
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return None
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    return error.message, path


def validate(data: Any, schema_name: str) -> None:
    """Check data against a named schema ("task", "event", "project_schema", ...).

    Raises:
        SchemaViolation: If the data doesn't match
    """
    violation = _violation(data, schema_name)
    if violation:
        raise SchemaViolation(schema_name, *violation)


def validate_file(filepath: Path, schema_name: str) -> dict:
    """Load a JSON file and check it against a named schema.

    Returns:
        The parsed data

    Raises:
        SchemaViolation: If the file is missing or doesn't match
        SystemFailure: If the file can't be read or parsed
    """
    if not filepath.exists():
        raise SchemaViolation(schema_name, f"File not found: {filepath}")

    try:
        data = json.loads(filepath.read_text())
    except json.JSONDecodeError as e:
        raise SystemFailure(f"Cannot parse {filepath}. File may be corrupted.", e) from e
    except OSError as e:
        raise SystemFailure(f"Cannot read {filepath}", e) from e

    validate(data, schema_name)
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Refuse to persist data that doesn't match its schema."""
    violation = _violation(data, schema_name)
    if violation:
        message, path = violation
        raise SchemaViolation(schema_name, f"Refusing to write invalid data to {filepath}: {message}", path)
