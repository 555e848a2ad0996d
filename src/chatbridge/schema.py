"""JSON Schema helpers for tool inputs and structured output."""

from __future__ import annotations

import json
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel

from chatbridge.errors import InvalidSchemaError

Schema = dict[str, Any]
SchemaInput = type[BaseModel] | dict[str, Any]


def schema_json(schema: SchemaInput) -> Schema:
    """Return the JSON Schema dict for a dict or a pydantic model class."""
    if isinstance(schema, dict):
        return schema
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    raise InvalidSchemaError(
        f"Expected a JSON Schema dict or pydantic model, got {type(schema).__name__}",
        hint="Pass a dict following JSON Schema or a BaseModel subclass.",
    )


def parse_schema(text: str) -> Schema:
    """Parse a JSON Schema document and check that it is a valid schema."""
    try:
        schema = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidSchemaError(f"Schema is not valid JSON: {e}") from e
    if not isinstance(schema, dict):
        raise InvalidSchemaError("Schema must be a JSON object")
    check_schema(schema)
    return schema


def check_schema(schema: Schema) -> None:
    """Raise ``InvalidSchemaError`` unless *schema* is a valid JSON Schema."""
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        raise InvalidSchemaError(f"Invalid JSON Schema: {e.message}") from e


def is_valid_schema(schema: Schema) -> bool:
    """Whether *schema* is a valid JSON Schema."""
    try:
        check_schema(schema)
    except InvalidSchemaError:
        return False
    return True


def validate(schema: Schema, data: str | bytes | Any) -> list[str]:
    """Validate a JSON instance against *schema*.

    *data* may be a JSON document (``str``/``bytes``) or an already decoded
    value. Returns the list of error messages; empty means the instance passed.
    """
    check_schema(schema)
    instance = data
    if isinstance(data, (str, bytes)):
        try:
            instance = json.loads(data)
        except json.JSONDecodeError as e:
            return [f"instance is not valid JSON: {e}"]
    validator = Draft202012Validator(schema)
    return [
        f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
        for err in sorted(
            validator.iter_errors(instance),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
    ]
