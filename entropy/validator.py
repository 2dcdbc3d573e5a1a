"""Validation helpers: JSON schema validation and required-field checks."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Callable
from typing import Any

import jsonschema
from jsonschema.exceptions import SchemaError

from entropy.errors import ERR_INTERNAL, ERR_INVALID

_VALIDATE_KEY = "validate"
_REQUIRED = "required"


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def from_json_schema(schema: Any) -> Callable[[Any], Any]:
    """Return a function that validates JSON documents against schema.

    The returned function decodes the document, checks it and returns the
    decoded value. It raises an invalid-request error listing every
    violation, or an internal error if the schema or the document cannot
    be read.
    """
    schema_error: str | None = None
    validator = None
    try:
        schema_doc = _decode(schema)
        validator_cls = jsonschema.validators.validator_for(schema_doc)
        validator_cls.check_schema(schema_doc)
        validator = validator_cls(schema_doc)
    except (ValueError, SchemaError, TypeError, AttributeError) as exc:
        schema_error = str(exc)

    def validate(document: Any) -> Any:
        if validator is None:
            raise ERR_INTERNAL.with_causef(schema_error or "invalid schema")
        try:
            instance = _decode(document)
        except ValueError as exc:
            raise ERR_INTERNAL.with_causef(str(exc)) from exc

        messages = []
        for err in validator.iter_errors(instance):
            path = ".".join(str(part) for part in err.absolute_path) or "(root)"
            messages.append(f"{path}: {err.message}")
        if messages:
            raise ERR_INVALID.with_msgf("\n".join(messages))
        return instance

    return validate


def required_field(**kwargs: Any) -> Any:
    """A dataclass field that tagged_struct requires to be non-empty."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[_VALIDATE_KEY] = _REQUIRED
    return dataclasses.field(metadata=metadata, **kwargs)


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(_is_zero(getattr(value, f.name)) for f in dataclasses.fields(value))
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if isinstance(value, (bool, int, float)):
        return not value
    return False


def _collect(value: Any, problems: list[str]) -> None:
    for f in dataclasses.fields(value):
        current = getattr(value, f.name)
        if f.metadata.get(_VALIDATE_KEY) == _REQUIRED and _is_zero(current):
            problems.append(f"{f.name}: {_REQUIRED}")
            continue
        if dataclasses.is_dataclass(current) and not isinstance(current, type):
            _collect(current, problems)


def tagged_struct(value: Any) -> Any:
    """Check the required fields of a dataclass instance, nested ones too.

    Returns the value when it is valid.
    """
    if not dataclasses.is_dataclass(value) or isinstance(value, type):
        raise ERR_INVALID.with_causef(
            f"validator: expected a dataclass instance, got {type(value).__name__}"
        )
    problems: list[str] = []
    _collect(value, problems)
    if problems:
        raise ERR_INVALID.with_msgf("invalid values for fields").with_causef(", ".join(problems))
    return value