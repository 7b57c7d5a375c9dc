from __future__ import annotations

import math
from typing import Any, Mapping

from .errors import ValidationError

MAX_LIMIT = 10000
MAX_SKIP = 1000000
MAX_FIELD_LENGTH = 100
MAX_PATH_LENGTH = 260
SORT_DIRECTIONS = ("asc", "desc")


def normalize_id(doc_id: Any) -> str:
    """Coerce a caller-supplied id to its storage key: 42 and "42" are the same document."""
    if isinstance(doc_id, bool) or not isinstance(doc_id, (str, int)):
        raise ValidationError(f"Document id must be a string or integer, got {type(doc_id).__name__}")
    key = str(doc_id)
    if not key:
        raise ValidationError("Document id cannot be empty")
    return key


def validate_collection_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise ValidationError("Collection name must be a non-empty string")
    if name.startswith(".") or "/" in name or "\\" in name or "\0" in name or ":" in name:
        raise ValidationError(f"Invalid collection name: {name!r}")
    return name


def validate_document(document: Any) -> dict[str, Any]:
    """
    Check that `document` is a JSON object and return a detached deep copy.

    Tuples become lists; non-string keys, NaN/inf and non-JSON values are rejected.
    """
    if not isinstance(document, Mapping):
        raise ValidationError("Document must be a JSON object")
    return _copy_json(document, "$")


def _copy_json(value: Any, where: str) -> Any:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{where}: non-finite numbers cannot be stored")
        return value
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise ValidationError(f"{where}: object keys must be strings")
            out[k] = _copy_json(v, f"{where}.{k}")
        return out
    if isinstance(value, (list, tuple)):
        return [_copy_json(v, f"{where}[{i}]") for i, v in enumerate(value)]
    raise ValidationError(f"{where}: unsupported value type {type(value).__name__}")


def validate_pagination(limit: Any = None, skip: Any = None) -> None:
    errors: list[str] = []

    if limit is not None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            errors.append("Limit must be a non-negative integer")
        elif limit > MAX_LIMIT:
            errors.append(f"Limit must not exceed {MAX_LIMIT}")

    if skip is not None:
        if isinstance(skip, bool) or not isinstance(skip, int) or skip < 0:
            errors.append("Skip must be a non-negative integer")
        elif skip > MAX_SKIP:
            errors.append(f"Skip must not exceed {MAX_SKIP}")

    if errors:
        raise ValidationError(", ".join(errors))


def validate_field_name(field: Any) -> str:
    if not isinstance(field, str):
        raise ValidationError("Field name must be a string")
    if not field:
        raise ValidationError("Field name cannot be empty")
    if len(field) > MAX_FIELD_LENGTH:
        raise ValidationError(f"Field name must be less than {MAX_FIELD_LENGTH} characters")
    if field.startswith(".") or field.endswith(".") or ".." in field:
        raise ValidationError("Invalid dot notation: field cannot start/end with dots or contain consecutive dots")
    return field


def validate_sort_direction(direction: Any) -> str:
    if direction is None:
        return "asc"
    if direction not in SORT_DIRECTIONS:
        raise ValidationError('Sort direction must be either "asc" or "desc"')
    return direction


def validate_file_path(path: Any) -> str:
    if not isinstance(path, str):
        raise ValidationError("File path must be a string")
    if not path:
        raise ValidationError("File path cannot be empty")
    if len(path) > MAX_PATH_LENGTH:
        raise ValidationError(f"File path too long (max {MAX_PATH_LENGTH} characters)")
    if ".." in path or "\0" in path:
        raise ValidationError("File path contains invalid characters")
    return path
