from __future__ import annotations

import json
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Mapping, Sequence

from .errors import ValidationError
from .validation import validate_field_name, validate_sort_direction

Filter = Callable[[dict[str, Any], str], bool]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

STAGE_TYPES = ("match", "sort", "limit", "skip", "group")


@dataclass
class FindOptions:
    filter: Filter | None = None
    limit: int | None = None
    skip: int = 0


def get_nested_value(doc: Any, path: str) -> Any:
    """
    Resolve a dotted path ("a.b.c") against nested mappings, MISSING if any hop is absent.

    A digit segment indexes into a list, so "tags.0" is the first tag.
    """
    current = doc
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return MISSING
    return current


def group_key(value: Any) -> str:
    # Same spelling a JavaScript String() cast would produce.
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _rank(value: Any) -> int:
    if value is MISSING:
        return 4
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    return 3


def compare_values(a: Any, b: Any) -> int:
    ra, rb = _rank(a), _rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra in (0, 1, 2):
        return (a > b) - (a < b)
    return 0


def validate_pipeline(stages: Sequence[Mapping[str, Any]]) -> None:
    grouped = False
    for index, stage in enumerate(stages):
        if not isinstance(stage, Mapping):
            raise ValidationError(f"Stage {index} must be a mapping")
        kind = stage.get("type")
        if kind not in STAGE_TYPES:
            raise ValidationError(f"Stage {index}: unknown stage type {kind!r}")
        if grouped:
            raise ValidationError(f"Stage {index}: 'group' must be the last stage")

        if kind == "match":
            if not callable(stage.get("filter")):
                raise ValidationError(f"Stage {index}: 'match' needs a callable filter")
        elif kind in ("sort", "group"):
            validate_field_name(stage.get("field"))
            if kind == "sort":
                validate_sort_direction(stage.get("direction"))
            else:
                grouped = True
        else:
            count = stage.get("count")
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise ValidationError(f"Stage {index}: '{kind}' needs a non-negative integer count")


def run_pipeline(
    docs: list[dict[str, Any]], stages: Sequence[Mapping[str, Any]]
) -> list[dict[str, Any]] | dict[str, list[dict[str, Any]]]:
    validate_pipeline(stages)

    result = list(docs)
    for stage in stages:
        kind = stage["type"]
        if kind == "match":
            predicate = stage["filter"]
            result = [doc for doc in result if predicate(doc)]
        elif kind == "sort":
            field = stage["field"]
            result.sort(
                key=cmp_to_key(lambda a, b: compare_values(get_nested_value(a, field), get_nested_value(b, field))),
                reverse=stage.get("direction") == "desc",
            )
        elif kind == "limit":
            result = result[: stage["count"]]
        elif kind == "skip":
            result = result[stage["count"] :]
        elif kind == "group":
            groups: dict[str, list[dict[str, Any]]] = {}
            for doc in result:
                groups.setdefault(group_key(get_nested_value(doc, stage["field"])), []).append(doc)
            return groups
    return result
