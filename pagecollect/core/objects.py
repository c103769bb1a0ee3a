"""
Helpers for the nested dict payloads events are made of
"""
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union


Path = Sequence[str]


def remove_suffix(value: str, suffix: Union[str, Iterable[str]]) -> str:
    """Strip every trailing repetition of each suffix: 'https://' -> 'https'"""
    suffixes = [suffix] if isinstance(suffix, str) else list(suffix)
    for suff in suffixes:
        if not suff:
            continue
        while value.endswith(suff):
            value = value[: -len(suff)]
    return value


def sanitize(obj: Any, nulls: str = "remove") -> Any:
    """
    Remove None values from a dict/list tree.

    Args:
        obj: dict or list
        nulls: "remove" drops None entries, "keep" leaves them in place
    """
    if isinstance(obj, dict):
        return {
            key: sanitize(value, nulls) if isinstance(value, (dict, list)) else value
            for key, value in obj.items()
            if not (nulls == "remove" and value is None)
        }
    if isinstance(obj, list):
        return [
            sanitize(value, nulls) if isinstance(value, (dict, list)) else value
            for value in obj
            if not (nulls == "remove" and value is None)
        ]
    raise TypeError(f"Wrong type {type(obj).__name__} - expected dict or list")


def deep_merge(target: Dict[str, Any], *sources: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge sources into target in place, left to right.

    Nested dicts merge recursively, anything else (scalars, lists) from a
    later source overwrites. None in a source means "not provided" and never
    overwrites an existing value. Keys present only in target are kept.

    Returns:
        target
    """
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            if value is None:
                target.setdefault(key, None)
            elif isinstance(value, dict):
                if not isinstance(target.get(key), dict):
                    target[key] = {}
                deep_merge(target[key], value)
            else:
                target[key] = value
    return target


def flatten(
    data: Dict[str, Any],
    delimiter: str = "_",
    stop_paths: Optional[List[Union[str, Path]]] = None,
) -> Dict[str, Any]:
    """
    Flatten nested dicts into delimiter-joined keys.

    Lists are serialized to compact JSON rather than flattened element-wise.
    Values under a stop path are kept as-is.

    flatten({"user": {"name": "john", "array": [1, 2]}})
        -> {"user_name": "john", "user_array": "[1,2]"}
    """
    stop_paths = [[p] if isinstance(p, str) else list(p) for p in (stop_paths or [])]
    result: Dict[str, Any] = {}
    for key, value in data.items():
        if [key] in stop_paths:
            result[key] = value
        elif value is None:
            result[key] = None
        elif isinstance(value, (list, tuple)):
            result[key] = json.dumps(list(value), separators=(",", ":"), default=str)
        elif isinstance(value, dict):
            child_stops = [p[1:] for p in stop_paths if len(p) > 1 and p[0] == key]
            for child_key, child_value in flatten(value, delimiter, child_stops).items():
                result[f"{key}{delimiter}{child_key}"] = child_value
        else:
            result[key] = value
    return result


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return f"{text[:max_len]}... (truncated; len={len(text)})"
