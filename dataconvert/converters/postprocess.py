"""
FHIR output post-processing.

Rendered templates are JSON text. Before it is returned the output is:
1. parsed as JSON
2. stripped of empty values (null, '', [], {})
3. de-duplicated: entries sharing a fullUrl are merged into one
4. validated as a FHIR Bundle using the fhir.resources library
"""
import json
from typing import Any, Dict, List

from fhir.resources.bundle import Bundle
from pydantic import ValidationError


class OutputError(ValueError):
    """Rendered output is not a valid FHIR Bundle."""
    pass


def remove_empty(value: Any) -> Any:
    """Recursively drop None, blank strings, empty lists and empty objects."""
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            item = remove_empty(item)
            if not _is_empty(item):
                cleaned[key] = item
        return cleaned
    if isinstance(value, list):
        items = [remove_empty(item) for item in value]
        return [item for item in items if not _is_empty(item)]
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def merge_values(base: Any, update: Any) -> Any:
    """Deep merge: objects merge key by key, lists are unioned, scalars from update win."""
    if isinstance(base, dict) and isinstance(update, dict):
        merged = dict(base)
        for key, item in update.items():
            merged[key] = merge_values(merged[key], item) if key in merged else item
        return merged
    if isinstance(base, list) and isinstance(update, list):
        merged_list = list(base)
        for item in update:
            if item not in merged_list:
                merged_list.append(item)
        return merged_list
    return update


def merge_entries(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge bundle entries that share a fullUrl, keeping first-seen order."""
    merged: Dict[str, Dict[str, Any]] = {}
    ordered: List[Dict[str, Any]] = []
    for entry in entries:
        key = entry.get("fullUrl") if isinstance(entry, dict) else None
        if not key:
            ordered.append(entry)
            continue
        if key in merged:
            merged[key].update(merge_values(merged[key], entry))
        else:
            merged[key] = dict(entry)
            ordered.append(merged[key])
    return ordered


def postprocess_bundle(rendered: str) -> str:
    """
    Turn rendered template text into a validated FHIR Bundle JSON string.

    Args:
        rendered: Raw template output

    Returns:
        Compact JSON of the cleaned Bundle

    Raises:
        OutputError: If the output is not JSON or not a valid Bundle
    """
    try:
        data = json.loads(rendered)
    except json.JSONDecodeError as e:
        raise OutputError(f"Rendered output is not valid JSON: {e.msg} (line {e.lineno})") from e

    data = remove_empty(data)
    if not isinstance(data, dict) or data.get("resourceType") != "Bundle":
        raise OutputError("Rendered output is not a FHIR Bundle")

    if "entry" in data:
        data["entry"] = merge_entries(data["entry"])

    try:
        Bundle(**data)
    except (ValidationError, ValueError, TypeError) as e:
        raise OutputError(f"Rendered output is not a valid FHIR Bundle: {e}") from e

    return json.dumps(data, ensure_ascii=False)
