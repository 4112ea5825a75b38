import jsonpickle
from datetime import datetime, timezone
from typing import Any, Dict, List


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    Key order does not change the result; nested dictionaries and lists are
    handled recursively.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def upsert_condition(conds, newc):
    """In-memory merge by .type. Only bump lastTransitionTime when status flips."""
    conds = list(conds or [])
    for i, c in enumerate(conds):
        if c.get("type") == newc["type"]:
            ltt = c.get("lastTransitionTime") or now()
            if c.get("status") != newc["status"]:
                ltt = now()
            merged = {**c, **newc, "lastTransitionTime": ltt}
            conds[i] = merged
            break
    else:
        conds.append({**newc, "lastTransitionTime": now()})
    return conds


def prepare_merge_patch(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Build a JSON merge patch (RFC 7386) turning `before` into `after`.

    Keys removed in `after` are set to None. Lists are replaced as a whole.
    """
    patch = {}
    for key in set(before) | set(after):
        if key not in after:
            patch[key] = None
        elif key not in before:
            patch[key] = after[key]
        elif isinstance(before[key], dict) and isinstance(after[key], dict):
            nested = prepare_merge_patch(before[key], after[key])
            if nested:
                patch[key] = nested
        elif before[key] != after[key]:
            patch[key] = after[key]
    return patch


def find_by_name(items: List[Any], name: str):
    """Return the first item whose `name` attribute equals `name`."""
    for item in items or []:
        if getattr(item, "name", None) == name:
            return item
    return None
