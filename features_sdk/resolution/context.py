"""
Evaluation context flattening and fingerprinting.
"""

from typing import Any, Dict, List, Mapping, Tuple
from urllib.parse import urlencode

Params = List[Tuple[str, str]]


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_context(obj: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    """Flatten nested mappings/lists into dotted keys; None values are dropped."""
    result: Dict[str, str] = {}
    for key, value in obj.items():
        path = f"{prefix}{key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            result.update(flatten_context(value, prefix=f"{path}."))
        elif isinstance(value, (list, tuple)):
            result.update(flatten_context({str(i): item for i, item in enumerate(value)}, prefix=f"{path}."))
        else:
            result[path] = _stringify(value)
    return result


def fetch_params(context: Mapping[str, Any], publishable_key: str) -> Params:
    """Sorted query parameters for a context; the publishable key is part of the identity."""
    params = list(flatten_context({"context": context}).items())
    params.append(("publishableKey", publishable_key))
    params.sort()
    return params


def context_fingerprint(context: Mapping[str, Any], publishable_key: str) -> str:
    """Deterministic cache key for a context and identity."""
    return urlencode(fetch_params(context, publishable_key))
