"""Thing Description fixtures and comparison helpers."""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, Optional

from .utils import canonical_json, pretty_json

TD_CONTEXT = "https://www.w3.org/2019/wot/td/v1"
SYSTEM_FIELDS = ("@context", "registration")


def mocked_td(id: Optional[str] = None) -> Dict[str, Any]:
    """Minimal valid TD; anonymous when ``id`` is empty."""
    td: Dict[str, Any] = {
        "@context": TD_CONTEXT,
        "title": "example thing",
        "security": ["nosec_sc"],
        "securityDefinitions": {
            "nosec_sc": {"scheme": "nosec"},
        },
    }
    if id:
        td["id"] = id
    return td


def strip_fields(td: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Return a copy of ``td`` without ``keys`` (the input is left alone)."""
    out = copy.deepcopy(td)
    for k in keys:
        out.pop(k, None)
    return out


def serialized_equal(a: Dict[str, Any], b: Dict[str, Any], ignore: Iterable[str] = SYSTEM_FIELDS) -> bool:
    ignore = tuple(ignore)
    return canonical_json(strip_fields(a, *ignore)) == canonical_json(strip_fields(b, *ignore))


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON Merge Patch (RFC 7396) and return the result.

    Objects merge recursively, ``None`` removes a member, anything else
    (arrays included) replaces the target value wholesale.
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def get_id(t, td: Dict[str, Any]) -> str:
    """Return the TD's string ``id`` or stop the case with a fatal error."""
    tid = td.get("id") if isinstance(td, dict) else None
    if not isinstance(tid, str) or not tid:
        t.fatal("No ID in TD: %s", pretty_json(td))
    return tid


__all__ = ["TD_CONTEXT", "mocked_td", "strip_fields", "serialized_equal", "merge_patch", "get_id", "pretty_json"]
