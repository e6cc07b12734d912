"""
Response envelope helpers
"""

from typing import Any, Dict

from ..storage import to_json_value


def ok(data: Any = None, **extra: Any) -> Dict[str, Any]:
    """``{"success": true, "data": ...}`` with money rendered as strings"""
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return to_json_value(body)
