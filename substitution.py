"""
Variable substitution for workflow step fields.

The only placeholder is ``{{item}}``, which is replaced by the current loop
item. Strings are inserted as-is, dates as ISO text, and any other item as
compact JSON.
"""

from __future__ import annotations

import datetime
import json
from typing import Any, Optional

ITEM_PLACEHOLDER = "{{item}}"
CURRENT_ITEM_KEY = "current_item"


def _json_default(obj: Any) -> str:
    # YAML turns unquoted dates and timestamps into date/datetime objects
    if isinstance(obj, (datetime.date, datetime.time)):
        return obj.isoformat()
    return str(obj)


def item_text(item: Any) -> str:
    """Text inserted in place of {{item}} for one loop item."""
    if isinstance(item, str):
        return item
    if isinstance(item, (datetime.date, datetime.time)):
        return item.isoformat()
    return json.dumps(item, separators=(",", ":"), default=_json_default)


def to_text(value: Any) -> str:
    """
    Convert a step value to the text sent to the page.

    Follows how the page itself would stringify the value: booleans are
    lowercase, lists are joined with commas (None inside a list is empty),
    whole floats drop their fraction and mappings become compact JSON.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(v) for v in value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), default=_json_default)
    return str(value)


def substitute(text: Optional[str], context: dict[str, Any]) -> Optional[str]:
    """Replace {{item}} placeholders in ``text`` with the context's current item."""
    if text is None:
        return None
    if CURRENT_ITEM_KEY not in context or ITEM_PLACEHOLDER not in text:
        return text
    return text.replace(ITEM_PLACEHOLDER, item_text(context[CURRENT_ITEM_KEY]))


def substitute_value(value: Any, context: dict[str, Any]) -> Optional[str]:
    """Turn a step's ``value`` into text, then substitute. None stays None."""
    if value is None:
        return None
    return substitute(to_text(value), context)


def extend_context(context: dict[str, Any], **bindings: Any) -> dict[str, Any]:
    """Return a copy of ``context`` with ``bindings`` added; the parent is left untouched."""
    return {**context, **bindings}
