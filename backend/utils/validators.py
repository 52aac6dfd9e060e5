"""
Input validation utilities
"""
import re
from typing import Any, Dict, Optional

from backend.utils.helpers import safe_json_parse

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """
    Strip markup and control characters from free text before storage.

    The result is plain text; escaping is left to whatever renders it.
    """
    if value is None:
        return None
    cleaned = _TAG_RE.sub("", value)
    cleaned = _CONTROL_RE.sub("", cleaned).strip()
    return cleaned or None


def validate_required_text(value: Optional[str], field_label: str) -> str:
    """Validate that a required text field is present and not blank"""
    if value is None or not str(value).strip():
        raise ValueError(f"{field_label} is required")
    return str(value).strip()


def normalize_url_data(value: Any) -> Dict[str, Any]:
    """
    Bring a voucher document reference into its canonical object form.

    Objects pass through; strings are parsed as JSON and, when that does not
    yield an object, wrapped as ``{"downloadURL": <string>}``.
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError("Download URL is required")
        parsed = safe_json_parse(value)
        if isinstance(parsed, dict):
            return parsed
        return {"downloadURL": value}
    raise ValueError("url_data must be an object or a string")
