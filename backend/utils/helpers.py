"""
General helper utilities
"""
import json
from typing import Any, Dict, Union


def safe_json_parse(text: str, default: Any = None) -> Any:
    """Safely parse JSON string"""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return default


def dump_url_data(url_data: Dict[str, Any]) -> str:
    """Serialize a voucher document reference for storage"""
    return json.dumps(url_data, separators=(",", ":"), ensure_ascii=False)


def load_url_data(raw: Any) -> Union[Dict[str, Any], str, None]:
    """
    Deserialize a stored document reference.

    Values that are not a JSON object come back unchanged, so one bad row
    never fails a whole listing.
    """
    if raw is None or isinstance(raw, dict):
        return raw
    parsed = safe_json_parse(raw)
    if isinstance(parsed, dict):
        return parsed
    return raw
