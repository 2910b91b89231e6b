import uuid
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional


def _parse_scalar(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None

    if isinstance(value, uuid.UUID):
        return str(value)

    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        try:
            return str(uuid.UUID(candidate))
        except ValueError:
            return None

    if isinstance(value, bytes) and len(value) == 16:
        return str(uuid.UUID(bytes=value))

    return None


def parse_user_id(value: Any) -> Optional[str]:
    """
    Normalize a stored user reference to a canonical user ID string.

    Accepted shapes:
        - UUID strings (hyphenated, bare hex, braced or urn:uuid form)
        - uuid.UUID instances
        - 16 raw bytes
        - a mapping with an "id" or "_id" key holding one of the above
        - an object (e.g. a loaded User row) whose `id` attribute holds one of the above

    Wrappers are unwrapped one level only. Anything else returns None.

    Returns:
        The lowercase hyphenated UUID string, or None if the value is not a user ID.
    """
    if value is None:
        return None

    parsed = _parse_scalar(value)
    if parsed is not None:
        return parsed

    if isinstance(value, Mapping):
        inner = value.get("id", value.get("_id"))
        return _parse_scalar(inner) if inner is not None else None

    if isinstance(value, (str, bytes, int, float)):
        return None

    inner = getattr(value, "id", None)
    return _parse_scalar(inner) if inner is not None else None


def parse_user_ids(values: Optional[Iterable[Any]]) -> List[str]:
    """Parse a list of references, dropping malformed ones and duplicates (first one wins)."""
    seen = set()
    parsed_ids: List[str] = []
    for value in values or []:
        user_id = parse_user_id(value)
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        parsed_ids.append(user_id)
    return parsed_ids
