import uuid
from datetime import datetime, date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


def to_json_value(value: Any) -> Any:
    """Convert UUIDs, enums, datetimes and containers of them into JSON-safe values."""
    if isinstance(value, uuid.UUID):
        return str(value)

    if isinstance(value, Enum):
        return value.value

    # datetime must be checked before date
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, (list, tuple, set)):
        return [to_json_value(item) for item in value]

    if isinstance(value, dict):
        return {key: to_json_value(val) for key, val in value.items()}

    if isinstance(value, BaseModel):
        return to_json_value(value.model_dump(by_alias=True))

    return value


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases and automatic serialization.

    - Input: camelCase keys from the admin client are accepted, as are snake_case names.
    - Output: call `model_dump(by_alias=True)` to serialize fields back to camelCase.
    - Auto-serialization: UUIDs, Enums and datetimes are converted to strings.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*")
    def serialize_any(self, value):
        """Global serializer so every dump is JSON-safe"""
        return to_json_value(value)
