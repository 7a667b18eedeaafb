# File: civicsync/schemas/common.py
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models serialized with camelCase keys for the SPA."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body: dict = {"success": True, "data": _dump(data)}
    if message:
        body["message"] = message
    body.update(extra)
    return body


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_dump(x) for x in data]
    if isinstance(data, dict):
        return {k: _dump(v) for k, v in data.items()}
    return data
