"""Shared base for server payload models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


class BaseModel(PydanticBaseModel):
    """Payload model that tolerates extra server fields.

    Aliases carry the server's field names; either name is accepted on input.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    def to_dict(self) -> dict[str, Any]:
        """Snake-case dict without unset optionals, for JSON output."""
        return self.model_dump(exclude_none=True)
