"""Result envelope returned by ``qcgate.execute()``."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CallableResult(BaseModel):
    """Envelope for one execute() call.

    ``items`` carries the measurement results (or dependency reports)
    inline; ``items_ref`` points at a stored batch document instead. A
    result holds one or the other, never both.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: str = "1.0"
    items: list[dict[str, Any]] | None = None
    items_ref: str | None = None
    stats: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_payload(self) -> CallableResult:
        if (self.items is None) == (self.items_ref is None):
            raise ValueError("Must set exactly one of 'items' or 'items_ref'")
        return self

    def to_dict(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        if not payload["stats"]:
            del payload["stats"]
        return payload
