"""Request shapes for sample submissions."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class BeforeAfterValue(BaseModel):
    before: float
    after: float


class Sample(BaseModel):
    """Raw input for one physical specimen.

    Exactly the field matching the point's setup type and nature is expected
    to be populated; ``qcgate.validation.checks`` enforces that.
    """

    sample_index: int = Field(ge=1)
    single_value: float | None = None
    before_after_value: BeforeAfterValue | None = None
    qualitative_value: bool | None = None


class ItemSubmission(BaseModel):
    """Raw data submitted for one measurement item."""

    measurement_item_name_id: str
    variable_values: dict[str, float] = Field(default_factory=dict)
    samples: list[Sample] = Field(default_factory=list)

    @field_validator("variable_values", mode="before")
    @classmethod
    def _variable_list_to_dict(cls, value: Any) -> Any:
        """Accept ``[{"name_id": ..., "value": ...}]`` as well as a mapping."""
        if isinstance(value, list):
            converted: dict[str, Any] = {}
            for entry in value:
                if not isinstance(entry, dict):
                    raise ValueError("variable_values entries must be objects")
                name = entry.get("name_id", entry.get("name"))
                if name is None:
                    raise ValueError("variable_values entries need a name_id")
                converted[name] = entry.get("value")
            return converted
        return value
