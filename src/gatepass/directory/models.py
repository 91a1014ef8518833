"""Directory file models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import (
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _coerce_str(v: Any) -> Any:
    """YAML reads `year: 3` as an int; directory keys are compared as strings."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class Handles(BaseModel):
    department: str
    year: str | None = None
    section: str | None = None

    @field_validator("year", "section", mode="before")
    @classmethod
    def _validate_str(cls, v: Any) -> Any:
        return _coerce_str(v)


class MemberEntry(BaseModel):
    # Snake case in directory.yaml, camel case on the wire.
    model_config = ConfigDict(alias_generator=AliasGenerator(serialization_alias=to_camel))

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: Literal["student", "advisor", "hod", "security"]
    email: str | None = None
    phone: str | None = None
    employee_id: str | None = None
    department: str | None = None
    year: str | None = None
    section: str | None = None
    roll_number: str | None = None
    handles: Handles | None = None

    @field_validator("year", "section", "phone", "roll_number", mode="before")
    @classmethod
    def _validate_str(cls, v: Any) -> Any:
        return _coerce_str(v)

    @model_validator(mode="after")
    def _validate_role_fields(self) -> "MemberEntry":
        if self.role == "advisor":
            if self.handles is None or not (self.handles.year and self.handles.section):
                raise ValueError(
                    f"advisor {self.id!r} must declare handles.department, year and section"
                )
        elif self.role == "hod":
            if self.handles is None:
                raise ValueError(f"hod {self.id!r} must declare handles.department")
        elif self.role == "student":
            if not (self.department and self.year and self.section and self.roll_number):
                raise ValueError(
                    f"student {self.id!r} must declare department, year, section and roll_number"
                )
        return self


class DirectoryConfig(BaseModel):
    version: int = Field(default=1)
    members: list[MemberEntry] = Field(default_factory=list)

    @field_validator("members", mode="before")
    @classmethod
    def _validate_members(cls, v: Any) -> list:
        if v is None:
            return []
        return v

    @model_validator(mode="after")
    def _validate_unique_ids(self) -> "DirectoryConfig":
        seen: set[str] = set()
        for member in self.members:
            if member.id in seen:
                raise ValueError(f"Duplicate directory member id: {member.id!r}")
            seen.add(member.id)
        return self

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "DirectoryConfig":
        return cls.model_validate(data)
