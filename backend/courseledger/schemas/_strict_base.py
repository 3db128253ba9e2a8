"""Strict schema baselines: unknown fields are rejected, never silently dropped."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Response DTO base; also readable from ORM rows."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that forbids unexpected fields and trims strings."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)
