"""
Base schemas shared by request and response DTOs.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from ..core.timezone_utils import ensure_utc


class StandardizedModel(BaseModel):
    """Response base: reads ORM attributes, accepts field names or aliases."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


def coerce_utc(value: Any) -> Any:
    """Field validator helper: tag naive datetimes as UTC and normalize aware ones."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value
