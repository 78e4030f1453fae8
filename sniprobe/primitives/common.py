"""
SniProbe — Common Primitives

Shared base classes and utilities used across all systems.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


class ProbeBaseModel(BaseModel):
    """Base model for all SniProbe primitives."""

    model_config = {"populate_by_name": True, "from_attributes": True}


class Timestamped(ProbeBaseModel):
    """Mixin for models with creation timestamps."""

    created_at: datetime = Field(default_factory=utc_now)


class Identified(ProbeBaseModel):
    """Mixin for models with ULID IDs."""

    id: str = Field(default_factory=new_id)
