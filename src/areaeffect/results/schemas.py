from __future__ import annotations

from typing import Any, Literal

# pydantic validates records and serialises them to JSON.
from pydantic import BaseModel, Field


class ClassifiedPointRecord(BaseModel):
    point_id: str
    support_id: str
    aoe_class: Literal["core", "halo"]
    x: float
    y: float
    attributes: dict[str, Any] = Field(default_factory=dict)


class BorderPointRecord(BaseModel):
    point_id: str
    side: str
    aoe_class: Literal["core", "halo"]
    x: float
    y: float
    attributes: dict[str, Any] = Field(default_factory=dict)


class ExpansionRecord(BaseModel):
    support_id: str
    scale_used: float = Field(ge=0.0)
    points_captured: int = Field(ge=0)
    target_reached: bool
    cap_hit: Literal["none", "max_area", "max_dist"]


class ResultRecords(BaseModel):
    """JSON export envelope; `points` holds one record per output row."""

    kind: Literal["aoe", "expand", "border"]
    support_count: int | None = None
    scale: float | None = None
    area: float | None = None
    core_width: float | None = None
    halo_width: float | None = None
    points: list[ClassifiedPointRecord | BorderPointRecord] = Field(default_factory=list)
    expansion: list[ExpansionRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
