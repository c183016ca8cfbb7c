"""
Core data models for the shopfloor service.

These models define the domain objects used throughout the system:
- Shop inventory rows (machines, tooling, tool types, materials, parts)
- The aggregated inventory snapshot used to compose one generation request
- The canonical itinerary step and the persisted itinerary record
- HTTP request/response bodies
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


# ============================================================================
# INVENTORY ROWS
# ============================================================================

class Machine(BaseModel):
    """A machine on the shop floor."""
    id: str = Field(..., description="Unique machine ID")
    name: str = Field(..., description="Human-readable machine name")
    type: str = Field(..., description="Controlled-vocabulary machine type")
    axes: int = Field(default=3, description="Axis count")
    spindle_rpm: float = Field(default=0, description="Maximum spindle speed")
    x_range: float = Field(default=0, description="Work envelope X (mm)")
    y_range: float = Field(default=0, description="Work envelope Y (mm)")
    z_range: float = Field(default=0, description="Work envelope Z (mm)")
    hourly_rate: Optional[float] = None
    setup_cost: Optional[float] = None
    operating_cost: Optional[float] = None


class Tool(BaseModel):
    """
    A tool mounted on exactly one machine.

    Rows arrive pre-joined with the owning machine's name and type when the
    inventory source can provide them.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(..., validation_alias=AliasChoices("name", "tool_name"))
    machine_id: str = Field(..., description="Owning machine; tools are never shared")
    machine_name: Optional[str] = None
    machine_type: Optional[str] = None
    tool_type_id: Optional[str] = None
    material: str = ""
    diameter: float = 0
    length: float = 0
    life_remaining: float = Field(default=100, description="Remaining life, percent")
    cost: Optional[float] = None
    replacement_cost: Optional[float] = None
    params: dict[str, float | str] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def params_default(cls, v):
        """Treat a null params column as an empty map."""
        return {} if v is None else v


class ParamField(BaseModel):
    """One declared parameter of a tool type."""
    model_config = ConfigDict(populate_by_name=True)

    key: str
    label: str
    kind: Literal["number", "text"] = Field(
        default="number", validation_alias=AliasChoices("kind", "type")
    )


class ToolType(BaseModel):
    """
    Reference category describing what parameters a class of tools exposes.

    Belongs to a machine type, not a machine. A ToolType is catalog data, never
    inventory: its presence does not mean any tool of that type exists.
    """
    id: str
    name: str
    machine_type: str
    param_schema: list[ParamField] = Field(default_factory=list)

    @field_validator("param_schema", mode="before")
    @classmethod
    def unwrap_fields(cls, v):
        """Accept the stored {"fields": [...]} wrapper as well as a bare list."""
        if v is None:
            return []
        if isinstance(v, dict):
            return v.get("fields") or []
        return v


class StockType(str, Enum):
    """Raw stock shapes."""
    BAR = "bar"
    SHEET = "sheet"
    BLOCK = "block"


STOCK_DIMENSION_KEYS: dict[StockType, frozenset[str]] = {
    StockType.BAR: frozenset({"length", "diameter"}),
    StockType.SHEET: frozenset({"length", "width", "thickness"}),
    StockType.BLOCK: frozenset({"length", "width", "height"}),
}


class Material(BaseModel):
    """
    Raw stock material.

    Dimension keys must be exactly the ones the stock shape uses. Rows read
    back from a backend are validated with context={"lenient_dimensions": True}:
    missing keys are tolerated and foreign keys are dropped with a warning.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    stock_type: StockType
    dimensions: dict[str, float] = Field(default_factory=dict)
    cost: float = Field(
        default=0,
        validation_alias=AliasChoices("cost", "unit_cost"),
        description="Unit cost",
    )

    @field_validator("dimensions", mode="before")
    @classmethod
    def dimensions_default(cls, v):
        """Treat a null dimensions column as an empty map; null entries are unset."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {key: value for key, value in v.items() if value is not None}
        return v

    @model_validator(mode="after")
    def validate_dimensions(self, info: ValidationInfo):
        expected = STOCK_DIMENSION_KEYS[self.stock_type]
        present = set(self.dimensions)
        missing = expected - present
        extra = present - expected
        lenient = bool(info.context and info.context.get("lenient_dimensions"))

        if lenient:
            if missing:
                logger.warning("material %s (%s) has no %s dimensions", self.id, self.stock_type.value, sorted(missing))
            if extra:
                logger.warning(
                    "material %s (%s): dropping unused dimensions %s", self.id, self.stock_type.value, sorted(extra)
                )
                self.dimensions = {key: value for key, value in self.dimensions.items() if key in expected}
            return self

        if missing:
            raise ValueError(
                f"{self.stock_type.value} stock requires dimensions {sorted(missing)}"
            )
        if extra:
            raise ValueError(
                f"{self.stock_type.value} stock does not use dimensions {sorted(extra)}"
            )
        return self


class Part(BaseModel):
    """An uploaded part to be machined."""
    id: str
    name: str
    file_url: Optional[str] = None
    svg_url: Optional[str] = None
    uploaded_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("uploaded_at", "upload_date", "created_at")
    )


class InventorySnapshot(BaseModel):
    """
    Read-only grouping of shop inventory for one generation request.

    tools_by_machine_id is the only source of truth for what tooling exists.
    tool_types_by_machine_type is reference data and never implies availability.
    """
    machines: list[Machine] = Field(default_factory=list)
    tools: list[Tool] = Field(default_factory=list)
    materials: list[Material] = Field(default_factory=list)
    machines_by_type: dict[str, list[Machine]] = Field(default_factory=dict)
    tools_by_machine_id: dict[str, list[Tool]] = Field(default_factory=dict)
    tools_by_machine_type: dict[str, list[Tool]] = Field(default_factory=dict)
    tool_types_by_machine_type: dict[str, list[ToolType]] = Field(default_factory=dict)

    def find_machine(self, machine_id: Optional[str]) -> Optional[Machine]:
        if machine_id is None:
            return None
        for machine in self.machines:
            if machine.id == machine_id:
                return machine
        return None

    def find_tool_on_machine(self, machine_id: Optional[str], tool_id: Optional[str]) -> Optional[Tool]:
        """Return the tool only if it is mounted on that exact machine."""
        if machine_id is None or tool_id is None:
            return None
        for tool in self.tools_by_machine_id.get(machine_id, []):
            if tool.id == tool_id:
                return tool
        return None


# ============================================================================
# ITINERARY
# ============================================================================

class ItineraryStep(BaseModel):
    """
    Canonical normalized machining step.

    All keys are always present on the wire; absent values are explicit nulls.
    """
    description: str
    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    tooling_id: Optional[str] = None
    tool_name: Optional[str] = None
    time: float = Field(default=0, ge=0, description="Estimated minutes")
    cost: float = Field(default=0, ge=0, description="Currency units")
    unservable: bool = False
    parameter_issue: bool = False
    inadequate_parameter: Optional[str] = None
    required_parameter: Optional[str] = None
    required_machine_type: Optional[str] = None
    required_tool_type: Optional[str] = None
    recommendation: Optional[str] = None
    fixture_requirements: Optional[str] = None
    setup_description: Optional[str] = None


class ItineraryPayload(BaseModel):
    """The stored steps payload: ordered steps plus their recomputed total."""
    steps: list[ItineraryStep] = Field(default_factory=list)
    total_cost: float = 0


class Itinerary(BaseModel):
    """A persisted itinerary for a part."""
    id: str
    part_id: str
    steps: ItineraryPayload
    total_cost: float
    created_at: datetime


# ============================================================================
# HTTP BODIES
# ============================================================================

class GenerateItineraryRequest(BaseModel):
    """HTTP request body for itinerary generation."""
    part_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("part_id", "partId"),
        description="Part to plan",
    )


class GenerateItineraryResponse(BaseModel):
    """HTTP response for a successful generation."""
    success: bool = True
    itinerary: Itinerary


class LatestItineraryResponse(BaseModel):
    """HTTP response for the most recent itinerary of a part."""
    itinerary: Optional[Itinerary] = None
