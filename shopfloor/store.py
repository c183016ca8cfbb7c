"""
Inventory and itinerary persistence boundary.

- InventorySource: read-only access to part and inventory rows
- ItineraryStore: store(part_id, steps, total_cost) / fetch_latest(part_id)
- decode_steps_payload(raw): defensive decode of a stored steps payload that
  may come back as text, a {steps, total_cost} object, or a bare step list
- InMemoryShop: thread-safe in-memory implementation of both protocols
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from .catalog import validate_tool_params
from .errors import InventoryFetchFailed, PersistenceFailed
from .models import (
    Itinerary,
    ItineraryPayload,
    ItineraryStep,
    Machine,
    Material,
    Part,
    Tool,
    ToolType,
)
from .normalizer import compute_total_cost, normalize_steps

logger = logging.getLogger(__name__)


class InventorySource(Protocol):
    """Read access to the shop's inventory for one request."""

    def fetch_part(self, part_id: str) -> Part: ...

    def fetch_machines(self) -> list[Machine]: ...

    def fetch_tooling(self) -> list[Tool]: ...

    def fetch_tool_types(self) -> list[ToolType]: ...

    def fetch_materials(self) -> list[Material]: ...

    def fetch_vector_preview(self, part: Part) -> Optional[str]: ...


class ItineraryStore(Protocol):
    """Write and read back itineraries."""

    def store(self, part_id: str, steps: list[ItineraryStep], total_cost: float) -> Itinerary: ...

    def fetch_latest(self, part_id: str) -> Optional[Itinerary]: ...


def decode_steps_payload(raw: Any) -> ItineraryPayload:
    """
    Decode a stored steps payload into an ItineraryPayload.

    Text is JSON-decoded (twice if it was double-encoded). Steps are passed
    through normalization again, which is a no-op for canonical data and fills
    keys that older records omitted. The total is recomputed from the steps.

    Raises:
        PersistenceFailed: if the payload cannot be decoded.
    """
    value = raw
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise PersistenceFailed(
                "Stored itinerary steps are not valid JSON", details={"message": str(exc)}
            ) from exc

    if value is None:
        raw_steps: list[Any] = []
    elif isinstance(value, list):
        raw_steps = value
    elif isinstance(value, dict):
        raw_steps = value.get("steps") if isinstance(value.get("steps"), list) else []
    else:
        raise PersistenceFailed(
            "Stored itinerary steps have an unexpected shape",
            details={"type": type(value).__name__},
        )

    steps, warnings = normalize_steps(raw_steps)
    if warnings:
        logger.debug("repairs while decoding stored steps: %s", warnings)
    return ItineraryPayload(steps=steps, total_cost=compute_total_cost(steps))


def row_to_itinerary(row: dict[str, Any]) -> Itinerary:
    """Build an Itinerary from a stored row."""
    payload = decode_steps_payload(row.get("steps"))
    return Itinerary(
        id=str(row["id"]),
        part_id=str(row["part_id"]),
        steps=payload,
        total_cost=payload.total_cost,
        created_at=row["created_at"],
    )


class InMemoryShop:
    """
    In-memory inventory and itinerary storage.

    Itinerary step payloads are kept as JSON text, as an opaque JSON column
    would hand them back.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.parts: dict[str, Part] = {}
        self.vector_previews: dict[str, str] = {}
        self.machines: list[Machine] = []
        self.tools: list[Tool] = []
        self.tool_types: list[ToolType] = []
        self.materials: list[Material] = []
        self._itineraries: list[dict[str, Any]] = []

    # -- inventory writes -------------------------------------------------

    def add_part(self, part: Part, svg_content: Optional[str] = None) -> Part:
        self.parts[part.id] = part
        if svg_content:
            self.vector_previews[part.id] = svg_content
        return part

    def add_machine(self, machine: Machine) -> Machine:
        self.machines.append(machine)
        return machine

    def add_tool_type(self, tool_type: ToolType) -> ToolType:
        self.tool_types.append(tool_type)
        return tool_type

    def add_material(self, material: Material) -> Material:
        self.materials.append(material)
        return material

    def add_tool(self, tool: Tool) -> Tool:
        """
        Add a tool, validating its params against its tool type's schema.

        Raises:
            ValueError: if the owning machine or the tool type is unknown, or
                the params do not match the schema.
        """
        if not any(m.id == tool.machine_id for m in self.machines):
            raise ValueError(f"tool {tool.id!r} references unknown machine {tool.machine_id!r}")
        if tool.tool_type_id is not None:
            tool_type = next((t for t in self.tool_types if t.id == tool.tool_type_id), None)
            if tool_type is None:
                raise ValueError(f"tool {tool.id!r} references unknown tool type {tool.tool_type_id!r}")
            tool = tool.model_copy(update={"params": validate_tool_params(tool.params, tool_type)})
        self.tools.append(tool)
        return tool

    # -- InventorySource --------------------------------------------------

    def fetch_part(self, part_id: str) -> Part:
        part = self.parts.get(part_id)
        if part is None:
            raise InventoryFetchFailed("Error fetching part data", details={"part_id": part_id}, status_code=404)
        return part

    def fetch_machines(self) -> list[Machine]:
        return list(self.machines)

    def fetch_tooling(self) -> list[Tool]:
        return list(self.tools)

    def fetch_tool_types(self) -> list[ToolType]:
        return list(self.tool_types)

    def fetch_materials(self) -> list[Material]:
        return list(self.materials)

    def fetch_vector_preview(self, part: Part) -> Optional[str]:
        return self.vector_previews.get(part.id)

    # -- ItineraryStore ---------------------------------------------------

    def store(self, part_id: str, steps: list[ItineraryStep], total_cost: float) -> Itinerary:
        payload = ItineraryPayload(steps=steps, total_cost=total_cost)
        row = {
            "id": str(uuid.uuid4()),
            "part_id": part_id,
            "steps": payload.model_dump_json(),
            "total_cost": total_cost,
            "created_at": datetime.now(timezone.utc),
        }
        with self._lock:
            self._itineraries.append(row)
        logger.info("stored itinerary %s for part %s (%d steps)", row["id"], part_id, len(steps))
        return row_to_itinerary(row)

    def fetch_latest(self, part_id: str) -> Optional[Itinerary]:
        with self._lock:
            rows = [r for r in self._itineraries if r["part_id"] == part_id]
        if not rows:
            return None
        # stable sort keeps insertion order for equal timestamps
        latest = sorted(rows, key=lambda r: r["created_at"])[-1]
        return row_to_itinerary(latest)
