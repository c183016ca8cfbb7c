"""
Controlled vocabularies and the tool-type reference catalog.

- MACHINE_TYPES: the machine-type names a Machine.type may take
- load_tool_type_catalog(): ToolType rows from the bundled YAML catalog
- canonical_tool_names(): distinct tool-type names across the catalog
- validate_tool_params(params, tool_type): check a tool's params map against
  its tool type's declared schema
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

import yaml

from .models import ToolType

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).parent / "data" / "tool_types.yaml"

MACHINE_TYPES: tuple[str, ...] = (
    "Conventional Lathe",
    "CNC Lathe (Turning Center)",
    "Swiss-Type Lathe",
    "Turret Lathe",
    "Vertical Turret Lathe (VTL)",
    "Vertical Milling Machine",
    "Horizontal Milling Machine",
    "CNC Milling Center (3-axis)",
    "CNC Milling Center (4-axis)",
    "CNC Milling Center (5-axis)",
    "Bed-Type Milling Machine",
    "Knee-Type Milling Machine",
    "Gantry (Bridge) Milling Machine",
    "Drill Press (Bench or Floor)",
    "Radial Arm Drill (Radial Drill)",
    "CNC Drill/Tap Center",
    "Horizontal Boring Mill",
    "Vertical Boring Mill",
    "CNC Boring Machine",
    "Surface Grinder",
    "Cylindrical Grinder (OD Grinder)",
    "Internal Grinder (ID Grinder)",
    "Centerless Grinder",
    "Tool & Cutter Grinder",
    "Creep Feed Grinder",
    "Wire EDM (Electrical Discharge Machine)",
    "Sinker (Ram) EDM",
    "Broaching Machine",
    "Honing Machine",
    "Lapping Machine",
    "Laser Cutting Machine",
    "Waterjet Cutting Machine",
    "Plasma Cutting Machine",
    "Ultrasonic Machining Center",
    "Electrochemical Machining (ECM) Machine",
    "CNC Router",
    "Additive/Subtractive Hybrid Machining Center",
    "3D Printer (for prototyping)",
    "CNC Router (Wood/Composite)",
    "CNC Laser Engraver",
)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def tool_type_id(machine_type: str, name: str) -> str:
    """Stable id for a catalog tool type."""
    return f"tt-{_slug(machine_type)}-{_slug(name)}"


@lru_cache(maxsize=4)
def load_tool_type_catalog(path: Path = CATALOG_PATH) -> tuple[ToolType, ...]:
    """
    Load the tool-type catalog.

    Returns:
        ToolType rows in file order, one per (machine type, tool name).

    Raises:
        ValueError: if the catalog names a machine type outside MACHINE_TYPES.
    """
    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    tool_types: list[ToolType] = []
    for machine_type, entries in (raw.get("machine_types") or {}).items():
        if machine_type not in MACHINE_TYPES:
            raise ValueError(f"Catalog machine type {machine_type!r} is not a known machine type")
        for entry in entries or []:
            tool_types.append(
                ToolType(
                    id=tool_type_id(machine_type, entry["name"]),
                    name=entry["name"],
                    machine_type=machine_type,
                    param_schema=entry.get("fields") or [],
                )
            )

    logger.debug("loaded %d tool types from %s", len(tool_types), path)
    return tuple(tool_types)


def canonical_tool_names() -> list[str]:
    """Distinct tool-type names in the catalog, in first-seen order."""
    seen: dict[str, None] = {}
    for tool_type in load_tool_type_catalog():
        seen.setdefault(tool_type.name, None)
    return list(seen)


def validate_tool_params(params: dict[str, float | str], tool_type: ToolType) -> dict[str, float | str]:
    """
    Validate a tool's params map against its tool type's schema.

    Numeric fields accept numbers or numeric strings (coerced to float);
    text fields accept strings.

    Returns:
        A new params dict with numeric values coerced.

    Raises:
        ValueError: on undeclared keys or values of the wrong kind.
    """
    declared = {field.key: field for field in tool_type.param_schema}

    unknown = sorted(set(params) - set(declared))
    if unknown:
        raise ValueError(
            f"params {unknown} are not declared by tool type {tool_type.name!r}"
        )

    cleaned: dict[str, float | str] = {}
    for key, value in params.items():
        field = declared[key]
        if field.kind == "number":
            if isinstance(value, bool):
                raise ValueError(f"param {key!r} must be a number")
            try:
                cleaned[key] = float(value)
            except (TypeError, ValueError):
                raise ValueError(f"param {key!r} must be a number, got {value!r}") from None
        else:
            if not isinstance(value, str):
                raise ValueError(f"param {key!r} must be text, got {value!r}")
            cleaned[key] = value
    return cleaned
