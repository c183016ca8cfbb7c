"""
Prompt composition for itinerary generation.

- SYSTEM_PROMPT: fixed system instruction (expert machinist persona + selection rules)
- compose_prompt(snapshot, part, svg_content) -> str: the user prompt

The composed prompt is deterministic for a given snapshot, part and geometry.
"""

import json
import logging
from typing import Any, Optional

from .catalog import MACHINE_TYPES, canonical_tool_names
from .models import InventorySnapshot, Part

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an expert machinist with 30+ years of experience in CNC programming, fixturing, and multi-axis machining. You have deep knowledge of:

1. Advanced fixturing techniques and workholding solutions
2. Multi-axis machining strategies and tool path optimization
3. Combining operations to minimize setups and tool changes
4. Feature-based machining and design for manufacturability
5. Live tooling capabilities on lathes and mill-turn centers

Hard rules you never break:
1. Only assign a tool to a step if that tool is listed under TOOLS BY MACHINE ID for the exact machine chosen for the step. Tool type reference data never justifies an assignment.
2. Check every required tool parameter (diameter, length, material, thread pitch, etc.) against the tool's actual values.
3. If the tool exists on the machine but its parameters are inadequate, assign it and set parameter_issue=true with inadequate_parameter and required_parameter filled in.
4. If no qualifying tool or machine exists, leave the corresponding id and name null, set unservable=true, and fill in required_tool_type / required_machine_type and recommendation.

Your goal is to create the most efficient machining plan possible. Return ONLY valid JSON with no markdown formatting or explanations."""


OUTPUT_CONTRACT = """{
  "steps": [
    {
      "description": "Face top surface, vise on fixed jaw, datum A down",
      "machine_id": "<machine id or null>",
      "machine_name": "<machine name or null>",
      "tooling_id": "<tool id or null>",
      "tool_name": "<tool name or null>",
      "time": 12,
      "cost": 18.5,
      "unservable": false,
      "parameter_issue": false,
      "inadequate_parameter": null,
      "required_parameter": null,
      "required_machine_type": null,
      "required_tool_type": null,
      "recommendation": null,
      "fixture_requirements": "6in machinist vise, parallels",
      "setup_description": "Part clamped on long edges, 5mm above jaws"
    }
  ]
}"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _grouping(groups: dict[str, list]) -> dict[str, list[dict]]:
    return {key: [row.model_dump(mode="json") for row in rows] for key, rows in groups.items()}


def _geometry_section(part: Part, svg_content: Optional[str]) -> str:
    if svg_content:
        return (
            "PART GEOMETRY (2D vectors of the part drawing):\n"
            f"{json.dumps(svg_content, ensure_ascii=False)}\n\n"
            "Analyze these vectors and identify ALL required machining operations."
        )
    file_ref = part.file_url or "No file URL available"
    return (
        f"PART FILE: {file_ref}\n\n"
        "Plan a sequence of ALL necessary machining steps for this part."
    )


def compose_prompt(
    snapshot: InventorySnapshot,
    part: Part,
    svg_content: Optional[str] = None,
) -> str:
    """
    Build the user prompt for one itinerary-generation request.

    The prompt contains, in order:
    - The part (vector geometry if available, else the bare file reference)
    - The controlled vocabularies for machine types and tool names
    - The inventory groupings as JSON blocks
    - The selection protocol and machinist planning guidance
    - The exact output shape

    Args:
        snapshot: Aggregated inventory
        part: The part to plan
        svg_content: 2D vector preview content, if the part has one

    Returns:
        Prompt string for the model
    """
    machine_types_str = "\n".join(f"- {t}" for t in MACHINE_TYPES)
    tool_names_str = "\n".join(f"- {name}" for name in canonical_tool_names())

    prompt = f"""PART: {part.name} (id {part.id})

{_geometry_section(part, svg_content)}

For each step, determine whether we have a suitable machine and tool from our equipment below.

MACHINE TYPE NAMES (use these exact names for required_machine_type):
{machine_types_str}

CANONICAL TOOL NAMES (use these names for required_tool_type where one fits):
{tool_names_str}

MACHINES BY TYPE:
{_dump(_grouping(snapshot.machines_by_type))}

TOOLS BY MACHINE ID (the ONLY list of tools we actually own; each tool belongs to exactly one machine):
{_dump(_grouping(snapshot.tools_by_machine_id))}

TOOLS BY MACHINE TYPE (convenience view of the same tools):
{_dump(_grouping(snapshot.tools_by_machine_type))}

TOOL TYPES BY MACHINE TYPE (reference catalog of parameter fields; NOT inventory):
{_dump(_grouping(snapshot.tool_types_by_machine_type))}

AVAILABLE MATERIALS:
{_dump([m.model_dump(mode="json") for m in snapshot.materials])}

TOOL AND MACHINE SELECTION PROTOCOL:
1. A tool may be assigned to a step only if its id appears in TOOLS BY MACHINE ID under the machine chosen for that step. Never assign a tool because a tool type exists for the machine type.
2. For each operation, check the required tool parameters (diameter, length, material compatibility, thread pitch, etc.) against the candidate tool's actual values and params.
3. Each step has exactly one tooling outcome:
   a. Suitable tool found: set machine_id, machine_name, tooling_id, tool_name; unservable=false; parameter_issue=false.
   b. Tool of the right kind exists on the chosen machine but its parameters are inadequate: set machine and tool fields; parameter_issue=true; fill inadequate_parameter (what is wrong) and required_parameter (what is needed); recommendation says what to buy.
   c. No qualifying tool at all: tooling_id=null, tool_name=null, unservable=true, required_tool_type set, recommendation set. The machine may still be assigned.
4. Machine selection: either choose a concrete machine from MACHINES BY TYPE, or set machine_id=null, machine_name=null, required_machine_type set, unservable=true.
5. Split steps whenever the workpiece must be re-fixtured or re-oriented. Group operations that share a machine and tool to minimize changeovers.

Think like an expert machinist:
- Break operations into separate steps when they need different orientations or fixtures, and state the fixturing for each.
- Exploit multi-axis machines and lathe live tooling to avoid extra setups.
- Combine drilling and tapping on the same machine; group same-tool operations.
- Estimate time in minutes and cost from machine hourly_rate, setup_cost and tool wear.

IMPORTANT: Include ALL necessary steps, even those we cannot perform with our inventory.

Return ONLY valid JSON in exactly this shape. Every key must be present; use null where a value does not apply:
{OUTPUT_CONTRACT}
"""

    logger.debug(
        "compose_prompt: part=%s geometry=%s chars=%d",
        part.id,
        "svg" if svg_content else "file_reference",
        len(prompt),
    )
    return prompt
