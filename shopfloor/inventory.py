"""
Inventory Aggregation Module

Groups flat inventory rows into the views used to compose a generation prompt.

- aggregate_inventory(machines, tools, tool_types, materials) -> InventorySnapshot:
  pure function, no validation, no I/O

Groupings produced:
- machines_by_type: machine type -> machines
- tools_by_machine_id: machine id -> tools mounted on it (every machine gets a key)
- tools_by_machine_type: machine type -> tools on machines of that type
- tool_types_by_machine_type: machine type -> catalog tool types (reference only)
"""

import logging
from collections import defaultdict
from typing import Iterable

from .models import InventorySnapshot, Machine, Material, Tool, ToolType

logger = logging.getLogger(__name__)


def aggregate_inventory(
    machines: Iterable[Machine],
    tools: Iterable[Tool],
    tool_types: Iterable[ToolType] = (),
    materials: Iterable[Material] = (),
) -> InventorySnapshot:
    """
    Build an InventorySnapshot from flat rows.

    Row order is preserved inside every grouping. Tools missing their owning
    machine's name/type are joined against the machine rows. A machine type
    with no machines, or a machine with no tools, is a valid empty state.

    Args:
        machines: Machine rows
        tools: Tool rows (optionally pre-joined with machine name/type)
        tool_types: ToolType catalog rows
        materials: Material rows

    Returns:
        InventorySnapshot with all four groupings populated
    """
    machines = list(machines)
    machines_by_id = {m.id: m for m in machines}

    machines_by_type: dict[str, list[Machine]] = defaultdict(list)
    for machine in machines:
        machines_by_type[machine.type].append(machine)

    # Every machine has an entry, even with no tooling
    tools_by_machine_id: dict[str, list[Tool]] = {m.id: [] for m in machines}
    tools_by_machine_type: dict[str, list[Tool]] = defaultdict(list)
    joined_tools: list[Tool] = []

    for tool in tools:
        owner = machines_by_id.get(tool.machine_id)
        if owner is not None and (tool.machine_name is None or tool.machine_type is None):
            tool = tool.model_copy(
                update={
                    "machine_name": tool.machine_name or owner.name,
                    "machine_type": tool.machine_type or owner.type,
                }
            )
        joined_tools.append(tool)
        tools_by_machine_id.setdefault(tool.machine_id, []).append(tool)

        if tool.machine_type:
            tools_by_machine_type[tool.machine_type].append(tool)
        else:
            logger.debug("tool %s has no resolvable machine type", tool.id)

    tool_types_by_machine_type: dict[str, list[ToolType]] = defaultdict(list)
    for tool_type in tool_types:
        tool_types_by_machine_type[tool_type.machine_type].append(tool_type)

    snapshot = InventorySnapshot(
        machines=machines,
        tools=joined_tools,
        materials=list(materials),
        machines_by_type=dict(machines_by_type),
        tools_by_machine_id=tools_by_machine_id,
        tools_by_machine_type=dict(tools_by_machine_type),
        tool_types_by_machine_type=dict(tool_types_by_machine_type),
    )

    logger.debug(
        "aggregate_inventory: %d machines in %d types, %d tools, %d tool types, %d materials",
        len(snapshot.machines),
        len(snapshot.machines_by_type),
        len(snapshot.tools),
        sum(len(v) for v in snapshot.tool_types_by_machine_type.values()),
        len(snapshot.materials),
    )

    return snapshot
