"""
Tests for aggregate_inventory.

Verifies:
- Machines are grouped by type in row order
- Tools are grouped by owning machine id; tool-less machines get empty lists
- Tools are joined with their machine's name and type
- Tool types are grouped by machine type as reference data only
"""

from shopfloor.inventory import aggregate_inventory
from shopfloor.models import Machine, Material, StockType, Tool, ToolType

MILL = "CNC Milling Center (3-axis)"
LATHE = "CNC Lathe (Turning Center)"


def _machines():
    return [
        Machine(id="M1", name="Mill A", type=MILL),
        Machine(id="M2", name="Lathe", type=LATHE),
        Machine(id="M3", name="Mill B", type=MILL),
    ]


def _tools():
    return [
        Tool(id="T1", name="Endmill", machine_id="M1", diameter=6),
        Tool(id="T2", name="Turning Insert", machine_id="M2"),
        Tool(id="T3", name="Drill Bit", machine_id="M1", diameter=8),
    ]


class TestAggregateInventory:
    """Tests for the four inventory groupings."""

    def test_machines_by_type(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        assert [m.id for m in snapshot.machines_by_type[MILL]] == ["M1", "M3"]
        assert [m.id for m in snapshot.machines_by_type[LATHE]] == ["M2"]

    def test_tools_by_machine_id(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        assert [t.id for t in snapshot.tools_by_machine_id["M1"]] == ["T1", "T3"]
        assert [t.id for t in snapshot.tools_by_machine_id["M2"]] == ["T2"]

    def test_machine_without_tools_has_empty_list(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        assert snapshot.tools_by_machine_id["M3"] == []

    def test_tools_joined_with_machine(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        t1 = snapshot.tools_by_machine_id["M1"][0]
        assert t1.machine_name == "Mill A"
        assert t1.machine_type == MILL

    def test_prejoined_values_are_kept(self):
        tool = Tool(id="T9", name="Endmill", machine_id="M1", machine_name="Big Mill", machine_type=MILL)
        snapshot = aggregate_inventory(_machines(), [tool])
        assert snapshot.tools[0].machine_name == "Big Mill"

    def test_tools_by_machine_type(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        assert [t.id for t in snapshot.tools_by_machine_type[MILL]] == ["T1", "T3"]
        assert [t.id for t in snapshot.tools_by_machine_type[LATHE]] == ["T2"]

    def test_tool_types_are_reference_only(self):
        """A tool type for a machine type adds no tools to any machine."""
        tool_types = [ToolType(id="tt-1", name="Face Mill", machine_type=MILL)]
        snapshot = aggregate_inventory(_machines(), [], tool_types)
        assert [t.name for t in snapshot.tool_types_by_machine_type[MILL]] == ["Face Mill"]
        assert snapshot.tools_by_machine_id == {"M1": [], "M2": [], "M3": []}
        assert snapshot.tools_by_machine_type == {}

    def test_tool_on_unknown_machine_is_kept_by_id(self):
        orphan = Tool(id="T5", name="Reamer", machine_id="M42")
        snapshot = aggregate_inventory(_machines(), [orphan])
        assert [t.id for t in snapshot.tools_by_machine_id["M42"]] == ["T5"]
        assert snapshot.tools_by_machine_type == {}

    def test_empty_inventory(self):
        snapshot = aggregate_inventory([], [])
        assert snapshot.machines_by_type == {}
        assert snapshot.tools_by_machine_id == {}

    def test_materials_pass_through(self):
        material = Material(
            id="MAT1", name="Al", stock_type=StockType.SHEET,
            dimensions={"length": 1, "width": 2, "thickness": 3},
        )
        snapshot = aggregate_inventory(_machines(), [], materials=[material])
        assert snapshot.materials == [material]

    def test_find_tool_on_machine(self):
        snapshot = aggregate_inventory(_machines(), _tools())
        assert snapshot.find_tool_on_machine("M1", "T3").name == "Drill Bit"
        assert snapshot.find_tool_on_machine("M2", "T3") is None
        assert snapshot.find_tool_on_machine(None, "T3") is None
