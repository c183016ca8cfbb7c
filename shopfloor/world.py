"""
Shop World Definition Module

- build_demo_shop() -> InMemoryShop: a small demo shop used when no REST
  backend is configured
- load_shop_file(path) -> InMemoryShop: an in-memory shop read from YAML

Demo shop:
- M1: 3-axis CNC mill with a 6mm endmill, a 50mm face mill and a 6.8mm drill
- M2: CNC lathe with a turning insert and a threading insert
- M3: bench drill press with no tooling
- Aluminium bar and steel block stock
"""

from pathlib import Path
from typing import Any

import yaml

from .catalog import load_tool_type_catalog, tool_type_id
from .models import Machine, Material, Part, StockType, Tool, ToolType
from .store import InMemoryShop


def build_demo_shop() -> InMemoryShop:
    """
    Build the demo shop.

    Returns:
        InMemoryShop seeded with the tool-type catalog, three machines, five
        tools, two materials and one part
    """
    shop = InMemoryShop()
    for tool_type in load_tool_type_catalog():
        shop.add_tool_type(tool_type)

    mill = "CNC Milling Center (3-axis)"
    lathe = "CNC Lathe (Turning Center)"

    shop.add_machine(Machine(
        id="M1", name="Haas VF-2", type=mill, axes=3, spindle_rpm=8100,
        x_range=762, y_range=406, z_range=508,
        hourly_rate=95, setup_cost=60, operating_cost=12,
    ))
    shop.add_machine(Machine(
        id="M2", name="Okuma LB3000", type=lathe, axes=2, spindle_rpm=4200,
        x_range=280, y_range=0, z_range=500,
        hourly_rate=85, setup_cost=45, operating_cost=10,
    ))
    shop.add_machine(Machine(
        id="M3", name="Clausing 20in Drill Press", type="Drill Press (Bench or Floor)",
        axes=1, spindle_rpm=2000, x_range=0, y_range=0, z_range=150,
        hourly_rate=40, setup_cost=15, operating_cost=3,
    ))

    shop.add_tool(Tool(
        id="T1", name="Endmill", machine_id="M1", tool_type_id=tool_type_id(mill, "Endmill"),
        material="Carbide", diameter=6, length=50, life_remaining=80, cost=35, replacement_cost=42,
        params={"diameter": 6, "cutting_length": 18, "flute_count": 3, "material": "Carbide"},
    ))
    shop.add_tool(Tool(
        id="T2", name="Face Mill", machine_id="M1", tool_type_id=tool_type_id(mill, "Face Mill"),
        material="Carbide inserts", diameter=50, length=40, life_remaining=65, cost=120, replacement_cost=180,
        params={"insert_diameter": 12, "cutter_diameter": 50, "number_of_inserts": 5, "material": "Carbide"},
    ))
    shop.add_tool(Tool(
        id="T3", name="Drill Bit", machine_id="M1", tool_type_id=tool_type_id(mill, "Drill Bit"),
        material="HSS-Co", diameter=6.8, length=80, life_remaining=90, cost=14, replacement_cost=14,
        params={"diameter": 6.8, "flute_length": 45, "point_angle": 135, "material": "HSS-Co"},
    ))
    shop.add_tool(Tool(
        id="T4", name="Turning Insert", machine_id="M2", tool_type_id=tool_type_id(lathe, "Turning Insert"),
        material="Coated carbide", diameter=12, length=0, life_remaining=50, cost=9, replacement_cost=9,
        params={"insert_diameter": 12, "corner_radius": 0.8, "material": "Coated carbide"},
    ))
    shop.add_tool(Tool(
        id="T5", name="Threading Insert", machine_id="M2", tool_type_id=tool_type_id(lathe, "Threading Insert"),
        material="Carbide", diameter=9.5, length=0, life_remaining=100, cost=16, replacement_cost=16,
        params={"thread_pitch": 1.5, "insert_diameter": 9.5, "material": "Carbide"},
    ))

    shop.add_material(Material(
        id="MAT1", name="6061-T6 Aluminium", stock_type=StockType.BAR,
        dimensions={"length": 1000, "diameter": 50}, cost=28,
    ))
    shop.add_material(Material(
        id="MAT2", name="1018 Steel", stock_type=StockType.BLOCK,
        dimensions={"length": 200, "width": 100, "height": 50}, cost=45,
    ))

    shop.add_part(Part(id="P1", name="Mounting Bracket", file_url="parts/mounting-bracket.step"))
    return shop


def _rows(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    return list(data.get(key) or [])


def load_shop_file(path: str | Path) -> InMemoryShop:
    """
    Load an in-memory shop from a YAML file.

    Top-level keys: machines, tools, materials, parts and optionally
    tool_types (defaults to the bundled catalog). A part entry may carry an
    inline svg_content string used as its vector preview.

    Raises:
        ValueError / pydantic.ValidationError: on malformed rows.
    """
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")

    shop = InMemoryShop()
    if "tool_types" in data:
        for row in _rows(data, "tool_types"):
            shop.add_tool_type(ToolType.model_validate(row))
    else:
        for tool_type in load_tool_type_catalog():
            shop.add_tool_type(tool_type)

    for row in _rows(data, "machines"):
        shop.add_machine(Machine.model_validate(row))
    for row in _rows(data, "tools"):
        shop.add_tool(Tool.model_validate(row))
    for row in _rows(data, "materials"):
        shop.add_material(Material.model_validate(row))
    for row in _rows(data, "parts"):
        svg_content = row.pop("svg_content", None)
        shop.add_part(Part.model_validate(row), svg_content=svg_content)
    return shop
