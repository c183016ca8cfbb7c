"""
Tests for the controlled vocabularies, the tool-type catalog, tool parameter
validation and material dimension validation.
"""

import pytest
from pydantic import ValidationError

from shopfloor.catalog import (
    MACHINE_TYPES,
    canonical_tool_names,
    load_tool_type_catalog,
    tool_type_id,
    validate_tool_params,
)
from shopfloor.models import Material, ParamField, StockType, ToolType


@pytest.fixture
def endmill_type():
    return ToolType(
        id="tt-endmill",
        name="Endmill",
        machine_type="CNC Milling Center (3-axis)",
        param_schema=[
            ParamField(key="diameter", label="Diameter (mm)", kind="number"),
            ParamField(key="material", label="Material", kind="text"),
        ],
    )


class TestCatalog:
    """The bundled tool-type catalog."""

    def test_machine_type_vocabulary(self):
        assert len(MACHINE_TYPES) == 40
        assert len(set(MACHINE_TYPES)) == 40
        assert "CNC Milling Center (3-axis)" in MACHINE_TYPES

    def test_catalog_loads(self):
        catalog = load_tool_type_catalog()
        assert len(catalog) > 20
        assert all(t.machine_type in MACHINE_TYPES for t in catalog)
        assert len({t.id for t in catalog}) == len(catalog)

    def test_catalog_schema_fields(self):
        catalog = load_tool_type_catalog()
        endmill = next(t for t in catalog if t.id == tool_type_id("CNC Milling Center (3-axis)", "Endmill"))
        assert [f.key for f in endmill.param_schema] == ["diameter", "cutting_length", "flute_count", "material"]
        assert endmill.param_schema[-1].kind == "text"

    def test_canonical_tool_names_are_distinct(self):
        names = canonical_tool_names()
        assert names.count("Endmill") == 1
        assert "Brass Wire" in names

    def test_tool_type_id(self):
        assert tool_type_id("CNC Lathe (Turning Center)", "Boring Bar") == "tt-cnc-lathe-turning-center-boring-bar"

    def test_stored_param_schema_wrapper(self):
        """Rows stored as {"fields": [...]} with a "type" key are accepted."""
        tool_type = ToolType.model_validate({
            "id": "x",
            "name": "V-Bit",
            "machine_type": "CNC Router",
            "param_schema": {"fields": [{"key": "tip_angle", "label": "Tip Angle", "type": "number"}]},
        })
        assert tool_type.param_schema[0].kind == "number"


class TestValidateToolParams:
    """Params must match the owning tool type's schema."""

    def test_valid_params(self, endmill_type):
        assert validate_tool_params({"diameter": 6, "material": "Carbide"}, endmill_type) == {
            "diameter": 6.0,
            "material": "Carbide",
        }

    def test_numeric_string_is_coerced(self, endmill_type):
        assert validate_tool_params({"diameter": "8"}, endmill_type) == {"diameter": 8.0}

    def test_unknown_key_rejected(self, endmill_type):
        with pytest.raises(ValueError, match="not declared"):
            validate_tool_params({"thread_pitch": 1.5}, endmill_type)

    def test_text_for_number_rejected(self, endmill_type):
        with pytest.raises(ValueError, match="must be a number"):
            validate_tool_params({"diameter": "wide"}, endmill_type)

    def test_number_for_text_rejected(self, endmill_type):
        with pytest.raises(ValueError, match="must be text"):
            validate_tool_params({"material": 5.0}, endmill_type)


class TestMaterialDimensions:
    """Populated dimension keys depend on stock shape."""

    def test_bar(self):
        material = Material(id="m", name="Al bar", stock_type=StockType.BAR, dimensions={"length": 100, "diameter": 20})
        assert material.dimensions == {"length": 100.0, "diameter": 20.0}

    def test_sheet_missing_thickness(self):
        with pytest.raises(ValidationError, match="thickness"):
            Material(id="m", name="Sheet", stock_type="sheet", dimensions={"length": 1, "width": 1})

    def test_block_with_foreign_key(self):
        with pytest.raises(ValidationError, match="diameter"):
            Material(
                id="m", name="Block", stock_type="block",
                dimensions={"length": 1, "width": 1, "height": 1, "diameter": 3},
            )
