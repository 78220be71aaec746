"""Tests for property type classification and value conversion."""

from src.swsync.sync.domain.entities import PropertyKind
from src.swsync.sync.domain.property_types import (
    build_property_definitions,
    classify,
    coerce_value,
    data_type_for,
    unit_for,
)
from src.swsync.sync.domain.values import (
    BooleanValue,
    EncodedStructuredValue,
    NumericValue,
    StringValue,
)


class TestClassify:
    """Test type tag classification."""

    def test_string(self):
        assert classify("CHARSTRING") == PropertyKind.STRING

    def test_location(self):
        assert classify("LOCATION") == PropertyKind.LOCATION

    def test_boolean(self):
        assert classify("HOME_SWITCH") == PropertyKind.BOOLEAN
        assert classify("bool") == PropertyKind.BOOLEAN

    def test_structured(self):
        assert classify("COLOR_HSB") == PropertyKind.STRUCTURED
        assert classify("SCHEDULE") == PropertyKind.STRUCTURED

    def test_unknown_defaults_to_numeric(self):
        assert classify("TEMPERATURE_C") == PropertyKind.NUMERIC
        assert classify("") == PropertyKind.NUMERIC

    def test_data_types(self):
        assert data_type_for("FLOAT") == "DOUBLE"
        assert data_type_for("BOOL") == "DOUBLE"
        assert data_type_for("CHARSTRING") == "STRING"
        assert data_type_for("LOCATION") == "STRING"


class TestDefinitions:
    """Test model property definitions."""

    def test_first_unit_is_used(self):
        units = {"TEMPERATURE_C": ["Cel", "K"]}
        assert unit_for("TEMPERATURE_C", units) == "Cel"
        assert unit_for("FLOAT", units) is None

    def test_definitions_sorted_and_filtered(self):
        definitions = build_property_definitions(
            {"temperature": "TEMPERATURE_C", "label": "CHARSTRING", "": "FLOAT", "x": ""},
            {"TEMPERATURE_C": ["Cel"]},
        )
        assert [d.name for d in definitions] == ["label", "temperature"]
        assert definitions[0].data_type == "STRING"
        assert definitions[0].unit is None
        assert definitions[1].data_type == "DOUBLE"
        assert definitions[1].unit == "Cel"


class TestCoerceValue:
    """Test sample conversion per kind."""

    def test_none(self):
        assert coerce_value(None, PropertyKind.NUMERIC) is None

    def test_numeric_int_becomes_double(self):
        assert coerce_value(21, PropertyKind.NUMERIC) == NumericValue(21.0)

    def test_numeric_rejects_string(self):
        assert coerce_value("hot", PropertyKind.NUMERIC) is None

    def test_numeric_bool(self):
        assert coerce_value(True, PropertyKind.NUMERIC) == BooleanValue(True)

    def test_boolean_from_number(self):
        assert coerce_value(0, PropertyKind.BOOLEAN) == BooleanValue(False)
        assert coerce_value(1.0, PropertyKind.BOOLEAN) == BooleanValue(True)

    def test_string(self):
        assert coerce_value("on", PropertyKind.STRING) == StringValue("on")
        assert coerce_value(3, PropertyKind.STRING) == StringValue("3")

    def test_location_map_is_encoded(self):
        value = coerce_value({"lon": 2.0, "lat": 1.0}, PropertyKind.LOCATION)
        assert value == EncodedStructuredValue('{"lat":1.0,"lon":2.0}')

    def test_structured_rejects_number(self):
        assert coerce_value(5, PropertyKind.STRUCTURED) is None

    def test_numeric_large_int_becomes_double(self):
        assert coerce_value(2 ** 40, PropertyKind.NUMERIC) == NumericValue(float(2 ** 40))


class TestBooleanValue:
    """Test booleans written as doubles."""

    def test_as_double(self):
        assert BooleanValue(True).as_double == 1.0
        assert BooleanValue(False).as_double == 0.0
