"""Tests for strategy construction and dispatch."""

from io import BytesIO

import pytest
from fontTools.ttLib.sfnt import SFNTReader

from vfresolve.core.errors import ArgumentError, InvalidCoordinatesError
from vfresolve.core.font_io import VariableFont
from vfresolve.pipeline.resolver import (
    InstanceStrategy,
    NamedStrategy,
    PreserveStrategy,
    VariationResolver,
    build_strategy,
    named_coordinates,
    resolve,
)


def raw_tables(data: bytes) -> dict[str, bytes]:
    reader = SFNTReader(BytesIO(data))
    return {tag: reader[tag] for tag in reader.keys()}


class TestBuildStrategy:
    """build_strategy()."""

    def test_preserve(self):
        assert build_strategy("preserve") == PreserveStrategy()

    def test_instance_copies_coordinates(self):
        coordinates = {"wght": 700}
        strategy = build_strategy("instance", coordinates=coordinates)
        coordinates["wght"] = 100
        assert strategy == InstanceStrategy({"wght": 700})

    def test_instance_without_coordinates(self):
        assert build_strategy("instance") == InstanceStrategy({})

    def test_named(self):
        assert build_strategy("named", instance_index=1) == NamedStrategy(1)

    def test_named_requires_index(self):
        with pytest.raises(ArgumentError, match="requires instance_index"):
            build_strategy("named")

    @pytest.mark.parametrize("index", ["1", 1.0, True])
    def test_named_index_must_be_integer(self, index):
        with pytest.raises(ArgumentError, match="must be an integer"):
            build_strategy("named", instance_index=index)

    def test_named_index_must_not_be_negative(self):
        with pytest.raises(ArgumentError, match="must not be negative") as excinfo:
            build_strategy("named", instance_index=-1)
        assert excinfo.value.context == {"instance_index": -1}

    def test_unknown_name(self):
        with pytest.raises(ArgumentError, match="Unknown strategy: 'merge'"):
            build_strategy("merge")


class TestNamedCoordinates:
    """named_coordinates()."""

    def test_instance_location(self, two_axis_font):
        assert named_coordinates(two_axis_font, 1) == {"wght": 900.0, "wdth": 75.0}

    def test_out_of_range(self, two_axis_font):
        with pytest.raises(ArgumentError, match="index 2 out of range") as excinfo:
            named_coordinates(two_axis_font, 2)
        assert excinfo.value.context["count"] == 2

    def test_static_font(self, static_font_bytes):
        with pytest.raises(InvalidCoordinatesError):
            named_coordinates(VariableFont.from_bytes(static_font_bytes), 0)


class TestPreserve:
    """The preserve strategy returns the input tables unchanged."""

    def test_static_font_tables_are_identical(self, static_font_bytes):
        font = VariableFont.from_bytes(static_font_bytes)
        assert resolve(font, "preserve") == raw_tables(static_font_bytes)

    def test_variable_font_tables_are_identical(self, two_axis_font_bytes):
        font = VariableFont.from_bytes(two_axis_font_bytes)
        tables = VariationResolver().resolve(font, PreserveStrategy())
        assert tables == raw_tables(two_axis_font_bytes)
        assert "gvar" in tables


class TestResolve:
    """resolve() dispatch."""

    def test_unsupported_strategy_object(self, two_axis_font):
        with pytest.raises(ArgumentError, match="Unsupported strategy"):
            VariationResolver().resolve(two_axis_font, object())

    def test_named_out_of_range(self, two_axis_font):
        with pytest.raises(ArgumentError):
            resolve(two_axis_font, NamedStrategy(9))

    def test_instance_on_static_font(self, static_font_bytes):
        font = VariableFont.from_bytes(static_font_bytes)
        with pytest.raises(InvalidCoordinatesError, match="not a variable font"):
            resolve(font, "instance", coordinates={"wght": 700})
