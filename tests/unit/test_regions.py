"""Tests for region scalars, ItemVariationStore and DeltaSetIndexMap decoding."""

import pytest

from vfresolve.core.errors import InvalidFontError
from vfresolve.tables.item_variation_store import (
    NO_VARIATION_INDEX,
    DeltaSetIndexMap,
    ItemVariationStore,
    RegionEvaluator,
    resolve_index,
)
from vfresolve.tables.regions import axis_scalar, region_scalar, tuple_scalar

TAGS = ("wght", "wdth")

# Region 0: wght 0..1, region 1: wdth -1..0
REGIONS = [
    [(0.0, 1.0, 1.0), (0.0, 0.0, 0.0)],
    [(0.0, 0.0, 0.0), (-1.0, -1.0, 0.0)],
]


class TestAxisScalar:
    """axis_scalar()."""

    @pytest.mark.parametrize(
        "start,peak,end,coord,expected",
        [
            (0.0, 1.0, 1.0, 1.0, 1.0),
            (0.0, 1.0, 1.0, 0.25, 0.25),
            (0.0, 1.0, 1.0, 0.0, 0.0),
            (0.0, 1.0, 1.0, -0.5, 0.0),
            (0.0, 0.5, 1.0, 0.75, 0.5),
            (-1.0, -1.0, 0.0, -0.4, 0.4),
            (0.2, 0.6, 1.0, 0.1, 0.0),
        ],
    )
    def test_tent(self, start, peak, end, coord, expected):
        assert axis_scalar(start, peak, end, coord) == pytest.approx(expected)

    def test_zero_peak_does_not_constrain(self):
        assert axis_scalar(0.0, 0.0, 0.0, 0.7) == 1.0

    @pytest.mark.parametrize(
        "start,peak,end",
        [(0.6, 0.4, 1.0), (0.0, 0.8, 0.5)],
    )
    def test_ill_formed_range_is_ignored(self, start, peak, end):
        assert axis_scalar(start, peak, end, 0.1) == 1.0

    @pytest.mark.parametrize(
        "coord,expected",
        [(0.1, 0.6), (0.5, 1.0), (0.75, 0.5), (-0.5, 0.0), (-0.8, 0.0), (1.0, 0.0)],
    )
    def test_range_crossing_zero_is_a_tent(self, coord, expected):
        assert axis_scalar(-0.5, 0.5, 1.0, coord) == pytest.approx(expected)


class TestRegionScalar:
    """region_scalar() and tuple_scalar()."""

    def test_product_over_axes(self):
        axes = [(0.0, 1.0, 1.0), (-1.0, -1.0, 0.0)]
        assert region_scalar(axes, TAGS, {"wght": 0.5, "wdth": -0.5}) == 0.25

    def test_missing_coordinate_reads_as_zero(self):
        assert region_scalar([(0.0, 1.0, 1.0), (0.0, 0.0, 0.0)], TAGS, {}) == 0.0

    def test_any_zero_axis_zeroes_region(self):
        axes = [(0.0, 1.0, 1.0), (-1.0, -1.0, 0.0)]
        assert region_scalar(axes, TAGS, {"wght": 1.0, "wdth": 0.5}) == 0.0

    def test_tuple_without_intermediate_spans_from_zero(self):
        assert tuple_scalar((0.5, 0.0), TAGS, {"wght": 0.25}) == 0.5
        assert tuple_scalar((0.5, 0.0), TAGS, {"wght": -0.2}) == 0.0

    def test_tuple_with_intermediate_region(self):
        scalar = tuple_scalar(
            (0.5, 0.0), TAGS, {"wght": 0.75}, start=(0.25, 0.0), end=(1.0, 0.0)
        )
        assert scalar == 0.5


class TestItemVariationStore:
    """ItemVariationStore.decode()."""

    def test_word_rows(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0, 1), [(100, -50), (10, 20)], None)])
        store = ItemVariationStore.decode(data, axis_count=2)
        assert store.axis_count == 2
        assert store.regions[1].axes == ((0.0, 0.0, 0.0), (-1.0, -1.0, 0.0))
        assert store.data[0].region_indexes == (0, 1)
        assert store.data[0].item_count == 2
        assert store.delta_row(0, 0) == (100, -50)

    def test_mixed_word_and_byte_columns(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0, 1), [(300, -7), (-1000, 127)], 1)])
        store = ItemVariationStore.decode(data)
        assert store.data[0].deltas == ((300, -7), (-1000, 127))

    def test_long_words(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0, 1), [(100000, -3)], None)], long_words=True)
        store = ItemVariationStore.decode(data)
        assert store.delta_row(0, 0) == (100000, -3)

    def test_decodes_at_offset(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0,), [(5,)], None)])
        store = ItemVariationStore.decode(b"\x00" * 6 + data, 6)
        assert store.delta_row(0, 0) == (5,)

    def test_axis_count_mismatch_raises(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0,), [(5,)], None)])
        with pytest.raises(InvalidFontError, match="region list has 2 axes"):
            ItemVariationStore.decode(data, axis_count=3)

    def test_region_index_out_of_range_raises(self, store_bytes):
        data = store_bytes(2, REGIONS, [((5,), [(5,)], None)])
        with pytest.raises(InvalidFontError, match="region index 5 out of range"):
            ItemVariationStore.decode(data)

    def test_truncated_rows_raise(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0, 1), [(100, -50), (10, 20)], None)])
        with pytest.raises(InvalidFontError, match="delta sets"):
            ItemVariationStore.decode(data[:-1])

    def test_unsupported_format_raises(self, store_bytes):
        data = bytearray(store_bytes(2, REGIONS, []))
        data[1] = 2
        with pytest.raises(InvalidFontError, match="format 2"):
            ItemVariationStore.decode(bytes(data))

    def test_out_of_range_item_raises(self, store_bytes):
        store = ItemVariationStore.decode(store_bytes(2, REGIONS, [((0,), [(5,)], None)]))
        with pytest.raises(InvalidFontError, match="outer index 1"):
            store.delta_row(1, 0)
        with pytest.raises(InvalidFontError, match="inner index 3"):
            store.delta_row(0, 3)


class TestRegionEvaluator:
    """RegionEvaluator.net_delta()."""

    @pytest.fixture
    def evaluator(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0, 1), [(100, -50), (10, 20)], None)])
        return RegionEvaluator.from_bytes(data, TAGS)

    def test_region_scalars(self, evaluator):
        assert evaluator.region_scalars({"wght": 0.5, "wdth": -0.25}) == (0.5, 0.25)

    @pytest.mark.parametrize(
        "inner,coords,expected",
        [
            (0, {"wght": 0.0, "wdth": 0.0}, 0.0),
            (0, {"wght": 1.0, "wdth": 0.0}, 100.0),
            (0, {"wght": 0.5, "wdth": -0.5}, 25.0),
            (1, {"wght": 0.5, "wdth": -0.5}, 15.0),
        ],
    )
    def test_net_delta(self, evaluator, inner, coords, expected):
        assert evaluator.net_delta(0, inner, coords) == pytest.approx(expected)

    def test_precomputed_scalars(self, evaluator):
        scalars = evaluator.region_scalars({"wght": 1.0, "wdth": -1.0})
        assert evaluator.net_delta(0, 1, scalars=scalars) == 30.0

    def test_no_variation_index_is_zero(self, evaluator):
        assert evaluator.net_delta(*NO_VARIATION_INDEX, {"wght": 1.0}) == 0.0

    def test_requires_coords_or_scalars(self, evaluator):
        with pytest.raises(TypeError):
            evaluator.net_delta(0, 0)

    @pytest.mark.parametrize(
        "coords,expected",
        [({"wght": -0.8}, 0.0), ({"wght": 0.1}, 0.6), ({"wght": 0.5}, 1.0)],
    )
    def test_region_crossing_zero(self, store_bytes, coords, expected):
        data = store_bytes(2, [[(-0.5, 0.5, 1.0), (0.0, 0.0, 0.0)]], [((0,), [(10,)], None)])
        evaluator = RegionEvaluator.from_bytes(data, TAGS)
        region = evaluator.store.regions[0]
        assert evaluator.scalar(region, coords) == pytest.approx(expected)
        assert evaluator.net_delta(0, 0, coords) == pytest.approx(10 * expected)

    def test_axis_mismatch_raises(self, store_bytes):
        data = store_bytes(2, REGIONS, [((0,), [(5,)], None)])
        with pytest.raises(InvalidFontError):
            RegionEvaluator.from_bytes(data, ("wght", "wdth", "opsz"))


class TestDeltaSetIndexMap:
    """DeltaSetIndexMap decoding and lookup."""

    def test_format_0(self, index_map_bytes):
        data = index_map_bytes([(0, 0), (0, 3), (1, 2)])
        index_map = DeltaSetIndexMap.decode(data, 0)
        assert index_map.entries == ((0, 0), (0, 3), (1, 2))

    def test_format_1_with_narrow_inner_bits(self, index_map_bytes):
        data = index_map_bytes([(2, 1), (3, 0)], fmt=1, entry_size=1, inner_bits=2)
        assert DeltaSetIndexMap.decode(data, 0).entries == ((2, 1), (3, 0))

    def test_wide_entries(self, index_map_bytes):
        data = index_map_bytes([(4, 60000)], entry_size=4, inner_bits=16)
        assert DeltaSetIndexMap.decode(data, 0).lookup(0) == (4, 60000)

    def test_past_end_reuses_last_entry(self, index_map_bytes):
        index_map = DeltaSetIndexMap.decode(index_map_bytes([(0, 0), (0, 7)]), 0)
        assert index_map.lookup(1) == (0, 7)
        assert index_map.lookup(500) == (0, 7)

    def test_empty_map_has_no_variation(self):
        assert DeltaSetIndexMap(()).lookup(3) == NO_VARIATION_INDEX

    def test_unsupported_format_raises(self, index_map_bytes):
        data = bytearray(index_map_bytes([(0, 0)]))
        data[0] = 2
        with pytest.raises(InvalidFontError, match="format 2"):
            DeltaSetIndexMap.decode(bytes(data), 0)

    def test_truncated_raises(self, index_map_bytes):
        with pytest.raises(InvalidFontError):
            DeltaSetIndexMap.decode(index_map_bytes([(0, 0), (0, 1)])[:-1], 0)

    def test_absent_map_is_identity(self):
        assert resolve_index(None, 42) == (0, 42)
