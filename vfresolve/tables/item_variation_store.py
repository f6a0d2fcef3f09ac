"""
ItemVariationStore and DeltaSetIndexMap decoders.

The ItemVariationStore is shared by HVAR, VVAR, MVAR and the CFF2 VarStore:
a list of regions in normalized design space plus ItemVariationData subtables
holding one row of deltas per item. Everything is decoded eagerly into frozen
values so a decoded store can be shared between threads.
"""

import struct
from collections.abc import Mapping
from dataclasses import dataclass

from vfresolve.core.errors import InvalidFontError
from vfresolve.tables.regions import region_scalar
from vfresolve.utils.binary import BinaryReader
from vfresolve.utils.logging import logger

LONG_WORDS = 0x8000
WORD_DELTA_COUNT_MASK = 0x7FFF

# DeltaSetIndexMap entryFormat bits
INNER_INDEX_BIT_COUNT_MASK = 0x0F
MAP_ENTRY_SIZE_MASK = 0x30

# Outer/inner pair meaning "no variation data"
NO_VARIATION_INDEX = (0xFFFF, 0xFFFF)


@dataclass(frozen=True)
class VariationRegion:
    """Per-axis (start, peak, end) triples, in fvar axis order."""

    axes: tuple[tuple[float, float, float], ...]


@dataclass(frozen=True)
class ItemVariationData:
    """Region index list plus a delta row per item."""

    region_indexes: tuple[int, ...]
    deltas: tuple[tuple[int, ...], ...]

    @property
    def item_count(self) -> int:
        return len(self.deltas)


@dataclass(frozen=True)
class ItemVariationStore:
    """Decoded ItemVariationStore."""

    axis_count: int
    regions: tuple[VariationRegion, ...]
    data: tuple[ItemVariationData, ...]

    def delta_row(self, outer: int, inner: int) -> tuple[int, ...]:
        """Raw deltas of one item; raises InvalidFontError when out of range."""
        if outer >= len(self.data):
            raise InvalidFontError(
                f"delta set outer index {outer} out of range "
                f"({len(self.data)} ItemVariationData subtables)",
                context={"outer": outer, "inner": inner},
            )
        rows = self.data[outer].deltas
        if inner >= len(rows):
            raise InvalidFontError(
                f"delta set inner index {inner} out of range "
                f"({len(rows)} items in subtable {outer})",
                context={"outer": outer, "inner": inner},
            )
        return rows[inner]

    @classmethod
    def decode(
        cls,
        data: bytes,
        offset: int = 0,
        *,
        axis_count: int | None = None,
        table: str = "ItemVariationStore",
    ) -> "ItemVariationStore":
        """
        Decode a store starting at ``offset`` within ``data``.

        Args:
            data: Buffer containing the store
            offset: Position of the store header
            axis_count: Expected axis count (from fvar), checked when given
            table: Table name used in error messages

        Raises:
            InvalidFontError: On any structural inconsistency
        """
        reader = BinaryReader(data, table=table).seek(offset)
        fmt = reader.uint16("ItemVariationStore format")
        if fmt != 1:
            raise InvalidFontError(
                f"{table}: unsupported ItemVariationStore format {fmt}",
                context={"format": fmt},
            )
        region_list_offset = reader.uint32("variationRegionListOffset")
        data_count = reader.uint16("itemVariationDataCount")
        reader.require(data_count * 4, "itemVariationDataOffsets")
        data_offsets = [reader.uint32("itemVariationDataOffset") for _ in range(data_count)]

        if region_list_offset == 0:
            raise InvalidFontError(f"{table}: missing variation region list")
        regions_reader = reader.at(offset + region_list_offset)
        region_axis_count = regions_reader.uint16("axisCount")
        region_count = regions_reader.uint16("regionCount")
        if (
            axis_count is not None
            and region_count
            and region_axis_count != axis_count
        ):
            raise InvalidFontError(
                f"{table}: region list has {region_axis_count} axes, font has "
                f"{axis_count}",
                context={"region_axes": region_axis_count, "fvar_axes": axis_count},
            )
        regions_reader.require(region_count * region_axis_count * 6, "region list")
        regions = tuple(
            VariationRegion(
                tuple(
                    (
                        regions_reader.f2dot14("startCoord"),
                        regions_reader.f2dot14("peakCoord"),
                        regions_reader.f2dot14("endCoord"),
                    )
                    for _ in range(region_axis_count)
                )
            )
            for _ in range(region_count)
        )

        subtables = tuple(
            _decode_variation_data(reader.at(offset + data_offset), region_count)
            for data_offset in data_offsets
        )
        logger.debug(
            f"{table}: {region_count} regions, {len(subtables)} ItemVariationData"
        )
        return cls(region_axis_count, regions, subtables)


def _decode_variation_data(reader: BinaryReader, region_count: int) -> ItemVariationData:
    item_count = reader.uint16("itemCount")
    word_field = reader.uint16("wordDeltaCount")
    region_index_count = reader.uint16("regionIndexCount")
    long_words = bool(word_field & LONG_WORDS)
    word_count = word_field & WORD_DELTA_COUNT_MASK
    if word_count > region_index_count:
        raise InvalidFontError(
            f"{reader.table}: wordDeltaCount {word_count} exceeds "
            f"regionIndexCount {region_index_count}",
            context={"word_count": word_count, "region_index_count": region_index_count},
        )

    reader.require(region_index_count * 2, "regionIndexes")
    region_indexes = tuple(reader.uint16("regionIndex") for _ in range(region_index_count))
    for index in region_indexes:
        if index >= region_count:
            raise InvalidFontError(
                f"{reader.table}: region index {index} out of range "
                f"({region_count} regions)",
                context={"region_index": index, "region_count": region_count},
            )

    word_code, byte_code = ("i", "h") if long_words else ("h", "b")
    row = struct.Struct(
        f">{word_count}{word_code}{region_index_count - word_count}{byte_code}"
    )
    if row.size == 0:
        return ItemVariationData(region_indexes, ((),) * item_count)
    block = reader.read(row.size * item_count, "delta sets")
    return ItemVariationData(region_indexes, tuple(row.iter_unpack(block)))


@dataclass(frozen=True)
class DeltaSetIndexMap:
    """Maps a glyph or value index to an (outer, inner) delta-set index."""

    entries: tuple[tuple[int, int], ...]

    def lookup(self, index: int) -> tuple[int, int]:
        """Indices past the end of the map reuse the last entry."""
        if not self.entries:
            return NO_VARIATION_INDEX
        if index >= len(self.entries):
            return self.entries[-1]
        return self.entries[index]

    @classmethod
    def decode(
        cls, data: bytes, offset: int, *, table: str = "DeltaSetIndexMap"
    ) -> "DeltaSetIndexMap":
        reader = BinaryReader(data, table=table).seek(offset)
        fmt = reader.uint8("DeltaSetIndexMap format")
        entry_format = reader.uint8("entryFormat")
        if fmt == 0:
            map_count = reader.uint16("mapCount")
        elif fmt == 1:
            map_count = reader.uint32("mapCount")
        else:
            raise InvalidFontError(
                f"{table}: unsupported DeltaSetIndexMap format {fmt}",
                context={"format": fmt},
            )
        entry_size = ((entry_format & MAP_ENTRY_SIZE_MASK) >> 4) + 1
        inner_bits = (entry_format & INNER_INDEX_BIT_COUNT_MASK) + 1
        inner_mask = (1 << inner_bits) - 1
        block = reader.read(map_count * entry_size, "mapData")
        entries = []
        for position in range(0, len(block), entry_size):
            entry = int.from_bytes(block[position : position + entry_size], "big")
            entries.append((entry >> inner_bits, entry & inner_mask))
        return cls(tuple(entries))


def resolve_index(index_map: DeltaSetIndexMap | None, index: int) -> tuple[int, int]:
    """Delta-set index for ``index``; an absent map is the identity (0, index)."""
    if index_map is None:
        return (0, index)
    return index_map.lookup(index)


class RegionEvaluator:
    """
    Evaluates an ItemVariationStore at normalized design-space coordinates.

    Args:
        store: Decoded store
        axis_tags: fvar axis tags in declaration order
    """

    def __init__(self, store: ItemVariationStore, axis_tags: tuple[str, ...]):
        self.store = store
        self.axis_tags = tuple(axis_tags)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        axis_tags: tuple[str, ...],
        offset: int = 0,
        *,
        table: str = "ItemVariationStore",
    ) -> "RegionEvaluator":
        store = ItemVariationStore.decode(
            data, offset, axis_count=len(axis_tags), table=table
        )
        return cls(store, axis_tags)

    def scalar(self, region: VariationRegion, coords: Mapping[str, float]) -> float:
        """Weight of one region at ``coords``."""
        return region_scalar(region.axes, self.axis_tags, coords)

    def region_scalars(self, coords: Mapping[str, float]) -> tuple[float, ...]:
        """Weights of every region, computed once per coordinate set."""
        return tuple(self.scalar(region, coords) for region in self.store.regions)

    def net_delta(
        self,
        outer: int,
        inner: int,
        coords: Mapping[str, float] | None = None,
        *,
        scalars: tuple[float, ...] | None = None,
    ) -> float:
        """
        Weighted sum of an item's deltas.

        Either ``coords`` or precomputed ``scalars`` must be given.
        """
        if (outer, inner) == NO_VARIATION_INDEX:
            return 0.0
        if scalars is None:
            if coords is None:
                raise TypeError("net_delta() needs coords or scalars")
            scalars = self.region_scalars(coords)
        row = self.store.delta_row(outer, inner)
        region_indexes = self.store.data[outer].region_indexes
        total = 0.0
        for region_index, delta in zip(region_indexes, row):
            scalar = scalars[region_index]
            if scalar:
                total += scalar * delta
        return total
