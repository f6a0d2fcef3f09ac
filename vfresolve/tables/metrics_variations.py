"""
HVAR, VVAR and MVAR decoders.

All three wrap an ItemVariationStore; HVAR and VVAR add DeltaSetIndexMaps
keyed by glyph id, MVAR adds value records keyed by a 4-byte metric tag.
"""

from dataclasses import dataclass

from vfresolve.core.errors import InvalidFontError
from vfresolve.tables.item_variation_store import (
    DeltaSetIndexMap,
    RegionEvaluator,
)
from vfresolve.utils.binary import BinaryReader


def _check_version(reader: BinaryReader) -> None:
    major = reader.uint16("majorVersion")
    reader.uint16("minorVersion")
    if major != 1:
        raise InvalidFontError(
            f"{reader.table}: unsupported version {major}",
            context={"version": major},
        )


def _optional_map(data: bytes, offset: int, table: str) -> DeltaSetIndexMap | None:
    if offset == 0:
        return None
    return DeltaSetIndexMap.decode(data, offset, table=table)


@dataclass(frozen=True)
class Hvar:
    """Horizontal metrics variations."""

    evaluator: RegionEvaluator
    advance_map: DeltaSetIndexMap | None = None
    lsb_map: DeltaSetIndexMap | None = None
    rsb_map: DeltaSetIndexMap | None = None

    @classmethod
    def decode(cls, data: bytes, axis_tags: tuple[str, ...]) -> "Hvar":
        reader = BinaryReader(data, table="HVAR")
        _check_version(reader)
        store_offset = reader.uint32("itemVariationStoreOffset")
        advance_offset = reader.uint32("advanceWidthMappingOffset")
        lsb_offset = reader.uint32("lsbMappingOffset")
        rsb_offset = reader.uint32("rsbMappingOffset")
        return cls(
            RegionEvaluator.from_bytes(data, axis_tags, store_offset, table="HVAR"),
            _optional_map(data, advance_offset, "HVAR"),
            _optional_map(data, lsb_offset, "HVAR"),
            _optional_map(data, rsb_offset, "HVAR"),
        )


@dataclass(frozen=True)
class Vvar:
    """Vertical metrics variations."""

    evaluator: RegionEvaluator
    advance_map: DeltaSetIndexMap | None = None
    tsb_map: DeltaSetIndexMap | None = None
    bsb_map: DeltaSetIndexMap | None = None
    vorg_map: DeltaSetIndexMap | None = None

    @classmethod
    def decode(cls, data: bytes, axis_tags: tuple[str, ...]) -> "Vvar":
        reader = BinaryReader(data, table="VVAR")
        _check_version(reader)
        store_offset = reader.uint32("itemVariationStoreOffset")
        advance_offset = reader.uint32("advanceHeightMappingOffset")
        tsb_offset = reader.uint32("tsbMappingOffset")
        bsb_offset = reader.uint32("bsbMappingOffset")
        vorg_offset = reader.uint32("vOrgMappingOffset")
        return cls(
            RegionEvaluator.from_bytes(data, axis_tags, store_offset, table="VVAR"),
            _optional_map(data, advance_offset, "VVAR"),
            _optional_map(data, tsb_offset, "VVAR"),
            _optional_map(data, bsb_offset, "VVAR"),
            _optional_map(data, vorg_offset, "VVAR"),
        )


@dataclass(frozen=True)
class ValueRecord:
    """MVAR value record."""

    tag: str
    outer: int
    inner: int


@dataclass(frozen=True)
class Mvar:
    """Font-wide metrics variations."""

    evaluator: RegionEvaluator | None
    records: tuple[ValueRecord, ...]

    @classmethod
    def decode(cls, data: bytes, axis_tags: tuple[str, ...]) -> "Mvar":
        reader = BinaryReader(data, table="MVAR")
        _check_version(reader)
        reader.uint16("reserved")
        record_size = reader.uint16("valueRecordSize")
        record_count = reader.uint16("valueRecordCount")
        store_offset = reader.uint16("itemVariationStoreOffset")
        if record_count and record_size < 8:
            raise InvalidFontError(
                f"MVAR: value record size {record_size} is smaller than 8",
                context={"value_record_size": record_size},
            )
        reader.require(record_count * record_size, "valueRecords")
        records = []
        for _ in range(record_count):
            start = reader.offset
            records.append(
                ValueRecord(
                    reader.tag("valueTag"),
                    reader.uint16("deltaSetOuterIndex"),
                    reader.uint16("deltaSetInnerIndex"),
                )
            )
            reader.seek(start + record_size)
        evaluator = None
        if store_offset:
            evaluator = RegionEvaluator.from_bytes(
                data, axis_tags, store_offset, table="MVAR"
            )
        elif records:
            raise InvalidFontError("MVAR: value records without a variation store")
        return cls(evaluator, tuple(records))
