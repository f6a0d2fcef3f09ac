"""
Tuple variation store decoding for gvar and cvar.

A tuple variation store is a list of headers, each tied to a peak (and
optionally an intermediate range) in normalized design space, followed by
serialized point numbers and deltas. Point numbers and deltas use the
OpenType run-length encodings implemented here in both directions.

Format reference: OpenType "Tuple Variation Store" chapter.
"""

import struct
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from vfresolve.core.errors import GlyphVariationError, InvalidFontError
from vfresolve.tables.regions import tuple_scalar
from vfresolve.utils.binary import BinaryReader
from vfresolve.utils.logging import logger

# tupleVariationCount flags
SHARED_POINT_NUMBERS = 0x8000
COUNT_MASK = 0x0FFF

# TupleVariationHeader.tupleIndex flags
EMBEDDED_PEAK_TUPLE = 0x8000
INTERMEDIATE_REGION = 0x4000
PRIVATE_POINT_NUMBERS = 0x2000
TUPLE_INDEX_MASK = 0x0FFF

# Packed point number control byte
POINTS_ARE_WORDS = 0x80
POINT_RUN_COUNT_MASK = 0x7F

# Packed delta control byte
DELTAS_ARE_ZERO = 0x80
DELTAS_ARE_WORDS = 0x40
DELTAS_ARE_LONGS = 0xC0
DELTA_RUN_COUNT_MASK = 0x3F

# gvar flags
LONG_OFFSETS = 0x0001
GVAR_HEADER_SIZE = 20


# ============================================================================
# Packed point numbers
# ============================================================================


def decode_packed_points(reader: BinaryReader) -> tuple[int, ...] | None:
    """
    Read a packed point number run.

    Returns:
        Ascending point indices, or None for "all points"
    """
    first = reader.uint8("point count")
    if first == 0:
        return None
    if first & POINTS_ARE_WORDS:
        count = ((first & POINT_RUN_COUNT_MASK) << 8) | reader.uint8("point count")
    else:
        count = first

    points: list[int] = []
    last = 0
    while len(points) < count:
        control = reader.uint8("point run control")
        run_length = (control & POINT_RUN_COUNT_MASK) + 1
        if len(points) + run_length > count:
            raise InvalidFontError(
                f"{reader.table}: point run of {run_length} overruns declared "
                f"count {count}",
                context={"count": count, "decoded": len(points)},
            )
        if control & POINTS_ARE_WORDS:
            values = struct.unpack(f">{run_length}H", reader.read(run_length * 2, "point run"))
        else:
            values = reader.read(run_length, "point run")
        for value in values:
            last += value
            points.append(last)
    return tuple(points)


def encode_packed_points(points: Sequence[int] | None) -> bytes:
    """
    Encode ascending point indices; None or an empty sequence means all points.
    """
    if not points:
        return b"\x00"
    count = len(points)
    if count > 0x7FFF:
        raise ValueError(f"too many point numbers: {count}")

    out = bytearray()
    if count < 0x80:
        out.append(count)
    else:
        out.extend((POINTS_ARE_WORDS | (count >> 8), count & 0xFF))

    diffs = []
    last = 0
    for point in points:
        diff = point - last
        if diff < 0 or diff > 0xFFFF:
            raise ValueError(f"point numbers must ascend in steps < 65536: {points}")
        diffs.append(diff)
        last = point

    i = 0
    while i < count:
        words = diffs[i] > 0xFF
        j = i + 1
        while j < count and j - i < 128 and (diffs[j] > 0xFF) == words:
            j += 1
        run = diffs[i:j]
        if words:
            out.append(POINTS_ARE_WORDS | (len(run) - 1))
            out.extend(struct.pack(f">{len(run)}H", *run))
        else:
            out.append(len(run) - 1)
            out.extend(run)
        i = j
    return bytes(out)


def expand_points(points: tuple[int, ...] | None, point_count: int) -> tuple[int, ...]:
    """Resolve the "all points" sentinel to 0..point_count-1."""
    if points is None:
        return tuple(range(point_count))
    return points


# ============================================================================
# Packed deltas
# ============================================================================


def decode_packed_deltas(reader: BinaryReader, count: int) -> tuple[int, ...]:
    """Read exactly ``count`` packed delta values."""
    deltas: list[int] = []
    while len(deltas) < count:
        control = reader.uint8("delta run control")
        run_length = (control & DELTA_RUN_COUNT_MASK) + 1
        if len(deltas) + run_length > count:
            raise InvalidFontError(
                f"{reader.table}: delta run of {run_length} overruns expected "
                f"count {count}",
                context={"count": count, "decoded": len(deltas)},
            )
        mode = control & DELTAS_ARE_LONGS
        if mode == DELTAS_ARE_LONGS:
            deltas.extend(
                struct.unpack(f">{run_length}i", reader.read(run_length * 4, "delta run"))
            )
        elif mode == DELTAS_ARE_ZERO:
            deltas.extend([0] * run_length)
        elif mode == DELTAS_ARE_WORDS:
            deltas.extend(
                struct.unpack(f">{run_length}h", reader.read(run_length * 2, "delta run"))
            )
        else:
            deltas.extend(struct.unpack(f">{run_length}b", reader.read(run_length, "delta run")))
    return tuple(deltas)


def _fits_byte(value: int) -> bool:
    return -128 <= value <= 127


def _fits_word(value: int) -> bool:
    return -32768 <= value <= 32767


def encode_packed_deltas(deltas: Sequence[int]) -> bytes:
    """Encode signed integer deltas with zero, byte, word and long runs."""
    out = bytearray()
    count = len(deltas)
    i = 0
    while i < count:
        value = deltas[i]
        j = i + 1
        if value == 0:
            while j < count and j - i < 64 and deltas[j] == 0:
                j += 1
            out.append(DELTAS_ARE_ZERO | (j - i - 1))
        elif _fits_byte(value):
            while j < count and j - i < 64:
                current = deltas[j]
                if not _fits_byte(current):
                    break
                # two zeros in a row are cheaper as a zero run
                if current == 0 and j + 1 < count and deltas[j + 1] == 0:
                    break
                j += 1
            out.append(j - i - 1)
            out.extend(struct.pack(f">{j - i}b", *deltas[i:j]))
        elif _fits_word(value):
            while j < count and j - i < 64:
                current = deltas[j]
                if current == 0 or not _fits_word(current):
                    break
                # two byte-sized values in a row are cheaper as a byte run
                if _fits_byte(current) and j + 1 < count and _fits_byte(deltas[j + 1]):
                    break
                j += 1
            out.append(DELTAS_ARE_WORDS | (j - i - 1))
            out.extend(struct.pack(f">{j - i}h", *deltas[i:j]))
        else:
            while j < count and j - i < 64 and not _fits_word(deltas[j]):
                j += 1
            out.append(DELTAS_ARE_LONGS | (j - i - 1))
            out.extend(struct.pack(f">{j - i}i", *deltas[i:j]))
        i = j
    return bytes(out)


# ============================================================================
# Tuple variation headers and stores
# ============================================================================


@dataclass(frozen=True)
class TupleVariationHeader:
    """One tuple variation header with its resolved peak tuple."""

    data_size: int
    tuple_index: int
    peak: tuple[float, ...]
    start: tuple[float, ...] | None = None
    end: tuple[float, ...] | None = None

    @property
    def embedded_peak(self) -> bool:
        return bool(self.tuple_index & EMBEDDED_PEAK_TUPLE)

    @property
    def intermediate_region(self) -> bool:
        return bool(self.tuple_index & INTERMEDIATE_REGION)

    @property
    def private_points(self) -> bool:
        return bool(self.tuple_index & PRIVATE_POINT_NUMBERS)

    @property
    def shared_tuple_index(self) -> int:
        return self.tuple_index & TUPLE_INDEX_MASK

    def scalar(self, axis_tags: Sequence[str], coords: Mapping[str, float]) -> float:
        """Weight of this tuple at normalized ``coords``."""
        return tuple_scalar(self.peak, axis_tags, coords, self.start, self.end)


@dataclass(frozen=True)
class TupleVariation:
    """
    Decoded tuple: header, point numbers and one delta run per dimension.

    ``points`` is None when the tuple applies to every point.
    """

    header: TupleVariationHeader
    points: tuple[int, ...] | None
    deltas: tuple[tuple[int, ...], ...]


class TupleVariationDecoder:
    """
    Decodes tuple variation stores against a fixed axis list.

    Args:
        axis_count: Number of fvar axes
        shared_tuples: gvar shared peak tuples (empty for cvar)
        table: Table tag for error messages
    """

    def __init__(
        self,
        axis_count: int,
        shared_tuples: tuple[tuple[float, ...], ...] = (),
        *,
        table: str = "gvar",
    ) -> None:
        self.axis_count = axis_count
        self.shared_tuples = shared_tuples
        self.table = table

    def read_headers(self, reader: BinaryReader) -> tuple[int, tuple[TupleVariationHeader, ...], int]:
        """
        Read tupleVariationCount, dataOffset and the headers.

        Returns:
            (flags, headers, data offset) with flags holding SHARED_POINT_NUMBERS
        """
        count_field = reader.uint16("tupleVariationCount")
        data_offset = reader.uint16("dataOffset")
        headers = tuple(
            self._read_header(reader) for _ in range(count_field & COUNT_MASK)
        )
        return count_field & SHARED_POINT_NUMBERS, headers, data_offset

    def _read_header(self, reader: BinaryReader) -> TupleVariationHeader:
        data_size = reader.uint16("variationDataSize")
        tuple_index = reader.uint16("tupleIndex")
        if tuple_index & EMBEDDED_PEAK_TUPLE:
            peak = self._read_tuple(reader, "peakTuple")
        else:
            index = tuple_index & TUPLE_INDEX_MASK
            if index >= len(self.shared_tuples):
                raise InvalidFontError(
                    f"{self.table}: shared tuple index {index} out of range "
                    f"({len(self.shared_tuples)} shared tuples)",
                    context={"tuple_index": index},
                )
            peak = self.shared_tuples[index]
        start = end = None
        if tuple_index & INTERMEDIATE_REGION:
            start = self._read_tuple(reader, "intermediateStartTuple")
            end = self._read_tuple(reader, "intermediateEndTuple")
        return TupleVariationHeader(data_size, tuple_index, peak, start, end)

    def _read_tuple(self, reader: BinaryReader, what: str) -> tuple[float, ...]:
        reader.require(self.axis_count * 2, what)
        return tuple(reader.f2dot14(what) for _ in range(self.axis_count))

    def decode(
        self,
        data: bytes,
        point_count: int,
        *,
        store_offset: int = 0,
        dimensions: int = 2,
    ) -> tuple[TupleVariation, ...]:
        """
        Decode a complete store.

        Args:
            data: Buffer holding the store; dataOffset is relative to its start
            point_count: Number of points "all points" expands to
            store_offset: Position of tupleVariationCount within ``data``
            dimensions: Delta runs per tuple (2 for gvar x/y, 1 for cvar)

        Raises:
            InvalidFontError: If any header or run overruns its bounds
        """
        reader = BinaryReader(data, table=self.table).seek(store_offset)
        shared_flag, headers, data_offset = self.read_headers(reader)
        body = reader.at(data_offset)
        shared_points = decode_packed_points(body) if shared_flag else None

        variations = []
        for index, header in enumerate(headers):
            if header.data_size > body.remaining:
                raise InvalidFontError(
                    f"{self.table}: tuple {index} declares {header.data_size} bytes "
                    f"of data, only {body.remaining} remain",
                    context={"tuple": index, "data_size": header.data_size},
                )
            chunk = BinaryReader(body.read(header.data_size), table=self.table)
            points = decode_packed_points(chunk) if header.private_points else shared_points
            delta_count = point_count if points is None else len(points)
            deltas = tuple(
                decode_packed_deltas(chunk, delta_count) for _ in range(dimensions)
            )
            variations.append(TupleVariation(header, points, deltas))
        return tuple(variations)


@dataclass(frozen=True)
class Gvar:
    """
    Decoded gvar table.

    The header, shared tuples and offset array are validated eagerly; the
    per-glyph entries are decoded on request by ``glyph_variations`` without
    caching, so one instance can be shared between threads.
    """

    axis_count: int
    shared_tuples: tuple[tuple[float, ...], ...]
    offsets: tuple[int, ...]
    flags: int = 0
    data: bytes = field(default=b"", repr=False)

    @property
    def glyph_count(self) -> int:
        return len(self.offsets) - 1

    @property
    def decoder(self) -> TupleVariationDecoder:
        return TupleVariationDecoder(self.axis_count, self.shared_tuples, table="gvar")

    @classmethod
    def decode(cls, data: bytes, axis_count: int) -> "Gvar":
        """
        Decode the gvar header and offset table.

        Args:
            data: Raw gvar bytes
            axis_count: fvar axis count, which gvar must match

        Raises:
            InvalidFontError: On a broken header, shared tuple array or offset table
        """
        reader = BinaryReader(data, table="gvar")
        major = reader.uint16("majorVersion")
        reader.uint16("minorVersion")
        if major != 1:
            raise InvalidFontError(
                f"gvar: unsupported version {major}", context={"version": major}
            )
        gvar_axis_count = reader.uint16("axisCount")
        if gvar_axis_count != axis_count:
            raise InvalidFontError(
                f"gvar: axis count {gvar_axis_count} does not match fvar axis "
                f"count {axis_count}",
                context={"gvar_axes": gvar_axis_count, "fvar_axes": axis_count},
            )
        shared_tuple_count = reader.uint16("sharedTupleCount")
        shared_tuples_offset = reader.uint32("sharedTuplesOffset")
        glyph_count = reader.uint16("glyphCount")
        flags = reader.uint16("flags")
        array_offset = reader.uint32("glyphVariationDataArrayOffset")

        if flags & LONG_OFFSETS:
            reader.require((glyph_count + 1) * 4, "glyphVariationDataOffsets")
            offsets = tuple(
                array_offset + reader.uint32("offset") for _ in range(glyph_count + 1)
            )
        else:
            reader.require((glyph_count + 1) * 2, "glyphVariationDataOffsets")
            offsets = tuple(
                array_offset + reader.uint16("offset") * 2
                for _ in range(glyph_count + 1)
            )

        shared = reader.at(shared_tuples_offset)
        shared.require(shared_tuple_count * axis_count * 2, "shared tuples")
        shared_tuples = tuple(
            tuple(shared.f2dot14("sharedTuple") for _ in range(axis_count))
            for _ in range(shared_tuple_count)
        )
        logger.debug(
            f"gvar: {glyph_count} glyphs, {shared_tuple_count} shared tuples, "
            f"{'long' if flags & LONG_OFFSETS else 'short'} offsets"
        )
        return cls(axis_count, shared_tuples, offsets, flags, data)

    def glyph_data(self, glyph_id: int) -> bytes:
        """
        Raw GlyphVariationData of one glyph (empty when it has no variations).

        Raises:
            GlyphVariationError: If the glyph's offsets are inconsistent
        """
        if glyph_id >= self.glyph_count:
            return b""
        start = self.offsets[glyph_id]
        end = self.offsets[glyph_id + 1]
        if end < start or end > len(self.data):
            raise GlyphVariationError(
                glyph_id,
                f"gvar: variation data for glyph {glyph_id} spans {start}..{end}, "
                f"outside table of {len(self.data)} bytes",
                context={"start": start, "end": end},
            )
        return self.data[start:end]

    def glyph_variations(self, glyph_id: int, point_count: int) -> tuple[TupleVariation, ...]:
        """
        Decode the tuple variations of one glyph.

        Args:
            glyph_id: Glyph index
            point_count: Glyph point count including the four phantom points

        Raises:
            GlyphVariationError: If the glyph's entry is malformed
        """
        blob = self.glyph_data(glyph_id)
        if not blob:
            return ()
        try:
            return self.decoder.decode(blob, point_count, dimensions=2)
        except GlyphVariationError:
            raise
        except InvalidFontError as e:
            raise GlyphVariationError(glyph_id, str(e), context=e.context) from e


@dataclass(frozen=True)
class Cvar:
    """Decoded cvar table: CVT variations as single-dimension tuples."""

    variations: tuple[TupleVariation, ...]

    @classmethod
    def decode(cls, data: bytes, axis_count: int, cvt_count: int) -> "Cvar":
        """
        Decode all cvar tuples.

        Args:
            data: Raw cvar bytes
            axis_count: fvar axis count
            cvt_count: Number of CVT entries "all points" expands to

        Raises:
            InvalidFontError: On any malformed header or run
        """
        reader = BinaryReader(data, table="cvar")
        major = reader.uint16("majorVersion")
        reader.uint16("minorVersion")
        if major != 1:
            raise InvalidFontError(
                f"cvar: unsupported version {major}", context={"version": major}
            )
        decoder = TupleVariationDecoder(axis_count, table="cvar")
        return cls(decoder.decode(data, cvt_count, store_offset=4, dimensions=1))
