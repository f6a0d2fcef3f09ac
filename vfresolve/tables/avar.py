"""
avar (axis variations) table decoder.

avar remaps normalized coordinates per axis through a piecewise-linear
segment map. An empty map is the identity.
"""

from dataclasses import dataclass

from vfresolve.core.errors import InvalidFontError
from vfresolve.utils.binary import BinaryReader


@dataclass(frozen=True)
class SegmentMap:
    """Ordered (from, to) pairs for one axis."""

    pairs: tuple[tuple[float, float], ...]

    def map(self, value: float) -> float:
        pairs = self.pairs
        if not pairs:
            return value
        if value <= pairs[0][0]:
            return value + pairs[0][1] - pairs[0][0]
        for (from_lo, to_lo), (from_hi, to_hi) in zip(pairs, pairs[1:]):
            if value == from_hi:
                return to_hi
            if from_lo <= value < from_hi:
                if from_hi == from_lo:
                    return to_lo
                ratio = (value - from_lo) / (from_hi - from_lo)
                return to_lo + ratio * (to_hi - to_lo)
        return value + pairs[-1][1] - pairs[-1][0]


@dataclass(frozen=True)
class Avar:
    """Decoded avar table with one segment map per fvar axis."""

    segment_maps: tuple[SegmentMap, ...]

    def map_coordinates(
        self, axis_tags: tuple[str, ...], coords: dict[str, float]
    ) -> dict[str, float]:
        """
        Apply each axis segment map to normalized coordinates.

        Args:
            axis_tags: fvar axis tags in declaration order
            coords: Normalized coordinates by axis tag

        Returns:
            New mapping in fvar axis order
        """
        mapped = {}
        for tag, segment_map in zip(axis_tags, self.segment_maps):
            mapped[tag] = segment_map.map(coords.get(tag, 0.0))
        for tag in axis_tags[len(self.segment_maps) :]:
            mapped[tag] = coords.get(tag, 0.0)
        return mapped

    @classmethod
    def decode(cls, data: bytes, axis_count: int) -> "Avar":
        reader = BinaryReader(data, table="avar")
        major = reader.uint16("majorVersion")
        reader.uint16("minorVersion")
        if major not in (1, 2):
            raise InvalidFontError(
                f"avar: unsupported version {major}", context={"version": major}
            )
        reader.uint16("reserved")
        count = reader.uint16("axisCount")
        if count != axis_count:
            raise InvalidFontError(
                f"avar: axis count {count} does not match fvar axis count "
                f"{axis_count}",
                context={"avar_axes": count, "fvar_axes": axis_count},
            )

        maps = []
        for _ in range(count):
            pair_count = reader.uint16("positionMapCount")
            reader.require(pair_count * 4, "axis value maps")
            pairs = tuple(
                (reader.f2dot14("fromCoordinate"), reader.f2dot14("toCoordinate"))
                for _ in range(pair_count)
            )
            maps.append(SegmentMap(pairs))
        return cls(tuple(maps))
