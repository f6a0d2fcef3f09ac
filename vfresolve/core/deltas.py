"""
Delta application for gvar outlines and cvar CVT values.

For each tuple whose scalar is non-zero at the target location, the decoded
deltas are weighted by that scalar and accumulated as floats. Tuples listing
explicit points have their untouched outline points inferred (IUP) before
weighting. The summed deltas are rounded half away from zero and added to the
original coordinates.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from vfresolve.tables.tuple_variations import TupleVariation
from vfresolve.utils.binary import round_half_away
from vfresolve.utils.logging import logger

PHANTOM_POINT_COUNT = 4

Point = tuple[float, float]


@dataclass(frozen=True)
class GlyphPoints:
    """
    Points gvar deltas apply to.

    ``coordinates`` holds the outline points (or one point per component
    offset for composites) followed by the four phantom points.
    """

    coordinates: tuple[Point, ...]
    end_points: tuple[int, ...] = ()
    composite: bool = False

    @property
    def phantom_points(self) -> tuple[Point, ...]:
        return self.coordinates[-PHANTOM_POINT_COUNT:]


def _infer_delta(
    coord: float, coord1: float, delta1: float, coord2: float, delta2: float
) -> float:
    if coord1 > coord2:
        coord1, delta1, coord2, delta2 = coord2, delta2, coord1, delta1
    if coord1 == coord2:
        return delta1 if delta1 == delta2 else 0.0
    if coord <= coord1:
        return delta1
    if coord >= coord2:
        return delta2
    return delta1 + (coord - coord1) * (delta2 - delta1) / (coord2 - coord1)


def iup_contour(
    deltas: Sequence[Point | None], coords: Sequence[Point]
) -> list[Point]:
    """
    Infer deltas for the untouched points of one closed contour.

    Args:
        deltas: Explicit delta per point, None where untouched
        coords: Original point coordinates

    Returns:
        Delta for every point of the contour
    """
    count = len(deltas)
    touched = [index for index, delta in enumerate(deltas) if delta is not None]
    if not touched:
        return [(0.0, 0.0)] * count
    if len(touched) == count:
        return list(deltas)
    if len(touched) == 1:
        return [deltas[touched[0]]] * count

    result = list(deltas)
    for position, start in enumerate(touched):
        end = touched[(position + 1) % len(touched)]
        index = (start + 1) % count
        while index != end:
            result[index] = tuple(
                _infer_delta(
                    coords[index][axis],
                    coords[start][axis],
                    deltas[start][axis],
                    coords[end][axis],
                    deltas[end][axis],
                )
                for axis in (0, 1)
            )
            index = (index + 1) % count
    return result


def iup_glyph(
    deltas: Sequence[Point | None],
    coords: Sequence[Point],
    end_points: Sequence[int],
) -> list[Point]:
    """Apply IUP contour by contour; points outside every contour get zero."""
    result: list[Point] = []
    start = 0
    for end in end_points:
        result.extend(iup_contour(deltas[start : end + 1], coords[start : end + 1]))
        start = end + 1
    result.extend(
        (0.0, 0.0) if delta is None else delta for delta in deltas[start:]
    )
    return result


class DeltaApplier:
    """
    Weights and sums tuple variation deltas at a normalized location.

    Args:
        axis_tags: fvar axis tags in declaration order
        coords: Normalized coordinates
    """

    def __init__(self, axis_tags: tuple[str, ...], coords: Mapping[str, float]):
        self.axis_tags = tuple(axis_tags)
        self.coords = dict(coords)

    def glyph_deltas(
        self, variations: Sequence[TupleVariation], points: GlyphPoints
    ) -> list[Point]:
        """
        Summed, unrounded deltas for every point of a glyph.

        Args:
            variations: Decoded tuples for the glyph
            points: Base points including phantom points
        """
        total = len(points.coordinates)
        sums = [[0.0, 0.0] for _ in range(total)]
        for variation in variations:
            scalar = variation.header.scalar(self.axis_tags, self.coords)
            if scalar == 0.0:
                continue
            x_deltas, y_deltas = variation.deltas
            if variation.points is None:
                per_point = list(zip(x_deltas, y_deltas))
            else:
                per_point = self._expand_explicit(variation, x_deltas, y_deltas, points)
            for accumulator, (dx, dy) in zip(sums, per_point):
                accumulator[0] += dx * scalar
                accumulator[1] += dy * scalar
        return [(dx, dy) for dx, dy in sums]

    def _expand_explicit(
        self,
        variation: TupleVariation,
        x_deltas: Sequence[int],
        y_deltas: Sequence[int],
        points: GlyphPoints,
    ) -> list[Point]:
        total = len(points.coordinates)
        sparse: list[Point | None] = [None] * total
        for point, dx, dy in zip(variation.points, x_deltas, y_deltas):
            if point >= total:
                logger.debug(f"Ignoring delta for point {point} of {total}")
                continue
            sparse[point] = (dx, dy)
        if points.composite:
            return [(0.0, 0.0) if delta is None else delta for delta in sparse]
        return iup_glyph(sparse, points.coordinates, points.end_points)

    def apply(
        self, variations: Sequence[TupleVariation], points: GlyphPoints
    ) -> tuple[tuple[int, int], ...]:
        """New integer coordinates for every point, phantom points included."""
        deltas = self.glyph_deltas(variations, points)
        return tuple(
            (x + round_half_away(dx), y + round_half_away(dy))
            for (x, y), (dx, dy) in zip(points.coordinates, deltas)
        )

    def cvt_deltas(
        self, variations: Sequence[TupleVariation], cvt_count: int
    ) -> list[float]:
        """Summed, unrounded deltas per CVT entry; no inference is applied."""
        sums = [0.0] * cvt_count
        for variation in variations:
            scalar = variation.header.scalar(self.axis_tags, self.coords)
            if scalar == 0.0:
                continue
            (values,) = variation.deltas
            indices = range(cvt_count) if variation.points is None else variation.points
            for index, delta in zip(indices, values):
                if index < cvt_count:
                    sums[index] += delta * scalar
        return sums

    def apply_cvt(
        self, variations: Sequence[TupleVariation], cvt_values: Sequence[int]
    ) -> list[int]:
        """New CVT values."""
        deltas = self.cvt_deltas(variations, len(cvt_values))
        return [value + round_half_away(delta) for value, delta in zip(cvt_values, deltas)]
