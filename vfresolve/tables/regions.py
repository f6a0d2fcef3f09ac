"""
Region scalar math shared by ItemVariationStore and tuple variation stores.
"""

from collections.abc import Mapping, Sequence


def axis_scalar(start: float, peak: float, end: float, coord: float) -> float:
    """
    Tent-function weight of one axis range at a normalized coordinate.

    Returns 1.0 for axes the range does not constrain: a zero peak, or an
    ill-formed range (start > peak or peak > end). A range crossing zero is
    an ordinary tent.
    """
    if peak == 0.0 or start > peak or peak > end:
        return 1.0
    if coord == peak:
        return 1.0
    if coord <= start or coord >= end:
        return 0.0
    if coord < peak:
        return (coord - start) / (peak - start)
    return (end - coord) / (end - peak)


def region_scalar(
    axes: Sequence[tuple[float, float, float]],
    axis_tags: Sequence[str],
    coords: Mapping[str, float],
) -> float:
    """
    Product of axis scalars over a region.

    Args:
        axes: (start, peak, end) per axis, in fvar order
        axis_tags: fvar axis tags in the same order
        coords: Normalized coordinates; missing axes read as 0

    Returns:
        Scalar in [0, 1]
    """
    scalar = 1.0
    for tag, (start, peak, end) in zip(axis_tags, axes):
        if peak == 0.0:
            continue
        factor = axis_scalar(start, peak, end, coords.get(tag, 0.0))
        if factor == 0.0:
            return 0.0
        scalar *= factor
    return scalar


def tuple_scalar(
    peak: Sequence[float],
    axis_tags: Sequence[str],
    coords: Mapping[str, float],
    start: Sequence[float] | None = None,
    end: Sequence[float] | None = None,
) -> float:
    """
    Scalar of a tuple variation header.

    Without an intermediate region each axis spans from 0 to its peak.
    """
    if start is None or end is None:
        start = [min(value, 0.0) for value in peak]
        end = [max(value, 0.0) for value in peak]
    return region_scalar(list(zip(start, peak, end)), axis_tags, coords)
