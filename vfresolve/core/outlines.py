"""
TrueType outline helpers: point extraction, phantom points and bounds.
"""

from fontTools.ttLib.tables._g_l_y_f import GlyphCoordinates

from vfresolve.core.deltas import PHANTOM_POINT_COUNT, GlyphPoints, Point


def phantom_points(
    glyph, h_metric: tuple[int, int], v_metric: tuple[int, int] | None
) -> tuple[Point, Point, Point, Point]:
    """
    The four phantom points of a glyph: left, right, top, bottom.

    Args:
        glyph: fontTools glyf Glyph with bounds
        h_metric: (advance width, lsb) from hmtx
        v_metric: (advance height, tsb) from vmtx, if the font has one
    """
    advance, lsb = h_metric
    left = getattr(glyph, "xMin", 0) - lsb
    right = left + advance
    if v_metric is None:
        top = bottom = 0
    else:
        advance_height, tsb = v_metric
        top = tsb + getattr(glyph, "yMax", 0)
        bottom = top - advance_height
    return ((left, 0), (right, 0), (0, top), (0, bottom))


def glyph_points(
    glyph, h_metric: tuple[int, int], v_metric: tuple[int, int] | None = None
) -> GlyphPoints:
    """
    Points gvar deltas apply to, phantom points appended.

    Simple glyphs contribute their outline points; composites contribute one
    point per component offset.
    """
    phantoms = phantom_points(glyph, h_metric, v_metric)
    if glyph.isComposite():
        offsets = tuple(
            (getattr(component, "x", 0), getattr(component, "y", 0))
            for component in glyph.components
        )
        return GlyphPoints(offsets + phantoms, composite=True)
    if glyph.numberOfContours > 0:
        return GlyphPoints(
            tuple(tuple(point) for point in glyph.coordinates) + phantoms,
            tuple(glyph.endPtsOfContours),
        )
    return GlyphPoints(phantoms)


def set_glyph_points(glyph, coordinates) -> None:
    """
    Write instanced points back into a glyph, phantom points excluded.

    Bounds are not recalculated here; composites need their components done
    first, see ``composite_depth``.
    """
    outline = coordinates[:-PHANTOM_POINT_COUNT]
    if glyph.isComposite():
        for component, (x, y) in zip(glyph.components, outline):
            if hasattr(component, "x"):
                component.x = x
                component.y = y
    elif glyph.numberOfContours > 0:
        glyph.coordinates = GlyphCoordinates(outline)


def composite_depth(glyf, name: str, depths: dict[str, int]) -> int:
    """Nesting depth of a glyph: 0 for simple glyphs, memoized in ``depths``."""
    if name in depths:
        return depths[name]
    glyph = glyf[name]
    depth = 0
    if glyph.isComposite():
        depth = 1 + max(
            composite_depth(glyf, component.glyphName, depths)
            for component in glyph.components
        )
    depths[name] = depth
    return depth


def recalc_bounds(glyf, names) -> None:
    """Recalculate bounds of ``names``, components before composites."""
    depths: dict[str, int] = {}
    for name in sorted(names, key=lambda n: composite_depth(glyf, n, depths)):
        glyph = glyf[name]
        if glyph.numberOfContours != 0:
            glyph.recalcBounds(glyf)
