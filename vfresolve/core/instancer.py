"""
Static instance generation from a variable font.

The generator normalizes the target location, runs every registered table
handler over a private working copy of the font and returns the compiled,
variation-free tables as a ``tag -> bytes`` map.
"""

import array
from collections.abc import Mapping
from dataclasses import dataclass, field
from io import BytesIO
from typing import Protocol

from fontTools.pens.boundsPen import BoundsPen
from fontTools.ttLib import TTFont
from fontTools.ttLib.sfnt import SFNTReader

from vfresolve.config.metrics import WIDTH_CLASS_BY_PERCENT
from vfresolve.config.settings import (
    DEFAULT_SETTINGS,
    VARIATION_TABLES,
    InstancerSettings,
)
from vfresolve.core.blend import BlendApplier, strip_variations
from vfresolve.core.deltas import PHANTOM_POINT_COUNT, DeltaApplier
from vfresolve.core.errors import GlyphVariationError, InvalidCoordinatesError
from vfresolve.core.font_io import VariableFont
from vfresolve.core.metrics import Metrics, MetricsAdjuster
from vfresolve.core.normalizer import AxisNormalizer
from vfresolve.core.outlines import glyph_points, recalc_bounds, set_glyph_points
from vfresolve.tables.avar import Avar, SegmentMap
from vfresolve.tables.fvar import Fvar
from vfresolve.tables.item_variation_store import RegionEvaluator
from vfresolve.tables.metrics_variations import Hvar, Mvar, Vvar
from vfresolve.tables.tuple_variations import Cvar, Gvar
from vfresolve.utils.binary import round_half_away
from vfresolve.utils.logging import logger


def format_location(location: Mapping[str, float]) -> str:
    return ", ".join(f"{tag}={value:g}" for tag, value in location.items())


@dataclass(frozen=True)
class VariationData:
    """
    Every variation table of a font, decoded up front.

    Nothing here is modified after construction, so one bundle can be shared
    by concurrent generators.
    """

    fvar: Fvar
    avar: Avar | None = None
    gvar: Gvar | None = None
    cvar: Cvar | None = None
    hvar: Hvar | None = None
    vvar: Vvar | None = None
    mvar: Mvar | None = None
    cff2: RegionEvaluator | None = None

    @property
    def axis_tags(self) -> tuple[str, ...]:
        return self.fvar.axis_tags

    @classmethod
    def from_font(cls, font: VariableFont) -> "VariationData":
        """
        Decode the variation tables of ``font``.

        Raises:
            InvalidCoordinatesError: Font has no fvar
            InvalidFontError: A variation table is structurally broken
        """
        fvar = font.fvar
        if fvar is None:
            raise InvalidCoordinatesError("Font is not a variable font (no fvar table)")
        axis_tags = fvar.axis_tags
        axis_count = len(axis_tags)

        gvar = cvar = hvar = vvar = mvar = cff2 = None
        if font.has_table("gvar"):
            gvar = Gvar.decode(font.table_data("gvar"), axis_count)
        if font.has_table("cvar") and font.has_table("cvt "):
            cvt_count = len(font.ttfont["cvt "].values)
            cvar = Cvar.decode(font.table_data("cvar"), axis_count, cvt_count)
        if font.has_table("HVAR"):
            hvar = Hvar.decode(font.table_data("HVAR"), axis_tags)
        if font.has_table("VVAR"):
            vvar = Vvar.decode(font.table_data("VVAR"), axis_tags)
        if font.has_table("MVAR"):
            mvar = Mvar.decode(font.table_data("MVAR"), axis_tags)
        if font.has_table("CFF2"):
            top = font.ttfont["CFF2"].cff.topDictIndex[0]
            offset = top.rawDict.get("VarStore")
            if offset:
                # VarStore is prefixed by a uint16 length
                cff2 = RegionEvaluator.from_bytes(
                    font.table_data("CFF2"), axis_tags, offset + 2, table="CFF2"
                )
        return cls(fvar, font.avar, gvar, cvar, hvar, vvar, mvar, cff2)


@dataclass(frozen=True)
class Instanced:
    """Glyph whose variations were applied."""

    glyph_id: int
    name: str
    tuple_count: int = 0


@dataclass(frozen=True)
class Skipped:
    """Glyph left at its base outline because its variation data is malformed."""

    glyph_id: int
    name: str
    reason: str


GlyphResult = Instanced | Skipped


@dataclass
class InstanceContext:
    """State shared by the table handlers during one generation."""

    data: VariationData
    font: TTFont
    location: dict[str, float]
    coords: dict[str, float]
    settings: InstancerSettings
    base_hmtx: Metrics = field(default_factory=dict)
    base_vmtx: Metrics = field(default_factory=dict)
    results: list[GlyphResult] = field(default_factory=list)
    metrics: MetricsAdjuster | None = None


@dataclass(frozen=True)
class InstanceResult:
    """Compiled tables plus per-glyph outcomes."""

    tables: dict[str, bytes]
    glyphs: tuple[GlyphResult, ...]
    coords: dict[str, float]

    @property
    def skipped(self) -> list[Skipped]:
        return [result for result in self.glyphs if isinstance(result, Skipped)]


class TableHandler(Protocol):
    """Applies one table's variations to the working font."""

    tag: str

    def applies(self, context: InstanceContext) -> bool:
        """Whether the handler has anything to do for this font."""
        ...

    def apply(self, context: InstanceContext) -> None:
        """Fold the table's variations into the working font."""
        ...


TABLE_HANDLERS: dict[str, TableHandler] = {}


def register_handler(handler_cls):
    """Class decorator adding a handler to TABLE_HANDLERS, in definition order."""
    TABLE_HANDLERS[handler_cls.tag] = handler_cls()
    return handler_cls


@register_handler
class GlyphVariationsHandler:
    """gvar: outline deltas and phantom-point metrics."""

    tag = "gvar"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.gvar is not None and "glyf" in context.font

    def apply(self, context: InstanceContext) -> None:
        font = context.font
        glyf = font["glyf"]
        gvar = context.data.gvar
        applier = DeltaApplier(context.data.axis_tags, context.coords)
        has_vmtx = "vmtx" in font

        phantoms = {}
        glyph_order = font.getGlyphOrder()
        for glyph_id, name in enumerate(glyph_order):
            glyph = glyf[name]
            points = glyph_points(
                glyph,
                context.base_hmtx.get(name, (0, 0)),
                context.base_vmtx.get(name) if has_vmtx else None,
            )
            try:
                variations = gvar.glyph_variations(glyph_id, len(points.coordinates))
            except GlyphVariationError as e:
                logger.warning(f"Glyph {glyph_id} ({name}) left un-instanced: {e}")
                context.results.append(Skipped(glyph_id, name, str(e)))
                continue
            if variations:
                coordinates = applier.apply(variations, points)
                set_glyph_points(glyph, coordinates)
                phantoms[name] = coordinates[-PHANTOM_POINT_COUNT:]
            else:
                phantoms[name] = points.phantom_points
            context.results.append(Instanced(glyph_id, name, len(variations)))

        recalc_bounds(glyf, glyph_order)
        self._update_metrics(font, glyf, phantoms, has_vmtx)
        instanced = sum(1 for r in context.results if isinstance(r, Instanced))
        logger.info(f"gvar: instanced {instanced} of {len(glyph_order)} glyphs")

    def _update_metrics(self, font, glyf, phantoms, has_vmtx: bool) -> None:
        hmtx = font["hmtx"]
        vmtx = font["vmtx"] if has_vmtx else None
        for name, ((left, _), (right, _), (_, top), (_, bottom)) in phantoms.items():
            glyph = glyf[name]
            hmtx[name] = (max(0, right - left), getattr(glyph, "xMin", 0) - left)
            if vmtx is not None and name in vmtx.metrics:
                vmtx[name] = (max(0, top - bottom), top - getattr(glyph, "yMax", 0))


@register_handler
class BlendHandler:
    """CFF2: blend resolution, Private DICT blends and VarStore removal."""

    tag = "CFF2"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.cff2 is not None and "CFF2" in context.font

    def apply(self, context: InstanceContext) -> None:
        font = context.font
        cff = font["CFF2"].cff
        top = cff.topDictIndex[0]
        charstrings = top.CharStrings
        applier = BlendApplier(
            context.data.cff2,
            context.coords,
            round_blends=context.settings.round_blends,
        )

        for glyph_id, name in enumerate(font.getGlyphOrder()):
            charstring = charstrings[name]
            try:
                program = applier.resolve_charstring(charstring, cff.GlobalSubrs, glyph_id)
            except GlyphVariationError as e:
                context.results.append(Skipped(glyph_id, name, str(e)))
                program = self._default_master(applier, charstring, cff, glyph_id, name, e)
            else:
                context.results.append(Instanced(glyph_id, name))
            charstring.program = program
            charstring.bytecode = None

        for font_dict in getattr(top, "FDArray", None) or ():
            applier.resolve_private(font_dict.Private)
        strip_variations(cff)

        hvar = context.data.hvar
        if "hmtx" in font and (hvar is None or hvar.lsb_map is None):
            hmtx = font["hmtx"]
            for name in font.getGlyphOrder():
                pen = BoundsPen(None)
                charstrings[name].draw(pen)
                lsb = round_half_away(pen.bounds[0]) if pen.bounds else 0
                hmtx[name] = (hmtx[name][0], lsb)
        logger.info(f"CFF2: resolved {len(charstrings)} charstrings")

    def _default_master(self, applier, charstring, cff, glyph_id, name, error) -> list:
        """Keep a glyph at its default outline, or empty it when unparseable."""
        try:
            program = applier.default_charstring(charstring, cff.GlobalSubrs, glyph_id)
        except GlyphVariationError as e:
            logger.warning(f"Glyph {glyph_id} ({name}) emptied: {error}; {e}")
            return []
        logger.warning(f"Glyph {glyph_id} ({name}) left un-instanced: {error}")
        return program


@register_handler
class HorizontalMetricsHandler:
    """HVAR: authoritative advance widths, LSBs when mapped."""

    tag = "HVAR"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.hvar is not None and "hmtx" in context.font

    def apply(self, context: InstanceContext) -> None:
        changed = context.metrics.apply_hvar(context.font, context.base_hmtx)
        logger.info(f"HVAR: adjusted {changed} glyphs")


@register_handler
class VerticalMetricsHandler:
    """VVAR: advance heights, TSBs and vertical origins."""

    tag = "VVAR"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.vvar is not None and "vmtx" in context.font

    def apply(self, context: InstanceContext) -> None:
        changed = context.metrics.apply_vvar(context.font, context.base_vmtx)
        logger.info(f"VVAR: adjusted {changed} glyphs")


@register_handler
class FontMetricsHandler:
    """MVAR: font-wide metrics in OS/2, hhea, vhea and post."""

    tag = "MVAR"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.mvar is not None

    def apply(self, context: InstanceContext) -> None:
        changed = context.metrics.apply_mvar(context.font)
        logger.info(f"MVAR: adjusted {changed} fields")


@register_handler
class CvtVariationsHandler:
    """cvar: CVT deltas."""

    tag = "cvar"

    def applies(self, context: InstanceContext) -> bool:
        return context.data.cvar is not None and "cvt " in context.font

    def apply(self, context: InstanceContext) -> None:
        cvt = context.font["cvt "]
        applier = DeltaApplier(context.data.axis_tags, context.coords)
        cvt.values = array.array(
            "h", applier.apply_cvt(context.data.cvar.variations, list(cvt.values))
        )
        logger.info(f"cvar: updated {len(cvt.values)} CVT values")


@register_handler
class StyleAttributesHandler:
    """OS/2 weight and width classes and post italic angle from the location."""

    tag = "OS/2"

    def applies(self, context: InstanceContext) -> bool:
        return "OS/2" in context.font

    def apply(self, context: InstanceContext) -> None:
        location = context.location
        os2 = context.font["OS/2"]
        if "wght" in location:
            os2.usWeightClass = round_half_away(min(max(location["wght"], 1), 1000))
        if "wdth" in location:
            percent = min(max(location["wdth"], 50), 200)
            os2.usWidthClass = round_half_away(
                SegmentMap(WIDTH_CLASS_BY_PERCENT).map(percent)
            )
        if "slnt" in location and "post" in context.font:
            context.font["post"].italicAngle = min(max(location["slnt"], -90), 90)


def remove_variation_tables(font: TTFont) -> list[str]:
    """Delete every variation table from ``font``; returns the removed tags."""
    removed = [tag for tag in VARIATION_TABLES if tag in font]
    for tag in removed:
        del font[tag]
    return removed


def compile_tables(font: TTFont) -> dict[str, bytes]:
    """
    Compile a font and split it back into a table map.

    Tables never loaded from the working copy are copied through unchanged.
    """
    buffer = BytesIO()
    font.save(buffer)
    reader = SFNTReader(BytesIO(buffer.getvalue()))
    return {tag: reader[tag] for tag in reader.keys()}


class InstanceGenerator:
    """
    Produces static instances of one variable font.

    Args:
        font: Variable font to instance
        settings: Instancer settings
        data: Pre-decoded variation tables, shared between generators

    Raises:
        InvalidCoordinatesError: Font has no fvar
        InvalidFontError: A variation table is structurally broken
    """

    def __init__(
        self,
        font: VariableFont,
        settings: InstancerSettings | None = None,
        *,
        data: VariationData | None = None,
    ) -> None:
        self.font = font
        self.settings = settings or DEFAULT_SETTINGS
        self.data = data or VariationData.from_font(font)
        self.normalizer = AxisNormalizer(self.data.fvar, self.settings.normalization)

    def normalized_location(self, coordinates: Mapping[str, float]) -> dict[str, float]:
        """Normalize user coordinates, then map them through avar when enabled."""
        coords = self.normalizer.normalize(coordinates)
        if self.settings.apply_avar and self.data.avar is not None:
            coords = self.data.avar.map_coordinates(self.data.axis_tags, coords)
        return coords

    def user_location(self, coordinates: Mapping[str, float]) -> dict[str, float]:
        """User coordinates with defaults filled in and values clamped to range."""
        location = {}
        for axis in self.data.fvar.axes:
            value = float(coordinates.get(axis.tag, axis.default_value))
            location[axis.tag] = min(max(value, axis.min_value), axis.max_value)
        return location

    def run(self, coordinates: Mapping[str, float] | None = None) -> InstanceResult:
        """
        Generate one instance.

        Args:
            coordinates: Axis tag to user value; missing axes use their default

        Returns:
            InstanceResult with the compiled tables

        Raises:
            InvalidCoordinatesError: Out-of-range value with clamping disabled
            InvalidFontError: A variation table is structurally broken
        """
        coordinates = dict(coordinates or {})
        coords = self.normalized_location(coordinates)
        logger.info(f"Instancing {self.font.name} at {format_location(coords)}")

        working = self.font.working_copy()
        context = InstanceContext(
            self.data,
            working,
            self.user_location(coordinates),
            coords,
            self.settings,
        )
        if "hmtx" in working:
            context.base_hmtx = dict(working["hmtx"].metrics)
        if "vmtx" in working:
            context.base_vmtx = dict(working["vmtx"].metrics)
        context.metrics = MetricsAdjuster(
            coords, hvar=self.data.hvar, vvar=self.data.vvar, mvar=self.data.mvar
        )

        for tag, handler in TABLE_HANDLERS.items():
            if handler.applies(context):
                logger.debug(f"Applying {tag} handler")
                handler.apply(context)

        removed = remove_variation_tables(working)
        logger.debug(f"Removed tables: {', '.join(removed)}")
        result = InstanceResult(compile_tables(working), tuple(context.results), coords)
        if result.skipped:
            logger.warning(f"{len(result.skipped)} glyphs left un-instanced")
        return result

    def generate(self, coordinates: Mapping[str, float] | None = None) -> dict[str, bytes]:
        """Generate one instance and return its ``tag -> bytes`` table map."""
        return self.run(coordinates).tables


def generate(
    font: VariableFont,
    coordinates: Mapping[str, float] | None = None,
    settings: InstancerSettings | None = None,
) -> dict[str, bytes]:
    """
    Generate a static instance of ``font`` at user-space ``coordinates``.

    Args:
        font: Variable font
        coordinates: Axis tag to user value; missing axes use their default
        settings: Instancer settings

    Returns:
        Table tag to compiled table bytes, free of variation tables
    """
    return InstanceGenerator(font, settings).generate(coordinates)
