"""
Metrics variation application (HVAR, VVAR, MVAR).

Each table maps a glyph id or metric tag to an (outer, inner) delta-set index;
the weighted delta of that item is rounded and added to the base value.
"""

from collections.abc import Mapping

from fontTools.ttLib import TTFont

from vfresolve.config.metrics import MVAR_FIELDS
from vfresolve.tables.item_variation_store import (
    DeltaSetIndexMap,
    RegionEvaluator,
    resolve_index,
)
from vfresolve.tables.metrics_variations import Hvar, Mvar, Vvar
from vfresolve.utils.binary import round_half_away
from vfresolve.utils.logging import logger

Metrics = dict[str, tuple[int, int]]


class _Deltas:
    """One store evaluated at fixed coordinates."""

    def __init__(self, evaluator: RegionEvaluator, coords: Mapping[str, float]):
        self.evaluator = evaluator
        self.scalars = evaluator.region_scalars(coords)

    def mapped(self, index_map: DeltaSetIndexMap | None, index: int) -> int:
        outer, inner = resolve_index(index_map, index)
        return self.item(outer, inner)

    def item(self, outer: int, inner: int) -> int:
        return round_half_away(
            self.evaluator.net_delta(outer, inner, scalars=self.scalars)
        )


class MetricsAdjuster:
    """
    Applies HVAR, VVAR and MVAR deltas at a normalized location.

    Args:
        coords: Normalized coordinates
        hvar: Decoded HVAR, if the font has one
        vvar: Decoded VVAR, if the font has one
        mvar: Decoded MVAR, if the font has one
    """

    def __init__(
        self,
        coords: Mapping[str, float],
        *,
        hvar: Hvar | None = None,
        vvar: Vvar | None = None,
        mvar: Mvar | None = None,
    ) -> None:
        self.hvar = hvar
        self.vvar = vvar
        self.mvar = mvar
        self._hvar = _Deltas(hvar.evaluator, coords) if hvar else None
        self._vvar = _Deltas(vvar.evaluator, coords) if vvar else None
        self._mvar = _Deltas(mvar.evaluator, coords) if mvar and mvar.evaluator else None

    def advance_width_delta(self, glyph_id: int) -> int:
        if self._hvar is None:
            return 0
        return self._hvar.mapped(self.hvar.advance_map, glyph_id)

    def lsb_delta(self, glyph_id: int) -> int | None:
        """LSB delta, or None when HVAR carries no LSB mapping."""
        if self._hvar is None or self.hvar.lsb_map is None:
            return None
        return self._hvar.mapped(self.hvar.lsb_map, glyph_id)

    def apply_hvar(self, font: TTFont, base: Metrics) -> int:
        """
        Set advance widths (and LSBs when mapped) from HVAR.

        Advances are computed from the base metrics, so values written by the
        outline pass are replaced. LSBs keep the outline-derived value unless
        HVAR maps them.

        Args:
            font: Working copy whose hmtx is updated
            base: Original hmtx metrics by glyph name

        Returns:
            Number of glyphs whose metrics changed
        """
        if self._hvar is None or "hmtx" not in font:
            return 0
        hmtx = font["hmtx"]
        changed = 0
        for glyph_id, name in enumerate(font.getGlyphOrder()):
            if name not in base:
                continue
            base_advance, base_lsb = base[name]
            advance = max(0, base_advance + self.advance_width_delta(glyph_id))
            lsb_delta = self.lsb_delta(glyph_id)
            lsb = hmtx[name][1] if lsb_delta is None else base_lsb + lsb_delta
            if (advance, lsb) != tuple(hmtx[name]):
                changed += 1
            hmtx[name] = (advance, lsb)
        logger.debug(f"HVAR: updated {changed} horizontal metrics")
        return changed

    def apply_vvar(self, font: TTFont, base: Metrics) -> int:
        """
        Set advance heights, TSBs and vertical origins from VVAR.

        Args:
            font: Working copy whose vmtx and VORG are updated
            base: Original vmtx metrics by glyph name

        Returns:
            Number of glyphs whose metrics changed
        """
        if self._vvar is None or "vmtx" not in font:
            return 0
        vmtx = font["vmtx"]
        vorg = font["VORG"] if "VORG" in font else None
        changed = 0
        for glyph_id, name in enumerate(font.getGlyphOrder()):
            if name not in base:
                continue
            base_advance, base_tsb = base[name]
            advance = max(
                0, base_advance + self._vvar.mapped(self.vvar.advance_map, glyph_id)
            )
            tsb = vmtx[name][1]
            if self.vvar.tsb_map is not None:
                tsb = base_tsb + self._vvar.mapped(self.vvar.tsb_map, glyph_id)
            if (advance, tsb) != tuple(vmtx[name]):
                changed += 1
            vmtx[name] = (advance, tsb)
            if vorg is not None and self.vvar.vorg_map is not None:
                if name in vorg.VOriginRecords:
                    vorg.VOriginRecords[name] += self._vvar.mapped(
                        self.vvar.vorg_map, glyph_id
                    )
        logger.debug(f"VVAR: updated {changed} vertical metrics")
        return changed

    def mvar_deltas(self) -> dict[str, int]:
        """Rounded delta per MVAR value tag."""
        if self._mvar is None:
            return {}
        return {
            record.tag: self._mvar.item(record.outer, record.inner)
            for record in self.mvar.records
        }

    def apply_mvar(self, font: TTFont) -> int:
        """
        Add MVAR deltas to the OS/2, hhea, vhea and post fields they vary.

        Returns:
            Number of fields changed
        """
        changed = 0
        for tag, delta in self.mvar_deltas().items():
            target = MVAR_FIELDS.get(tag)
            if target is None:
                logger.debug(f"MVAR: skipping unsupported value tag '{tag}'")
                continue
            table_tag, attribute = target
            if table_tag not in font or delta == 0:
                continue
            table = font[table_tag]
            setattr(table, attribute, getattr(table, attribute) + delta)
            changed += 1
        logger.debug(f"MVAR: updated {changed} font-wide metrics")
        return changed
