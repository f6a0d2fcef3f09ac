"""
Static instance validation.

Checks a generated table map: variation tables are gone, the outline and
metrics tables agree with each other and the assembled font loads back.
"""

from collections.abc import Mapping
from io import BytesIO

from fontTools.ttLib import TTFont, TTLibError

from vfresolve.config.settings import VARIATION_TABLES
from vfresolve.core.font_io import assemble_font
from vfresolve.utils.logging import logger

REQUIRED_TABLES = ["head", "hhea", "hmtx", "maxp", "name", "post", "cmap"]


def check_variation_tables(tables: Mapping[str, bytes]) -> bool:
    """No variation table may survive instancing."""
    leftover = [tag for tag in VARIATION_TABLES if tag in tables]
    if leftover:
        logger.error(f"Variation tables still present: {', '.join(leftover)}")
        return False
    logger.info("No variation tables present")
    return True


def check_required_tables(tables: Mapping[str, bytes]) -> bool:
    """Core tables plus one outline format."""
    success = True
    for tag in REQUIRED_TABLES:
        if tag not in tables:
            logger.error(f"Required table '{tag}' is missing")
            success = False
    has_truetype = "glyf" in tables and "loca" in tables
    has_cff = "CFF " in tables or "CFF2" in tables
    if not (has_truetype or has_cff):
        logger.error("No outline tables (glyf/loca or CFF/CFF2)")
        success = False
    if success:
        logger.info("Required tables are present")
    return success


def check_font_structure(font: TTFont) -> bool:
    """Glyph counts agree across tables and CFF2 carries no VarStore."""
    success = True
    glyph_count = font["maxp"].numGlyphs
    if len(font.getGlyphOrder()) != glyph_count:
        logger.error(
            f"Glyph order has {len(font.getGlyphOrder())} glyphs, maxp says "
            f"{glyph_count}"
        )
        success = False

    hmtx = font["hmtx"]
    missing = [name for name in font.getGlyphOrder() if name not in hmtx.metrics]
    if missing:
        logger.error(f"{len(missing)} glyphs have no horizontal metrics")
        success = False
    negative = [name for name, (advance, _) in hmtx.metrics.items() if advance < 0]
    if negative:
        logger.error(f"{len(negative)} glyphs have negative advance widths")
        success = False

    if "CFF2" in font:
        top = font["CFF2"].cff.topDictIndex[0]
        if "VarStore" in top.rawDict:
            logger.error("CFF2 Top DICT still references a VarStore")
            success = False

    if success:
        logger.info(f"Font structure is consistent ({glyph_count} glyphs)")
    return success


def validate_instance(tables: Mapping[str, bytes]) -> bool:
    """
    Run every check against a generated table map.

    Args:
        tables: Table tag to bytes, as returned by generate()

    Returns:
        True when all checks pass; failures are logged
    """
    success = check_variation_tables(tables)
    if not check_required_tables(tables):
        return False

    try:
        font = TTFont(BytesIO(assemble_font(tables)))
        font.ensureDecompiled()
    except (TTLibError, AssertionError, KeyError, ValueError) as e:
        logger.error(f"Failed to load assembled font: {e}")
        return False

    if not check_font_structure(font):
        success = False
    font.close()

    if success:
        logger.info("Instance passed validation")
    else:
        logger.error("Instance failed validation")
    return success
