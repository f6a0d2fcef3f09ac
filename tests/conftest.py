"""Shared pytest fixtures: synthetic variable fonts built with fontTools."""

import array
import struct
from io import BytesIO

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.misc.psCharStrings import T2CharString
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTFont, newTable
from fontTools.ttLib.tables import otTables as ot
from fontTools.ttLib.tables.TupleVariation import TupleVariation
from fontTools.varLib import varStore
from fontTools.varLib.builder import buildVarIdxMap
from fontTools.varLib.models import VariationModel

from vfresolve.core.font_io import VariableFont

AXES = [
    ("wght", 400.0, 400.0, 900.0, "Weight"),
    ("wdth", 75.0, 100.0, 100.0, "Width"),
]
AXIS_TAGS = ["wght", "wdth"]

INSTANCES = [
    {"stylename": "Bold", "location": {"wght": 700.0, "wdth": 100.0}},
    {"stylename": "Black Condensed", "location": {"wght": 900.0, "wdth": 75.0}},
]

# Square with its four phantom points: left, right, top, bottom
SQUARE_WGHT_DELTAS = [(-20, 0), (20, 0), (20, 30), (-20, 30), (0, 0), (40, 0), (0, 0), (0, 0)]
SQUARE_WDTH_DELTAS = [(10, 0), (-10, 0), (-10, 0), (10, 0), (0, 0), (-20, 0), (0, 0), (0, 0)]

# Six-point contour; only points 0 and 3 carry explicit deltas
HEX_POINTS = [(0, 0), (50, 0), (100, 0), (100, 100), (50, 100), (0, 100)]
HEX_WGHT_DELTAS = [(0, 0), None, None, (50, 25), None, None, None, None, None, None]


def polygon(points):
    pen = TTGlyphPen(None)
    pen.moveTo(points[0])
    for point in points[1:]:
        pen.lineTo(point)
    pen.closePath()
    return pen.glyph()


def rect(x0, y0, x1, y1):
    return polygon([(x0, y0), (x1, y0), (x1, y1), (x0, y1)])


def empty_glyph():
    return TTGlyphPen(None).glyph()


def square_variations():
    return [
        TupleVariation({"wght": (0.0, 1.0, 1.0)}, list(SQUARE_WGHT_DELTAS)),
        TupleVariation({"wdth": (-1.0, -1.0, 0.0)}, list(SQUARE_WDTH_DELTAS)),
    ]


def add_hvar(font, advance_deltas: dict[str, int]) -> None:
    """HVAR with one wght-max master; glyphs not listed get a zero delta."""
    model = VariationModel([{}, {"wght": 1.0}], axisOrder=AXIS_TAGS)
    builder = varStore.OnlineVarStoreBuilder(AXIS_TAGS)
    builder.setModel(model)
    hmtx = font["hmtx"]
    var_indexes = []
    for name in font.getGlyphOrder():
        advance = hmtx[name][0]
        _, var_index = builder.storeMasters(
            [advance, advance + advance_deltas.get(name, 0)]
        )
        var_indexes.append(var_index)
    store = builder.finish()

    hvar = font["HVAR"] = newTable("HVAR")
    table = hvar.table = ot.HVAR()
    table.Version = 0x00010000
    table.VarStore = store
    table.AdvWidthMap = buildVarIdxMap(var_indexes, font.getGlyphOrder())
    table.LsbMap = None
    table.RsbMap = None


def add_mvar(font, records: dict[str, tuple[str, str, int]]) -> None:
    """MVAR with one wght-max master per tag: tag -> (table, field, delta)."""
    model = VariationModel([{}, {"wght": 1.0}], axisOrder=AXIS_TAGS)
    builder = varStore.OnlineVarStoreBuilder(AXIS_TAGS)
    builder.setModel(model)
    value_records = []
    for tag, (table_tag, attribute, delta) in sorted(records.items()):
        base = getattr(font[table_tag], attribute)
        _, var_index = builder.storeMasters([base, base + delta])
        record = ot.MetricsValueRecord()
        record.ValueTag = tag
        record.VarIdx = var_index
        value_records.append(record)
    store = builder.finish()

    mvar = font["MVAR"] = newTable("MVAR")
    table = mvar.table = ot.MVAR()
    table.Version = 0x00010000
    table.Reserved = 0
    table.VarStore = store
    table.ValueRecordSize = 8
    table.ValueRecordCount = len(value_records)
    table.ValueRecord = value_records


def build_font(
    glyphs: dict,
    variations: dict,
    *,
    advances: dict[str, int] | None = None,
    hvar: dict[str, int] | None = None,
    mvar: dict | None = None,
    axes=AXES,
    instances=INSTANCES,
) -> bytes:
    """
    Build a TrueType variable font and return its bytes.

    Args:
        glyphs: Glyph name to fontTools Glyph, in glyph order
        variations: Glyph name to list of TupleVariation
        advances: Advance width per glyph (default 600)
        hvar: Advance width delta at wght max per glyph, adds HVAR when given
        mvar: MVAR records, see add_mvar
    """
    advances = advances or {}
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder(list(glyphs))
    cmap = {ord(name): name for name in glyphs if len(name) == 1}
    fb.setupCharacterMap(cmap)
    fb.setupGlyf(glyphs)
    glyf = fb.font["glyf"]
    metrics = {}
    for name in glyphs:
        glyph = glyf[name]
        glyph.recalcBounds(glyf)
        metrics[name] = (advances.get(name, 600), getattr(glyph, "xMin", 0))
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupOS2(
        sTypoAscender=800,
        sTypoDescender=-200,
        usWinAscent=800,
        usWinDescent=200,
        sxHeight=500,
        usWeightClass=400,
    )
    fb.setupPost()
    fb.setupNameTable({"familyName": "Resolve Test", "styleName": "Regular"})
    fb.setupFvar(axes=axes, instances=instances)
    fb.setupGvar(variations)
    if hvar is not None:
        add_hvar(fb.font, hvar)
    if mvar is not None:
        add_mvar(fb.font, mvar)

    buffer = BytesIO()
    fb.save(buffer)
    return buffer.getvalue()


def corrupt_glyph_entry(gvar_data: bytes, glyph_id: int) -> bytes:
    """
    Make the first tuple of a glyph declare more data than its entry holds.

    GlyphVariationData starts with tupleVariationCount and dataOffset; the
    first header's variationDataSize follows at offset 4.
    """
    flags, array_offset = struct.unpack_from(">HI", gvar_data, 14)
    if flags & 1:
        (start,) = struct.unpack_from(">I", gvar_data, 20 + glyph_id * 4)
    else:
        (start,) = struct.unpack_from(">H", gvar_data, 20 + glyph_id * 2)
        start *= 2
    position = array_offset + start + 4
    data = bytearray(gvar_data)
    struct.pack_into(">H", data, position, 0xFFF0)
    return bytes(data)


@pytest.fixture(scope="session")
def two_axis_font_bytes():
    """
    wght 400-900 (default 400) and wdth 75-100 (default 100).

    Glyphs: .notdef (empty), A (square, both axes, all points), H (hexagon,
    wght only, explicit points), space (empty).
    """
    glyphs = {
        ".notdef": empty_glyph(),
        "A": rect(100, 0, 500, 700),
        "H": polygon(HEX_POINTS),
        "space": empty_glyph(),
    }
    variations = {
        "A": square_variations(),
        "H": [TupleVariation({"wght": (0.0, 1.0, 1.0)}, list(HEX_WGHT_DELTAS))],
    }
    return build_font(glyphs, variations, advances={"space": 250})


@pytest.fixture
def two_axis_font(two_axis_font_bytes):
    return VariableFont.from_bytes(two_axis_font_bytes)


@pytest.fixture(scope="session")
def hvar_font_bytes():
    """Square font whose HVAR advance delta (+50) disagrees with gvar (+40)."""
    glyphs = {".notdef": empty_glyph(), "A": rect(100, 0, 500, 700)}
    return build_font(
        glyphs,
        {"A": square_variations()},
        hvar={"A": 50},
        mvar={
            "xhgt": ("OS/2", "sxHeight", 40),
            "undo": ("post", "underlinePosition", -20),
        },
    )


@pytest.fixture
def hvar_font(hvar_font_bytes):
    return VariableFont.from_bytes(hvar_font_bytes)


@pytest.fixture(scope="session")
def hundred_glyph_font_bytes():
    """100 identical squares, each with the same wght and wdth tuples."""
    glyphs = {".notdef": rect(100, 0, 500, 700)}
    glyphs.update({f"g{index:02d}": rect(100, 0, 500, 700) for index in range(1, 100)})
    variations = {name: square_variations() for name in glyphs}
    return build_font(glyphs, variations)


@pytest.fixture
def corrupted_font(hundred_glyph_font_bytes):
    """The 100-glyph font with glyph 12's gvar entry overrunning its data."""
    font = VariableFont.from_bytes(hundred_glyph_font_bytes)
    tables = font.table_map()
    tables["gvar"] = corrupt_glyph_entry(tables["gvar"], 12)
    return VariableFont.from_tables(tables)


@pytest.fixture(scope="session")
def static_font_bytes():
    """Plain TrueType font without any variation table."""
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder([".notdef", "A"])
    fb.setupCharacterMap({ord("A"): "A"})
    fb.setupGlyf({".notdef": empty_glyph(), "A": rect(100, 0, 500, 700)})
    fb.setupHorizontalMetrics({".notdef": (500, 0), "A": (600, 100)})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupOS2()
    fb.setupPost()
    fb.setupNameTable({"familyName": "Static Test", "styleName": "Regular"})
    buffer = BytesIO()
    fb.save(buffer)
    return buffer.getvalue()


def f2dot14(value: float) -> int:
    return round(value * 16384)


def pack_item_variation_store(axis_count, regions, subtables, *, long_words=False):
    """
    Serialize an ItemVariationStore.

    Args:
        axis_count: Axes per region
        regions: Per region, a (start, peak, end) triple per axis
        subtables: (region_indexes, rows, word_count) per ItemVariationData;
            word_count None makes every column a word (or long) column
        long_words: Use the LONG_WORDS variant
    """
    header_size = 8 + 4 * len(subtables)
    region_list = struct.pack(">HH", axis_count, len(regions)) + b"".join(
        struct.pack(">hhh", f2dot14(start), f2dot14(peak), f2dot14(end))
        for region in regions
        for start, peak, end in region
    )
    word_code, byte_code = ("i", "h") if long_words else ("h", "b")
    blobs = []
    for region_indexes, rows, word_count in subtables:
        columns = len(region_indexes)
        if word_count is None:
            word_count = columns
        word_field = word_count | (0x8000 if long_words else 0)
        row_format = f">{word_count}{word_code}{columns - word_count}{byte_code}"
        blobs.append(
            struct.pack(">HHH", len(rows), word_field, columns)
            + struct.pack(f">{columns}H", *region_indexes)
            + b"".join(struct.pack(row_format, *row) for row in rows)
        )
    offsets = []
    position = header_size + len(region_list)
    for blob in blobs:
        offsets.append(position)
        position += len(blob)
    return (
        struct.pack(">HIH", 1, header_size, len(subtables))
        + struct.pack(f">{len(subtables)}I", *offsets)
        + region_list
        + b"".join(blobs)
    )


def pack_delta_set_index_map(entries, *, fmt=0, entry_size=2, inner_bits=8):
    """Serialize a DeltaSetIndexMap from (outer, inner) pairs."""
    entry_format = ((entry_size - 1) << 4) | (inner_bits - 1)
    count_format = ">H" if fmt == 0 else ">I"
    data = struct.pack(">BB", fmt, entry_format) + struct.pack(count_format, len(entries))
    for outer, inner in entries:
        data += ((outer << inner_bits) | inner).to_bytes(entry_size, "big")
    return data


@pytest.fixture
def store_bytes():
    return pack_item_variation_store


@pytest.fixture
def index_map_bytes():
    return pack_delta_set_index_map


@pytest.fixture(scope="session")
def cvar_font_bytes(two_axis_font_bytes):
    """The two-axis font with a two-entry CVT varying along wght."""
    font = TTFont(BytesIO(two_axis_font_bytes))
    cvt = newTable("cvt ")
    cvt.values = array.array("h", [100, 200])
    font["cvt "] = cvt
    cvar = newTable("cvar")
    cvar.variations = [TupleVariation({"wght": (0.0, 1.0, 1.0)}, [10, -20])]
    font["cvar"] = cvar
    buffer = BytesIO()
    font.save(buffer)
    return buffer.getvalue()


# Square drawn with blends: x 100-20w .. 500+20w, height 700+30w
CFF2_SQUARE_PROGRAM = [
    100, -20, 1, "blend", 0, "rmoveto",
    400, 40, 1, "blend", 0, "rlineto",
    0, 700, 30, 1, "blend", "rlineto",
    -400, -40, 1, "blend", 0, "rlineto",
]  # fmt: skip


def build_cff2_font(program, *, recalc_bounds: bool = True) -> bytes:
    """CFF2 variable font with one wght region; glyph A draws ``program``."""
    fb = FontBuilder(1000, isTTF=False)
    fb.setupGlyphOrder([".notdef", "A"])
    fb.setupCharacterMap({ord("A"): "A"})
    fb.setupNameTable({"familyName": "Resolve CFF2", "styleName": "Regular"})
    fb.setupFvar(axes=AXES, instances=INSTANCES)
    fb.setupCFF2(
        {
            ".notdef": T2CharString(program=[]),
            "A": T2CharString(program=list(program)),
        }
    )
    fb.setupCFF2Regions([{"wght": (0.0, 1.0, 1.0)}])
    fb.setupHorizontalMetrics({".notdef": (500, 0), "A": (600, 100)})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupOS2(usWeightClass=400)
    fb.setupPost()
    fb.setupMaxp()
    fb.font.recalcBBoxes = recalc_bounds
    buffer = BytesIO()
    fb.save(buffer)
    return buffer.getvalue()


@pytest.fixture(scope="session")
def cff2_font_bytes():
    return build_cff2_font(CFF2_SQUARE_PROGRAM)


@pytest.fixture(scope="session")
def cff2_bad_vsindex_font_bytes():
    """Glyph A selects ItemVariationData 5, which the VarStore lacks."""
    return build_cff2_font([5, "vsindex", *CFF2_SQUARE_PROGRAM], recalc_bounds=False)
