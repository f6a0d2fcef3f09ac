"""
MVAR value tags and the font table fields they vary.
"""

# Maps MVAR value tag to (table tag, fontTools attribute name)
MVAR_FIELDS: dict[str, tuple[str, str]] = {
    "hasc": ("OS/2", "sTypoAscender"),
    "hdsc": ("OS/2", "sTypoDescender"),
    "hlgp": ("OS/2", "sTypoLineGap"),
    "hcla": ("OS/2", "usWinAscent"),
    "hcld": ("OS/2", "usWinDescent"),
    "vasc": ("vhea", "ascent"),
    "vdsc": ("vhea", "descent"),
    "vlgp": ("vhea", "lineGap"),
    "hcrs": ("hhea", "caretSlopeRise"),
    "hcrn": ("hhea", "caretSlopeRun"),
    "hcof": ("hhea", "caretOffset"),
    "vcrs": ("vhea", "caretSlopeRise"),
    "vcrn": ("vhea", "caretSlopeRun"),
    "vcof": ("vhea", "caretOffset"),
    "xhgt": ("OS/2", "sxHeight"),
    "cpht": ("OS/2", "sCapHeight"),
    "sbxs": ("OS/2", "ySubscriptXSize"),
    "sbys": ("OS/2", "ySubscriptYSize"),
    "sbxo": ("OS/2", "ySubscriptXOffset"),
    "sbyo": ("OS/2", "ySubscriptYOffset"),
    "spxs": ("OS/2", "ySuperscriptXSize"),
    "spys": ("OS/2", "ySuperscriptYSize"),
    "spxo": ("OS/2", "ySuperscriptXOffset"),
    "spyo": ("OS/2", "ySuperscriptYOffset"),
    "strs": ("OS/2", "yStrikeoutSize"),
    "stro": ("OS/2", "yStrikeoutPosition"),
    "unds": ("post", "underlineThickness"),
    "undo": ("post", "underlinePosition"),
}


# wdth axis percentage to OS/2 usWidthClass, interpolated then rounded
WIDTH_CLASS_BY_PERCENT: tuple[tuple[float, float], ...] = (
    (50.0, 1),
    (62.5, 2),
    (75.0, 3),
    (87.5, 4),
    (100.0, 5),
    (112.5, 6),
    (125.0, 7),
    (150.0, 8),
    (200.0, 9),
)
