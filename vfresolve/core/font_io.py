"""
Font I/O utilities for loading variable fonts and assembling table maps.
"""

from collections.abc import Iterator, Mapping
from io import BytesIO
from pathlib import Path

from fontTools.ttLib import TTFont, TTLibError
from fontTools.ttLib.sfnt import SFNTWriter

from vfresolve.config.settings import (
    CFF_SFNT_VERSION,
    TRUETYPE_SFNT_VERSION,
    VARIABLE_FONT_MARKERS,
)
from vfresolve.core.errors import InvalidFontError
from vfresolve.tables.avar import Avar
from vfresolve.tables.fvar import Fvar


def iter_fonts(directory: Path, pattern: str = "*.ttf") -> Iterator[Path]:
    """Yield font files in ``directory`` matching ``pattern``, sorted by name."""
    yield from sorted(path for path in directory.glob(pattern) if path.is_file())


def assemble_font(table_map: Mapping[str, bytes]) -> bytes:
    """
    Serialize a table map into an SFNT binary.

    fontTools writes the table directory, per-table checksums and the head
    checkSumAdjustment.

    Args:
        table_map: Table tag to compiled table bytes

    Returns:
        Complete font file contents
    """
    if "CFF " in table_map or "CFF2" in table_map:
        sfnt_version = CFF_SFNT_VERSION
    else:
        sfnt_version = TRUETYPE_SFNT_VERSION
    buffer = BytesIO()
    writer = SFNTWriter(buffer, len(table_map), sfntVersion=sfnt_version)
    for tag in sorted(table_map):
        writer[tag] = bytes(table_map[tag])
    writer.close()
    return buffer.getvalue()


class VariableFont:
    """
    A loaded font plus its eagerly decoded axis tables.

    The original bytes are kept so every instancing run can start from a
    fresh, private working copy; the wrapped font is never modified.

    Args:
        data: Complete font file contents

    Raises:
        InvalidFontError: If the data is not a readable SFNT, or fvar/avar
            are malformed
    """

    def __init__(self, data: bytes, *, name: str = "<memory>"):
        self.data = bytes(data)
        self.name = name
        try:
            self.ttfont = TTFont(BytesIO(self.data), recalcTimestamp=False)
        except (TTLibError, AssertionError) as e:
            raise InvalidFontError(
                f"Cannot read font {name}: {e}", context={"font": name}
            ) from e

        self.fvar: Fvar | None = None
        self.avar: Avar | None = None
        if "fvar" in self.ttfont:
            self.fvar = Fvar.decode(self.table_data("fvar"))
            if "avar" in self.ttfont:
                self.avar = Avar.decode(self.table_data("avar"), len(self.fvar.axes))

    @classmethod
    def from_path(cls, path: Path) -> "VariableFont":
        path = Path(path)
        return cls(path.read_bytes(), name=path.name)

    @classmethod
    def from_bytes(cls, data: bytes) -> "VariableFont":
        return cls(data)

    @classmethod
    def from_tables(cls, table_map: Mapping[str, bytes]) -> "VariableFont":
        return cls(assemble_font(table_map))

    @property
    def is_variable(self) -> bool:
        return self.fvar is not None and any(
            tag in self.ttfont for tag in VARIABLE_FONT_MARKERS if tag != "fvar"
        )

    @property
    def axis_tags(self) -> tuple[str, ...]:
        return self.fvar.axis_tags if self.fvar else ()

    @property
    def table_tags(self) -> list[str]:
        return [tag for tag in self.ttfont.keys() if tag != "GlyphOrder"]

    def has_table(self, tag: str) -> bool:
        return tag in self.ttfont

    def table_data(self, tag: str) -> bytes:
        """Raw bytes of one table as stored in the font."""
        return self.ttfont.reader[tag]

    def table_map(self) -> dict[str, bytes]:
        """Every table's raw bytes, unchanged."""
        return {tag: self.table_data(tag) for tag in self.table_tags}

    def working_copy(self) -> TTFont:
        """A new TTFont over the original bytes, safe to modify."""
        return TTFont(BytesIO(self.data), recalcTimestamp=False)

    def __repr__(self) -> str:
        return f"VariableFont({self.name!r}, axes={self.axis_tags})"
