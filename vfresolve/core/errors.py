"""
Exception types raised while resolving font variations.

Structural problems in a variation table raise InvalidFontError and abort the
whole operation. GlyphVariationError marks a malformed entry for a single
glyph; the instancer catches it and leaves that glyph un-instanced.
"""

from typing import Any


class VariationError(Exception):
    """Base class for variation resolution errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = dict(context or {})

    def detailed_message(self) -> str:
        """Message followed by the error context, if any."""
        if not self.context:
            return str(self)
        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self} ({details})"


class InvalidCoordinatesError(VariationError, ValueError):
    """Axis value out of range, unknown axis, or font without fvar."""


class InvalidFontError(VariationError, ValueError):
    """Malformed variation table structure."""


class GlyphVariationError(InvalidFontError):
    """Malformed variation data for one glyph."""

    def __init__(
        self,
        glyph_id: int,
        message: str,
        *,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context={"glyph_id": glyph_id, **(context or {})})
        self.glyph_id = glyph_id


class ArgumentError(VariationError, ValueError):
    """Unknown strategy or invalid strategy options."""
