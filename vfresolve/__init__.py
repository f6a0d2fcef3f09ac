"""
Static instance generation for OpenType variable fonts.
"""

__version__ = "0.3.0"

from vfresolve.core.errors import (
    ArgumentError,
    InvalidCoordinatesError,
    InvalidFontError,
    VariationError,
)
from vfresolve.core.font_io import VariableFont, assemble_font
from vfresolve.core.instancer import generate
from vfresolve.core.normalizer import normalize
from vfresolve.pipeline.resolver import resolve

__all__ = [
    "ArgumentError",
    "InvalidCoordinatesError",
    "InvalidFontError",
    "VariableFont",
    "VariationError",
    "assemble_font",
    "generate",
    "normalize",
    "resolve",
]
