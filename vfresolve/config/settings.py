"""
Instancing configuration.

Defaults mirror the behaviour expected by the CLI: missing axes take their
fvar default, out-of-range values are clamped, normalized values keep six
decimals.
"""

from dataclasses import dataclass, field

# Tables removed from every static instance
VARIATION_TABLES = ("fvar", "avar", "gvar", "cvar", "HVAR", "VVAR", "MVAR", "STAT")

# Tables whose presence marks a font as variable
VARIABLE_FONT_MARKERS = ("fvar", "gvar", "CFF2", "HVAR", "VVAR", "MVAR")

# Outline containers and their sfnt version tags
TRUETYPE_SFNT_VERSION = "\x00\x01\x00\x00"
CFF_SFNT_VERSION = "OTTO"


@dataclass(frozen=True)
class NormalizationSettings:
    """
    Axis coordinate normalization settings.

    Attributes:
        use_axis_defaults: Fill axes missing from the input with their default
        validate_coordinates: Check values against the axis range
        clamp_coordinates: Clamp out-of-range values instead of failing
        precision: Decimal places kept in normalized values
    """

    use_axis_defaults: bool = True
    validate_coordinates: bool = True
    clamp_coordinates: bool = True
    precision: int = 6


@dataclass(frozen=True)
class InstancerSettings:
    """
    Static instance generation settings.

    Attributes:
        normalization: Coordinate normalization settings
        apply_avar: Map normalized coordinates through avar when present
        round_blends: Round resolved CFF2 blend operands to integers
    """

    normalization: NormalizationSettings = field(default_factory=NormalizationSettings)
    apply_avar: bool = True
    round_blends: bool = True


DEFAULT_SETTINGS = InstancerSettings()
