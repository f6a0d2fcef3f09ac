"""
User-space to normalized design-space coordinate conversion.
"""

from collections.abc import Mapping

from vfresolve.config.settings import NormalizationSettings
from vfresolve.core.errors import InvalidCoordinatesError
from vfresolve.tables.fvar import Axis, Fvar
from vfresolve.utils.logging import logger


class AxisNormalizer:
    """
    Normalizes user axis coordinates to [-1, 1] using fvar axis ranges.

    Below the default: (value - default) / (default - min).
    Above the default: (value - default) / (max - default).

    Args:
        fvar: Decoded fvar table
        settings: Normalization settings
    """

    def __init__(
        self, fvar: Fvar, settings: NormalizationSettings | None = None
    ) -> None:
        self.settings = settings or NormalizationSettings()
        self.axes: dict[str, Axis] = {axis.tag: axis for axis in fvar.axes}

    @property
    def axis_tags(self) -> tuple[str, ...]:
        return tuple(self.axes)

    def normalize(self, user_coords: Mapping[str, float]) -> dict[str, float]:
        """
        Normalize user coordinates.

        Args:
            user_coords: Axis tag to user value; tags not in fvar are ignored

        Returns:
            Normalized coordinates in fvar axis order

        Raises:
            InvalidCoordinatesError: Value out of range with clamping disabled
        """
        for tag in user_coords:
            if tag not in self.axes:
                logger.warning(f"Ignoring coordinate for unknown axis '{tag}'")

        result = {}
        for tag, axis in self.axes.items():
            value = user_coords.get(tag)
            if value is None:
                if not self.settings.use_axis_defaults:
                    continue
                value = axis.default_value
            result[tag] = self._normalize_value(self._validate(float(value), axis), axis)
        return result

    def normalize_axis(self, value: float, tag: str) -> float:
        """
        Normalize a single axis value.

        Raises:
            InvalidCoordinatesError: Unknown axis, or value out of range with
                clamping disabled
        """
        axis = self.axes.get(tag)
        if axis is None:
            raise InvalidCoordinatesError(
                f"Unknown axis: {tag}", context={"axis": tag, "known": self.axis_tags}
            )
        return self._normalize_value(self._validate(float(value), axis), axis)

    def _validate(self, value: float, axis: Axis) -> float:
        if not self.settings.validate_coordinates:
            return value
        if axis.min_value <= value <= axis.max_value:
            return value
        if self.settings.clamp_coordinates:
            clamped = min(max(value, axis.min_value), axis.max_value)
            logger.debug(f"Clamped {axis.tag}={value} to {clamped}")
            return clamped
        raise InvalidCoordinatesError(
            f"Invalid coordinate for axis '{axis.tag}': {value} "
            f"(valid range {axis.min_value} to {axis.max_value})",
            context={
                "axis": axis.tag,
                "value": value,
                "range": (axis.min_value, axis.max_value),
            },
        )

    def _normalize_value(self, value: float, axis: Axis) -> float:
        default = axis.default_value
        if value == default:
            return 0.0
        if value < default:
            extent = default - axis.min_value
        else:
            extent = axis.max_value - default
        if extent == 0:
            return 0.0
        normalized = (value - default) / extent
        normalized = min(max(normalized, -1.0), 1.0)
        return round(normalized, self.settings.precision)


def normalize(
    font,
    user_coordinates: Mapping[str, float],
    settings: NormalizationSettings | None = None,
) -> dict[str, float]:
    """
    Normalize user coordinates against a font's fvar axes.

    Args:
        font: VariableFont to read fvar from
        user_coordinates: Axis tag to user value
        settings: Normalization settings

    Raises:
        InvalidCoordinatesError: Font has no fvar, or a value is out of range
    """
    fvar = font.fvar
    if fvar is None:
        raise InvalidCoordinatesError("Font is not a variable font (no fvar table)")
    return AxisNormalizer(fvar, settings).normalize(user_coordinates)
