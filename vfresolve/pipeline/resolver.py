"""
Strategy selection for turning a font into a table map.

The strategy set is closed: preserve the font as-is, instance it at explicit
coordinates, or instance it at one of its fvar named instances.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from vfresolve.config.settings import InstancerSettings
from vfresolve.core.errors import ArgumentError, InvalidCoordinatesError
from vfresolve.core.font_io import VariableFont
from vfresolve.core.instancer import InstanceGenerator
from vfresolve.utils.logging import logger

STRATEGY_NAMES = ("preserve", "instance", "named")


@dataclass(frozen=True)
class PreserveStrategy:
    """Return every table unchanged."""


@dataclass(frozen=True)
class InstanceStrategy:
    """Instance at explicit user coordinates; missing axes use their default."""

    coordinates: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class NamedStrategy:
    """Instance at the fvar named instance with this index."""

    instance_index: int


Strategy = PreserveStrategy | InstanceStrategy | NamedStrategy


def build_strategy(name: str, **options) -> Strategy:
    """
    Build a strategy from its name and options.

    Args:
        name: "preserve", "instance" or "named"
        **options: ``coordinates`` for instance, ``instance_index`` for named

    Raises:
        ArgumentError: Unknown name, or a missing or negative instance_index
    """
    if name == "preserve":
        return PreserveStrategy()
    if name == "instance":
        return InstanceStrategy(dict(options.get("coordinates") or {}))
    if name == "named":
        index = options.get("instance_index")
        if index is None:
            raise ArgumentError("Strategy 'named' requires instance_index")
        if isinstance(index, bool) or not isinstance(index, int):
            raise ArgumentError(
                f"instance_index must be an integer, got {index!r}",
                context={"instance_index": index},
            )
        if index < 0:
            raise ArgumentError(
                f"instance_index must not be negative, got {index}",
                context={"instance_index": index},
            )
        return NamedStrategy(index)
    raise ArgumentError(
        f"Unknown strategy: {name!r} (expected one of {', '.join(STRATEGY_NAMES)})",
        context={"strategy": name},
    )


def named_coordinates(font: VariableFont, instance_index: int) -> dict[str, float]:
    """
    User coordinates of a named instance.

    Raises:
        InvalidCoordinatesError: Font has no fvar
        ArgumentError: Index out of range
    """
    if font.fvar is None:
        raise InvalidCoordinatesError("Font is not a variable font (no fvar table)")
    instances = font.fvar.instances
    if not 0 <= instance_index < len(instances):
        raise ArgumentError(
            f"Named instance index {instance_index} out of range "
            f"({len(instances)} named instances)",
            context={"instance_index": instance_index, "count": len(instances)},
        )
    return instances[instance_index].location(font.fvar.axes)


class VariationResolver:
    """
    Dispatches a strategy to the matching generation path.

    Args:
        settings: Instancer settings passed to every generator
    """

    def __init__(self, settings: InstancerSettings | None = None) -> None:
        self.settings = settings

    def resolve(self, font: VariableFont, strategy: Strategy) -> dict[str, bytes]:
        if isinstance(strategy, PreserveStrategy):
            logger.debug(f"Preserving {font.name}")
            return font.table_map()
        if isinstance(strategy, InstanceStrategy):
            return InstanceGenerator(font, self.settings).generate(strategy.coordinates)
        if isinstance(strategy, NamedStrategy):
            coordinates = named_coordinates(font, strategy.instance_index)
            logger.debug(f"Named instance {strategy.instance_index}: {coordinates}")
            return InstanceGenerator(font, self.settings).generate(coordinates)
        raise ArgumentError(f"Unsupported strategy: {strategy!r}")


def resolve(
    font: VariableFont,
    strategy: Strategy | str,
    settings: InstancerSettings | None = None,
    **options,
) -> dict[str, bytes]:
    """
    Produce the table map for ``font`` under ``strategy``.

    Args:
        font: Source font
        strategy: Strategy value, or its name with ``options``
        settings: Instancer settings
        **options: Strategy options when ``strategy`` is a name

    Returns:
        Table tag to bytes

    Raises:
        ArgumentError: Invalid strategy or options
        InvalidCoordinatesError: Instancing a font without fvar, or a value
            out of range with clamping disabled
        InvalidFontError: A variation table is structurally broken
    """
    if isinstance(strategy, str):
        strategy = build_strategy(strategy, **options)
    return VariationResolver(settings).resolve(font, strategy)
