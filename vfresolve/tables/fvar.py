"""
fvar (font variations) table decoder.
"""

from dataclasses import dataclass

from vfresolve.core.errors import InvalidFontError
from vfresolve.utils.binary import BinaryReader

AXIS_RECORD_SIZE = 20
HIDDEN_AXIS = 0x0001


@dataclass(frozen=True)
class Axis:
    """Variation axis declared in fvar."""

    tag: str
    min_value: float
    default_value: float
    max_value: float
    flags: int = 0
    name_id: int = 0

    @property
    def hidden(self) -> bool:
        return bool(self.flags & HIDDEN_AXIS)


@dataclass(frozen=True)
class NamedInstance:
    """Predefined design-space location stored in fvar."""

    subfamily_name_id: int
    coordinates: tuple[float, ...]
    flags: int = 0
    postscript_name_id: int | None = None

    def location(self, axes: tuple[Axis, ...]) -> dict[str, float]:
        """Map positional coordinates onto axis tags."""
        return {axis.tag: value for axis, value in zip(axes, self.coordinates)}


@dataclass(frozen=True)
class Fvar:
    """Decoded fvar table: axes in declaration order plus named instances."""

    axes: tuple[Axis, ...]
    instances: tuple[NamedInstance, ...]

    @property
    def axis_tags(self) -> tuple[str, ...]:
        return tuple(axis.tag for axis in self.axes)

    @classmethod
    def decode(cls, data: bytes) -> "Fvar":
        reader = BinaryReader(data, table="fvar")
        major = reader.uint16("majorVersion")
        reader.uint16("minorVersion")
        if major != 1:
            raise InvalidFontError(
                f"fvar: unsupported version {major}", context={"version": major}
            )
        axes_offset = reader.uint16("axesArrayOffset")
        reader.uint16("reserved")
        axis_count = reader.uint16("axisCount")
        axis_size = reader.uint16("axisSize")
        instance_count = reader.uint16("instanceCount")
        instance_size = reader.uint16("instanceSize")

        if axis_size != AXIS_RECORD_SIZE:
            raise InvalidFontError(
                f"fvar: axis record size {axis_size}, expected {AXIS_RECORD_SIZE}",
                context={"axis_size": axis_size},
            )
        if instance_count and instance_size not in (
            axis_count * 4 + 4,
            axis_count * 4 + 6,
        ):
            raise InvalidFontError(
                f"fvar: instance record size {instance_size} does not match "
                f"{axis_count} axes",
                context={"instance_size": instance_size, "axis_count": axis_count},
            )

        reader.seek(axes_offset)
        reader.require(axis_count * axis_size, "axis records")
        axes = []
        for _ in range(axis_count):
            tag = reader.tag("axisTag")
            min_value = reader.fixed("minValue")
            default_value = reader.fixed("defaultValue")
            max_value = reader.fixed("maxValue")
            flags = reader.uint16("flags")
            name_id = reader.uint16("axisNameID")
            if not min_value <= default_value <= max_value:
                raise InvalidFontError(
                    f"fvar: axis {tag!r} has min/default/max "
                    f"{min_value}/{default_value}/{max_value} out of order",
                    context={"axis": tag},
                )
            axes.append(
                Axis(tag, min_value, default_value, max_value, flags, name_id)
            )

        reader.require(instance_count * instance_size, "instance records")
        instances = []
        for _ in range(instance_count):
            name_id = reader.uint16("subfamilyNameID")
            flags = reader.uint16("flags")
            coords = tuple(reader.fixed("coordinate") for _ in range(axis_count))
            ps_name_id = None
            if instance_size == axis_count * 4 + 6:
                ps_name_id = reader.uint16("postScriptNameID")
            instances.append(NamedInstance(name_id, coords, flags, ps_name_id))

        return cls(tuple(axes), tuple(instances))
