"""
Main CLI entry point for vfresolve.
"""

import sys
from pathlib import Path

import click

from vfresolve import __version__
from vfresolve.core.errors import VariationError
from vfresolve.utils.logging import logger, set_verbosity


def parse_axis_values(values: tuple[str, ...]) -> dict[str, float]:
    """Parse ``tag=value`` pairs into a coordinate mapping."""
    coordinates = {}
    for item in values:
        tag, sep, value = item.partition("=")
        if not sep or not tag:
            raise click.BadParameter(f"expected TAG=VALUE, got {item!r}")
        try:
            coordinates[tag] = float(value)
        except ValueError:
            raise click.BadParameter(f"{tag}: {value!r} is not a number") from None
    return coordinates


def load_font(path: Path):
    from vfresolve.core.font_io import VariableFont

    try:
        return VariableFont.from_path(path)
    except VariationError as e:
        logger.error(e.detailed_message())
        sys.exit(1)


axis_option = click.option(
    "-a",
    "--axis",
    "axis_values",
    multiple=True,
    metavar="TAG=VALUE",
    help="Axis coordinate in user space (repeatable).",
)


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Log decoding detail.")
@click.option("-q", "--quiet", is_flag=True, help="Log warnings and errors only.")
def cli(verbose, quiet):
    """Resolve OpenType font variations into static fonts."""
    set_verbosity(verbose, quiet)


@cli.command()
@click.argument("font_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def axes(font_path):
    """List variation axes and named instances."""
    font = load_font(font_path)
    if font.fvar is None:
        logger.error(f"{font_path.name} is not a variable font")
        sys.exit(1)

    for axis in font.fvar.axes:
        hidden = " (hidden)" if axis.hidden else ""
        click.echo(
            f"{axis.tag}: {axis.min_value:g} .. {axis.default_value:g} .. "
            f"{axis.max_value:g}{hidden}"
        )
    for index, instance in enumerate(font.fvar.instances):
        location = instance.location(font.fvar.axes)
        coords = ", ".join(f"{tag}={value:g}" for tag, value in location.items())
        click.echo(f"[{index}] name ID {instance.subfamily_name_id}: {coords}")


@cli.command()
@click.argument("font_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@axis_option
def normalize(font_path, axis_values):
    """Print normalized coordinates for a user-space location."""
    from vfresolve.core.normalizer import normalize as do_normalize

    font = load_font(font_path)
    try:
        coords = do_normalize(font, parse_axis_values(axis_values))
    except VariationError as e:
        logger.error(e.detailed_message())
        sys.exit(1)
    for tag, value in coords.items():
        click.echo(f"{tag}={value:g}")


@cli.command()
@click.argument("font_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Output font path.",
)
@axis_option
@click.option("--named", "named_index", type=int, default=None, help="Named instance index.")
@click.option("--no-clamp", is_flag=True, help="Fail on out-of-range values instead of clamping.")
@click.option("--check", is_flag=True, help="Validate the generated instance.")
def instance(font_path, output, axis_values, named_index, no_clamp, check):
    """Write a static instance of a variable font."""
    from vfresolve.config.settings import InstancerSettings, NormalizationSettings
    from vfresolve.core.font_io import assemble_font
    from vfresolve.pipeline.resolver import resolve
    from vfresolve.pipeline.validate import validate_instance

    if named_index is not None and axis_values:
        raise click.UsageError("--named cannot be combined with --axis")

    settings = InstancerSettings(
        normalization=NormalizationSettings(clamp_coordinates=not no_clamp)
    )
    font = load_font(font_path)
    try:
        if named_index is not None:
            tables = resolve(font, "named", settings, instance_index=named_index)
        else:
            tables = resolve(
                font, "instance", settings, coordinates=parse_axis_values(axis_values)
            )
    except VariationError as e:
        logger.error(e.detailed_message())
        sys.exit(1)

    if check and not validate_instance(tables):
        sys.exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(assemble_font(tables))
    logger.info(f"Wrote {output}")


@cli.command()
@click.argument(
    "directory", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory for the generated instances.",
)
@click.option("--workers", type=int, default=4, show_default=True, help="Worker threads per font.")
@click.option("--pattern", default="*.ttf", show_default=True, help="Font file glob.")
def batch(directory, output_dir, workers, pattern):
    """Write every named instance of every variable font in DIRECTORY."""
    from vfresolve.core.font_io import iter_fonts
    from vfresolve.pipeline.batch import write_named_instances

    written = 0
    failed = 0
    for font_path in iter_fonts(directory, pattern):
        logger.info(f"--- {font_path.name} ---")
        try:
            written += len(write_named_instances(font_path, output_dir, workers=workers))
        except VariationError as e:
            logger.error(f"{font_path.name}: {e.detailed_message()}")
            failed += 1

    logger.info(f"Wrote {written} instances")
    if failed:
        logger.error(f"{failed} fonts failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
