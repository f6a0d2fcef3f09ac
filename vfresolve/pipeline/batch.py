"""
Parallel generation of several instances of one font.
"""

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from vfresolve.config.settings import InstancerSettings
from vfresolve.core.font_io import VariableFont, assemble_font
from vfresolve.core.instancer import InstanceGenerator, VariationData
from vfresolve.utils.logging import logger


def generate_many(
    font: VariableFont,
    locations: Sequence[Mapping[str, float]],
    settings: InstancerSettings | None = None,
    *,
    workers: int = 4,
) -> list[dict[str, bytes]]:
    """
    Generate one instance per location, in parallel.

    The variation tables are decoded once and shared; each generation works
    on its own copy of the font.

    Args:
        font: Variable font
        locations: User coordinates per instance
        settings: Instancer settings
        workers: Maximum worker threads

    Returns:
        Table maps in the order of ``locations``
    """
    data = VariationData.from_font(font)
    generator = InstanceGenerator(font, settings, data=data)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        return list(executor.map(generator.generate, locations))


def named_instance_paths(font: VariableFont, output_dir: Path, stem: str) -> list[Path]:
    """Output file name per named instance: ``<stem>-<index>.<ext>``."""
    suffix = ".otf" if font.has_table("CFF2") else ".ttf"
    return [
        output_dir / f"{stem}-{index}{suffix}"
        for index in range(len(font.fvar.instances))
    ]


def write_named_instances(
    font_path: Path,
    output_dir: Path,
    settings: InstancerSettings | None = None,
    *,
    workers: int = 4,
) -> list[Path]:
    """
    Write every named instance of a variable font.

    Args:
        font_path: Variable font file
        output_dir: Destination directory, created if missing
        settings: Instancer settings
        workers: Maximum worker threads

    Returns:
        Paths written; empty when the font is static or has no named instances
    """
    font = VariableFont.from_path(font_path)
    if not font.is_variable or not font.fvar.instances:
        logger.warning(f"{font_path.name}: no named instances, skipping")
        return []

    locations = [instance.location(font.fvar.axes) for instance in font.fvar.instances]
    table_maps = generate_many(font, locations, settings, workers=workers)

    output_dir.mkdir(parents=True, exist_ok=True)
    paths = named_instance_paths(font, output_dir, font_path.stem)
    for path, tables in zip(paths, table_maps):
        path.write_bytes(assemble_font(tables))
        logger.info(f"Wrote {path.name}")
    return paths
