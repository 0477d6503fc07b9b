"""
collapsed.py

Writes aggregated tables as FlameGraph-style collapsed stacks:

    thread;root;child;leaf <count>
"""

import logging
from pathlib import Path

import click

from collapse_jfr.events import Output

logger = logging.getLogger(__name__)

SUFFIX = ".collapsed"

# written only when not empty
_OPTIONAL_OUTPUTS = (Output.ALLOC_COUNT, Output.ALLOC_SIZE, Output.LOCK)


def file_name(output: Output) -> str:
    return f"{output.value}{SUFFIX}"


def write_table(path, table) -> Path:
    path = Path(path)
    click.echo(f"Writing to dir: {path.parent} with file name: {path.name}")
    with open(path, "w", encoding="utf-8") as out:
        for stack, value in table.items():
            out.write(f"{stack} {value}\n")
    return path


def write_context(output_dir, context) -> list:
    """Write the tables of a run, returning the paths written."""
    output_dir = Path(output_dir)
    click.echo("Saving to collapsed stack files...")
    written = []
    if context.wall_redundant():
        logger.info("Omitting wall file, has same frames as CPU")
    else:
        written.append(write_table(output_dir / file_name(Output.WALL), context.wall))
    written.append(write_table(output_dir / file_name(Output.CPU), context.cpu))
    for output in _OPTIONAL_OUTPUTS:
        table = context.table(output)
        if len(table):
            written.append(write_table(output_dir / file_name(output), table))
    return written
