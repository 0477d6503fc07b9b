#!/usr/bin/env python3
"""
cli.py

Command-line interface converting JFR recordings into collapsed stack files.

Examples:
  collapse-jfr -d <dir>      merge every .jfr/.jfr.gz below <dir>
  collapse-jfr -f <file>     convert a single recording
  collapse-jfr -d . -al "17/Sep/2020:13:03:23 +0200" 23513 -t http-nio-8080-exec-250
"""
from pathlib import Path

import click

from collapse_jfr.converter import Converter, Settings
from collapse_jfr.errors import ConfigurationError
from collapse_jfr.exporters import view_flame
from collapse_jfr.log import setup_logging
from collapse_jfr.recording import DEFAULT_STACK_DEPTH

EPILOG = """\b
Access log example:
  entry: [17/Sep/2020:13:03:23 +0200] [POST /app/request HTTP/1.1] [302] [- bytes] [23513 ms] [http-nio-8080-exec-250]
  collapse-jfr -d . -al "17/Sep/2020:13:03:23 +0200" 23513 -t http-nio-8080-exec-250
"""

_DIR = click.Path(exists=True, file_okay=False, path_type=Path)
_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


def _usage_failure(ctx, message):
    click.echo(ctx.get_help())
    click.echo(f"Error: {message}")
    ctx.exit(2)


class HelpOnUsageError(click.Command):
    """Print the full help on stdout when the arguments are unusable."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            _usage_failure(ctx, exc.format_message())


@click.command(cls=HelpOnUsageError, epilog=EPILOG,
               context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-d", "--dir", "directory", type=_DIR,
              help="Scan the directory for .jfr and .jfr.gz files and merge them.")
@click.option("-f", "--file", "file", type=_FILE, help="Convert only this file.")
@click.option("-dt", "dir_timestamps", type=_DIR, help="Same as -d <dir> -ts.")
@click.option("-ft", "file_timestamps", type=_FILE, help="Same as -f <file> -ts.")
@click.option("-ts", "--timestamps", is_flag=True,
              help="Write every sample with its timestamp to gzip files instead of aggregating.")
@click.option("-al", "--access-log", nargs=2, type=(str, int), default=None,
              metavar="DATE DURATION_MS",
              help="Keep only events of a request from the access log: end date and duration in ms.")
@click.option("-t", "--thread", help="Keep only events of this thread (case-insensitive).")
@click.option("-w", "--warm-up", type=click.IntRange(min=0), default=0, show_default=True,
              help="Seconds to omit from the beginning of the recordings.")
@click.option("-c", "--cool-down", type=click.IntRange(min=0), default=0, show_default=True,
              help="Seconds to omit from the end of the recordings.")
@click.option("-o", "--output-dir", type=click.Path(file_okay=False, writable=True, path_type=Path),
              envvar="COLLAPSE_JFR_OUTPUT_DIR", default=Path("."), show_default=True,
              help="Directory receiving the collapsed stack files.")
@click.option("-j", "--jobs", type=click.IntRange(min=1), envvar="COLLAPSE_JFR_JOBS",
              default=1, show_default=True, help="Recordings converted in parallel.")
@click.option("--jfr", "jfr_command", envvar="COLLAPSE_JFR_JFR_COMMAND", default="jfr",
              show_default=True, help="The JDK jfr tool used to read recordings.")
@click.option("--stack-depth", type=click.IntRange(min=1), default=DEFAULT_STACK_DEPTH,
              show_default=True, help="Maximum frames read per stack.")
@click.option("--filter-timestamps", is_flag=True,
              help="Apply time and thread filters to timestamped output too.")
@click.option("--utc", is_flag=True, help="Render timestamps in UTC instead of local time.")
@click.option("--preview", is_flag=True, help="Print the cpu (or wall) table as a tree when done.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx, directory, file, dir_timestamps, file_timestamps, timestamps, access_log, thread,
         warm_up, cool_down, output_dir, jobs, jfr_command, stack_depth, filter_timestamps,
         utc, preview, verbose):
    """
    Convert JFR recordings into cpu/wall/lock/alloc collapsed stack files.
    """
    sources = [
        (path, is_dir, ts)
        for path, is_dir, ts in (
            (directory, True, False),
            (file, False, False),
            (dir_timestamps, True, True),
            (file_timestamps, False, True),
        )
        if path is not None
    ]
    if not sources:
        click.echo(ctx.get_help())
        ctx.exit(1)
    if len(sources) > 1:
        _usage_failure(ctx, "Use only one of -d, -f, -dt and -ft.")
    path, is_dir, ts = sources[0]

    setup_logging(verbose)
    settings = Settings(
        path=path,
        directory=is_dir,
        timestamps=timestamps or ts,
        access_log=tuple(access_log) if access_log else None,
        thread=thread,
        warm_up=warm_up,
        cool_down=cool_down,
        output_dir=output_dir,
        jobs=jobs,
        jfr_command=jfr_command,
        stack_depth=stack_depth,
        filter_timestamps=filter_timestamps,
        utc=utc,
    )
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        report = Converter(settings).run()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"{len(report.results)} file(s) processed, {len(report.failed)} failed")
    if preview and report.context is not None:
        if len(report.context.cpu):
            view_flame.preview(report.context.cpu, "cpu")
        else:
            view_flame.preview(report.context.wall, "wall")


if __name__ == "__main__":
    main()
