"""Command-line interface for binspect."""

import sys
import logging
from pathlib import Path
from contextlib import contextmanager
from collections.abc import Iterator

import click
from rich.console import Console
from rich.markup import escape
from rich.logging import RichHandler

from binspect import Binary, __version__
from binspect.errors import BinspectError
from binspect.output import OutputType, PrintOutput, to_output

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]

FILE_ARGUMENT = click.Path(exists=True, dir_okay=False, path_type=Path)


def _configure_logging(verbosity: int) -> None:
    level = LOG_LEVELS[min(verbosity, len(LOG_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Turn extraction and I/O failures into a red message and exit status 1."""
    try:
        yield
    except (BinspectError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


@click.group(context_settings={"auto_envvar_prefix": "BINSPECT"})
@click.version_option(version=__version__, prog_name="binspect")
@click.option(
    "--output",
    type=click.Choice(OutputType.choices(), case_sensitive=False),
    default="plain",
    show_default=True,
    help="Output format.",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug).")
@click.pass_context
def main(ctx: click.Context, output: str, verbose: int) -> None:
    """binspect - inspect and compare PE, ELF and Mach-O binaries."""
    _configure_logging(verbose)
    ctx.obj = to_output(OutputType.from_name(output), console)


@main.command()
@click.argument("file", type=FILE_ARGUMENT)
@click.pass_obj
def info(output: PrintOutput, file: Path) -> None:
    """Display information, such as the architecture, of a binary."""
    with _reporting_errors():
        information = Binary.load(file).information()
    output.print_information(information)


@main.command()
@click.argument("old_file", type=FILE_ARGUMENT)
@click.argument("new_file", type=FILE_ARGUMENT)
@click.pass_obj
def diff(output: PrintOutput, old_file: Path, new_file: Path) -> None:
    """Compare two binaries and list added and removed relations."""
    with _reporting_errors():
        differences = Binary.diff_files(old_file, new_file)
    output.print_differences(differences)


@main.group(name="list")
def list_group() -> None:
    """List dependencies, exports or imports of a binary."""


@list_group.command()
@click.argument("file", type=FILE_ARGUMENT)
@click.pass_obj
def dependencies(output: PrintOutput, file: Path) -> None:
    """List the libraries the binary depends on."""
    with _reporting_errors():
        records = Binary.load(file).dependencies()
    output.print_dependencies(records)


@list_group.command()
@click.argument("file", type=FILE_ARGUMENT)
@click.pass_obj
def exports(output: PrintOutput, file: Path) -> None:
    """List the functions the binary exports."""
    with _reporting_errors():
        records = Binary.load(file).exports()
    output.print_exports(records)


@list_group.command()
@click.argument("file", type=FILE_ARGUMENT)
@click.pass_obj
def imports(output: PrintOutput, file: Path) -> None:
    """List the functions the binary imports."""
    with _reporting_errors():
        records = Binary.load(file).imports()
    output.print_imports(records)


if __name__ == "__main__":
    main()
