"""
UPLANG CLI.

Commands:
- parse: Parse a single file and print its projection (no composition)
- compose: Run the full pipeline and print the composed projection
- validate: Run the full pipeline and report the first error
- fmt: Re-emit a file as formatted UP source
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from uplang import __version__
from uplang.core.errors import UpError
from uplang.core.manifest import EngineConfig, discover_config, load_config
from uplang.core.parser import parse_file
from uplang.core.pipeline import load_document, render_document
from uplang.core.serializer import canonical_source, format_source

LOG_LEVEL_ENV_VAR = "UPLANG_LOG_LEVEL"

console = Console()

app = typer.Typer(
    help="""UPLANG – parser and composition engine for UP documents

Commands:
  • parse     Project a single file without composing it
  • compose   Compose bases/includes/overlays/patches and resolve $vars
  • validate  Check that a document composes and projects cleanly
  • fmt       Re-emit a document as formatted UP source
""",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"uplang version {__version__}")
        typer.echo(f"  Python:        {platform.python_implementation()} {platform.python_version()}")
        typer.echo(f"  Platform:      {platform.system()} {platform.release()}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        typer.echo(f"Unknown log level '{level}', using WARNING", err=True)
        numeric = logging.WARNING
    logging.basicConfig(
        level=numeric,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    logging.getLogger("uplang").setLevel(numeric)


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and environment information",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        help=f"Logging level (default: ${LOG_LEVEL_ENV_VAR} or WARNING)",
    ),
) -> None:
    """UPLANG CLI main callback for global options."""
    configure_logging(log_level or os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING"))


def _config_for(input_path: Path, config_path: Path | None) -> EngineConfig:
    if config_path is not None:
        return load_config(config_path)
    return discover_config(input_path)


def _emit(text: str, output: Path | None) -> None:
    if output is None:
        typer.echo(text, nl=False)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {output}", highlight=False)


def _fail(error: UpError) -> None:
    typer.echo(f"Error: {error}", err=True)
    for note in getattr(error, "__notes__", []):
        typer.echo(f"  {note}", err=True)
    raise typer.Exit(code=1)


@app.command()
def parse(
    input: Path = typer.Option(  # noqa: B008
        ..., "--input", "-i", exists=True, dir_okay=False, help="UP file to parse"
    ),
    format: str = typer.Option(None, "--format", "-f", help="Output format: 'json' or 'yaml'"),
) -> None:
    """
    Parse a single file and print its canonical projection.

    Directives are not applied; use `compose` for that.
    """
    try:
        config = discover_config(input)
        document = parse_file(input)
        typer.echo(render_document(document, format or config.output.format), nl=False)
    except UpError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def compose(
    input: Path = typer.Option(  # noqa: B008
        ..., "--input", "-i", exists=True, dir_okay=False, help="UP file to compose"
    ),
    format: str = typer.Option(None, "--format", "-f", help="Output format: 'json' or 'yaml'"),
    config_path: Path = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Path to uplang.toml (default: discovered)"
    ),
    output: Path = typer.Option(  # noqa: B008
        None, "--output", "-o", help="Write to this file instead of stdout"
    ),
) -> None:
    """
    Compose a document (base, includes, entries, overlays, patches), resolve
    its variables, and print the canonical projection.
    """
    try:
        config = _config_for(input, config_path)
        document = load_document(input, config)
        _emit(render_document(document, format or config.output.format), output)
    except UpError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _print_vscode_error(error: UpError) -> None:
    """Print an error in VS Code format: file:line:col: error: message"""
    diagnostic = error.diagnostic()
    if diagnostic.file:
        line = diagnostic.line or 1
        col = diagnostic.column or 1
        typer.echo(f"{diagnostic.file}:{line}:{col}: error: {diagnostic.message}", err=True)
    else:
        typer.echo(f"::error: {diagnostic.message}", err=True)


@app.command()
def validate(
    input: Path = typer.Option(  # noqa: B008
        ..., "--input", "-i", exists=True, dir_okay=False, help="UP file to validate"
    ),
    config_path: Path = typer.Option(  # noqa: B008
        None, "--config", "-c", help="Path to uplang.toml (default: discovered)"
    ),
    format: str = typer.Option(
        "human", "--format", "-f", help="Output format: 'human' or 'vscode'"
    ),
) -> None:
    """
    Parse, compose, resolve and project a document, reporting the first error.
    """
    try:
        config = _config_for(input, config_path)
        render_document(load_document(input, config), "json")
    except UpError as e:
        if format == "vscode":
            _print_vscode_error(e)
        else:
            typer.echo(f"✗ {input}", err=True)
            typer.echo(f"{e.kind}: {e}", err=True)
        raise typer.Exit(code=1)

    if format == "vscode":
        typer.echo("::notice: Validation successful")
    else:
        typer.echo(f"✓ {input} is valid")


@app.command()
def fmt(
    input: Path = typer.Option(  # noqa: B008
        ..., "--input", "-i", exists=True, dir_okay=False, help="UP file to format"
    ),
    output: Path = typer.Option(  # noqa: B008
        None, "--output", "-o", help="Write to this file instead of stdout"
    ),
    canonical: bool = typer.Option(
        False,
        "--canonical",
        help="Write the canonical projection as UP (drops annotations that do not affect it)",
    ),
    check: bool = typer.Option(
        False, "--check", help="Exit with code 1 if the file is not already formatted"
    ),
) -> None:
    """
    Re-emit a document as formatted UP source.
    """
    try:
        text = input.read_text(encoding="utf-8")
        formatted = canonical_source(text) if canonical else format_source(text)
    except UpError as e:
        _fail(e)

    if check:
        if formatted != text:
            typer.echo(f"✗ {input} is not formatted", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"✓ {input} is formatted")
        return
    _emit(formatted, output)


def main(argv: list[str] | None = None) -> None:
    app(args=argv, standalone_mode=True)


if __name__ == "__main__":
    main(sys.argv[1:])
