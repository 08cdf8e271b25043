"""dslkit CLI - Main entry point."""

import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

import dslkit
from dslkit.cli.context import CLIContext, get_database_url

# Create main Typer app
app = typer.Typer(
    name="dslkit",
    help="dslkit CLI - Generic CRUD over declared models",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="DSL_DATABASE_URL",
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    models: Annotated[
        list[str] | None,
        typer.Option(
            "--models",
            "-m",
            help="Model declarations: a JSON file or an importable module. Can be repeated.",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", envvar="DSL_LOG_LEVEL", help="Logging level"),
    ] = "WARNING",
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(log_level)

    cli_ctx = CLIContext(
        database_url=get_database_url(database),
        echo=echo,
        json_output=json_output,
        model_sources=models or [],
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"dslkit v{dslkit.__version__}")


# Register command groups
from dslkit.cli.commands import data, models, serve  # noqa: E402

app.add_typer(models.app, name="models")
app.add_typer(data.app, name="data")

# Register serve as a standalone command (not a group)
app.command(name="serve")(serve.serve_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
