"""Model registry inspection commands."""

from typing import Annotated

import typer

from dslkit.cli.context import CLIContext
from dslkit.cli.output import OutputFormatter
from dslkit.schema.validator import ModelValidator

# Create models subcommand group
app = typer.Typer(help="Inspect registered models")


@app.command("list")
def models_list(
    ctx: typer.Context,
    module: Annotated[
        str | None,
        typer.Option("--module", help="Only models of this module"),
    ] = None,
) -> None:
    """List registered models."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = cli_ctx.get_registry()
        models = (
            registry.get_models_by_module(module) if module else registry.get_all_models()
        )

        if cli_ctx.json_output:
            formatter.print_data([m.key for m in models])
        else:
            table_data = [
                {
                    "Key": m.key,
                    "Origin": m.origin,
                    "Table": m.table_name,
                    "Fields": len(m.fields),
                    "Relations": len(m.relations),
                }
                for m in models
            ]
            formatter.print_table(
                f"Models ({len(models)} total)",
                table_data,
                ["Key", "Origin", "Table", "Fields", "Relations"],
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("describe")
def models_describe(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name or 'module.Name' key")],
    module: Annotated[
        str | None,
        typer.Option("--module", help="Module of the model"),
    ] = None,
) -> None:
    """Show detailed model information."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        dispatcher = cli_ctx.get_dispatcher()
        formatter.print_model_info(dispatcher.get_metadata(model_name, module))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("check")
def models_check(ctx: typer.Context) -> None:
    """Validate relations and look for dependency cycles.

    Exits with code 1 when errors are found. Warnings and cycles (including
    those formed by inverse relation pairs) are reported without failing.

    Examples:

        dslkit -m models.json models check
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = cli_ctx.get_registry()
        issues = ModelValidator(registry).validate_models()
        report = registry.check_for_cyclic_dependencies()
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()

    formatter.print_issues(issues, report.cycles)
    if any(i.severity == "error" for i in issues):
        raise typer.Exit(code=1)
