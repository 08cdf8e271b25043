"""Data CRUD commands.

Every command goes through the typed client executor, so the CLI exercises
the same request path as remote clients.
"""

from typing import Annotated, Any

import typer

from dslkit.cli.context import CLIContext
from dslkit.cli.output import OutputFormatter
from dslkit.cli.parsing import (
    parse_include,
    parse_json_option,
    parse_order_by,
    parse_record_id,
    read_json_file,
)

# Create data subcommand group
app = typer.Typer(help="Manage model data (CRUD operations)")

IncludeOption = Annotated[
    str | None,
    typer.Option("--include", "-i", help="Relations to load, comma separated (e.g. author,tags)"),
]


def _load_payload(data_json: str | None, from_file: str | None) -> dict[str, Any]:
    if from_file:
        data = read_json_file(from_file)
    elif data_json:
        data = parse_json_option(data_json, "data")
    else:
        raise typer.BadParameter("Either provide data as JSON string or use --from-file")
    if not isinstance(data, dict):
        raise typer.BadParameter("Record data must be a JSON object")
    return data


@app.command("find")
def data_find(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    filter_json: Annotated[
        str | None,
        typer.Option("--filter", "-w", help='Filter as JSON (e.g. \'{"status": "published"}\')'),
    ] = None,
    include: IncludeOption = None,
    page: Annotated[int | None, typer.Option("--page", help="Page number (1-based)")] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Page size")] = None,
    order_by: Annotated[
        str | None,
        typer.Option("--order-by", help="Sort fields, e.g. 'status,createdAt:desc'"),
    ] = None,
) -> None:
    """List records matching a filter.

    Examples:

        dslkit data find Widget --filter '{"status": "published"}'
        dslkit data find Widget --page 2 --limit 10 --order-by name
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        pagination: dict[str, Any] = {}
        if page is not None:
            pagination["page"] = page
        if limit is not None:
            pagination["limit"] = limit
        if sort := parse_order_by(order_by):
            pagination["orderBy"] = sort

        client = cli_ctx.get_executor().get_model(model_name)
        result = cli_ctx.run(
            client.find_many(
                parse_json_option(filter_json, "--filter"),
                parse_include(include),
                pagination or None,
            )
        )
        formatter.print_data(result)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("get")
def data_get(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
    include: IncludeOption = None,
) -> None:
    """Get a record by ID."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        client = cli_ctx.get_executor().get_model(model_name)
        record = cli_ctx.run(client.find_by_id(parse_record_id(record_id), parse_include(include)))
        formatter.print_data(record)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("create")
def data_create(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    data_json: Annotated[
        str | None,
        typer.Argument(help="Record data as JSON string"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--from-file", "-f", help="Load data from JSON file"),
    ] = None,
) -> None:
    """Create a record.

    Examples:

        dslkit data create Widget '{"name": "Sprocket", "status": "draft"}'
        dslkit data create Widget --from-file widget.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        data = _load_payload(data_json, from_file)
        client = cli_ctx.get_executor().get_model(model_name)
        record = cli_ctx.run(client.create(data))
        if cli_ctx.json_output:
            formatter.print_data(record)
        else:
            formatter.print_success("Created record", {"id": record.get("id")})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("update")
def data_update(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
    data_json: Annotated[str, typer.Argument(help="Update data as JSON string")],
) -> None:
    """Update a record.

    Examples:

        dslkit data update Widget 1 '{"status": "published"}'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        data = _load_payload(data_json, None)
        client = cli_ctx.get_executor().get_model(model_name)
        record = cli_ctx.run(client.update(parse_record_id(record_id), data))
        if cli_ctx.json_output:
            formatter.print_data(record)
        else:
            formatter.print_success("Record updated", {"id": record_id})
            formatter.print_data(record)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("delete")
def data_delete(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    record_id: Annotated[str, typer.Argument(help="Record ID")],
) -> None:
    """Delete a record."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        client = cli_ctx.get_executor().get_model(model_name)
        deleted = cli_ctx.run(client.delete(parse_record_id(record_id)))
        formatter.print_success(f"Record deleted: {record_id}", {"record": deleted})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("count")
def data_count(
    ctx: typer.Context,
    model_name: Annotated[str, typer.Argument(help="Model name")],
    filter_json: Annotated[
        str | None,
        typer.Option("--filter", "-w", help="Filter as JSON"),
    ] = None,
) -> None:
    """Count records matching a filter."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        client = cli_ctx.get_executor().get_model(model_name)
        total = cli_ctx.run(client.count(parse_json_option(filter_json, "--filter")))
        if cli_ctx.json_output:
            formatter.print_data({"model": model_name, "count": total})
        else:
            formatter.print_success(f"{model_name}: {total:,} records")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
