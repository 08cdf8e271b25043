"""HTTP server command."""

from typing import Annotated

import typer
import uvicorn

from dslkit.cli.context import CLIContext
from dslkit.cli.output import OutputFormatter
from dslkit.config import DslSettings
from dslkit.integrations.fastapi import create_app


def serve_command(
    ctx: typer.Context,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
    prefix: Annotated[str, typer.Option("--prefix", help="Endpoint path")] = "/dsl",
) -> None:
    """Serve the operation endpoint over HTTP.

    Access rules are enforced unless DSL_ENFORCE_ACCESS=false. Requests are
    anonymous unless DSL_TRUST_CALLER_HEADERS=true, which takes the caller from
    X-User-Id and X-User-Roles (only safe behind a proxy that sets them).

    Examples:

        dslkit -m models.json serve --port 8080
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        settings = DslSettings.from_env(database_url=cli_ctx.database_url, echo=cli_ctx.echo)
        dispatcher = cli_ctx.get_dispatcher(settings)
        app = create_app(dispatcher, prefix=prefix)
    except Exception as e:
        formatter.print_error(e)
        cli_ctx.close()
        raise typer.Exit(code=1)

    try:
        uvicorn.run(app, host=host, port=port)
    finally:
        cli_ctx.close()
