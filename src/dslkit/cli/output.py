"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dslkit.exceptions import DslError
from dslkit.schema.validator import ValidationIssue

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array.

        Args:
            title: Table title
            data: List of row dictionaries
            columns: Column names to display
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*[str(row.get(col, "")) for col in columns])
            console.print(table)

    def print_model_info(self, metadata: dict[str, Any]) -> None:
        """Print a model's metadata with fields and relations.

        Args:
            metadata: Output of ``OperationDispatcher.get_metadata``
        """
        if self.json_mode:
            print(json.dumps(metadata, default=str, indent=2))
            return

        console.print(f"\n[bold]Model:[/bold] {metadata['name']}")
        if metadata.get("module"):
            console.print(f"Module: {metadata['module']}")
        console.print(f"Table: {metadata['tableName']}")
        console.print(f"Primary key: {metadata['primaryKey']}")
        if metadata.get("description"):
            console.print(f"Description: {metadata['description']}")

        fields = metadata.get("fields", [])
        if fields:
            console.print(f"\n[bold]Fields ({len(fields)}):[/bold]")
            fields_table = Table(show_header=True, header_style="bold cyan")
            fields_table.add_column("Name")
            fields_table.add_column("Type")
            fields_table.add_column("Required")
            fields_table.add_column("Unique")
            fields_table.add_column("Default")

            for field in fields:
                default = field.get("default")
                fields_table.add_row(
                    field["name"],
                    field["type"],
                    "✓" if field.get("required") else "",
                    "✓" if field.get("unique") else "",
                    "" if default is None else str(default),
                )
            console.print(fields_table)

        relations = metadata.get("relations", [])
        if relations:
            console.print(f"\n[bold]Relations ({len(relations)}):[/bold]")
            rel_table = Table(show_header=True, header_style="bold cyan")
            rel_table.add_column("Name")
            rel_table.add_column("Target")
            rel_table.add_column("Type")
            rel_table.add_column("Foreign key")

            for rel in relations:
                rel_table.add_row(
                    rel["name"],
                    rel["target"],
                    rel["type"],
                    rel.get("foreignKey") or "",
                )
            console.print(rel_table)

    def print_issues(self, issues: list[ValidationIssue], cycles: list[list[str]]) -> None:
        """Print model check findings.

        Args:
            issues: Declaration problems found by the validator
            cycles: Dependency cycles, each a list of model names
        """
        if self.json_mode:
            output = {
                "valid": all(i.severity != "error" for i in issues),
                "issues": [i.to_dict() for i in issues],
                "cycles": cycles,
            }
            print(json.dumps(output, indent=2))
            return

        if not issues and not cycles:
            console.print("✓ All models are consistent", style="green")
            return
        for issue in issues:
            where = issue.model if issue.relation is None else f"{issue.model}.{issue.relation}"
            style = "red" if issue.severity == "error" else "yellow"
            console.print(f"[{style}]{issue.severity}[/{style}] {where}: {issue.message}")
        for cycle in cycles:
            console.print(f"[yellow]cycle[/yellow] {' -> '.join(cycle)}")

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message.

        Args:
            message: Success message
            details: Optional details to display
        """
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            print(json.dumps(output, default=str, indent=2))
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, DslError):
                print(json.dumps({"error": error.to_dict()}, default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            if isinstance(error, DslError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.).

        Args:
            data: Data to print
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            console.print_json(json.dumps(data, default=str))
