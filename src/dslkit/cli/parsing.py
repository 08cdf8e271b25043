"""Input parsing utilities for CLI commands."""

import json
from pathlib import Path
from typing import Any


def read_json_file(path: str) -> Any:
    """Read a JSON document from file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON value

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with file_path.open("r") as f:
        return json.load(f)


def parse_json_option(value: str | None, name: str) -> Any:
    """Parse an inline JSON option, naming the option on failure.

    Raises:
        ValueError: If the value is not valid JSON
    """
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON for {name}: {e.msg}") from e


def parse_record_id(value: str) -> int | str:
    """Integer ids stay integers, anything else (uuids) stays a string."""
    return int(value) if value.lstrip("-").isdigit() else value


def parse_include(value: str | None) -> list[str] | None:
    """Split ``"author,tags.posts"`` into relation paths."""
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_order_by(value: str | None) -> list[dict[str, str]] | None:
    """Parse ``"status,createdAt:desc"`` into ``[{"status": "asc"}, {"createdAt": "desc"}]``."""
    if not value:
        return None
    order: list[dict[str, str]] = []
    for part in value.split(","):
        name, _, direction = part.strip().partition(":")
        if name:
            order.append({name: direction or "asc"})
    return order
