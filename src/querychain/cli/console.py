# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Shared Rich console and result rendering for CLI output."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.table import Table
from rich.theme import Theme
from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

QUERYCHAIN_THEME = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "querychain": "bold magenta",
    "dim": "dim",
})

console = Console(theme=QUERYCHAIN_THEME)


def print_banner() -> None:
    """Print the querychain name and version."""
    from querychain import __version__

    console.print(f"[querychain]querychain[/querychain] [dim](v{__version__})[/dim]")
    console.print("  [dim]Copyright 2026 Firefly Software Solutions Inc. | Apache 2.0 License[/dim]\n")


def render_result(result: Any) -> None:
    """Print a query result: records and rows as a table, anything else as-is."""
    if isinstance(result, list):
        if not result:
            console.print("[dim](no rows)[/dim]")
            return
        console.print(_table(result))
        console.print(f"[dim]{len(result)} row(s)[/dim]")
        return
    if _fields(result):
        console.print(_table([result]))
        return
    console.print(repr(result))


def _table(rows: list[Any]) -> Table:
    columns = _fields(rows[0])
    table = Table(border_style="dim")
    if columns:
        for column in columns:
            table.add_column(column, style="info" if column == columns[0] else None)
        for row in rows:
            values = row if isinstance(row, dict) else {c: getattr(row, c, None) for c in columns}
            table.add_row(*(repr(values.get(c)) for c in columns))
        return table

    table.add_column("value", style="info")
    for row in rows:
        table.add_row(repr(row))
    return table


def _fields(value: Any) -> list[str]:
    if isinstance(value, dict):
        return [str(key) for key in value]
    try:
        return [prop.key for prop in inspect(type(value)).column_attrs]
    except NoInspectionAvailable:
        return []
