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
"""querychain CLI — inspect, explain and run query chains from the shell."""

from __future__ import annotations

import asyncio
import importlib
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml
from rich.table import Table
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from querychain.cli.console import console, print_banner, render_result
from querychain.compiler import expand_all, unwrap
from querychain.config.store import ConfigurationStore
from querychain.core.config import Config
from querychain.data.registry import EntityRegistry
from querychain.data.relational.sqlalchemy import Base, Repo
from querychain.execution import ExecutionAdapter
from querychain.expr import parse
from querychain.kernel.exceptions import QueryChainException
from querychain.logging import StructlogAdapter
from querychain.query import compile_query


class QueryChainCLI(click.Group):
    """Custom Click group that shows the querychain banner on help."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        print_banner()
        super().format_help(ctx, formatter)


@click.group(cls=QueryChainCLI)
@click.version_option(package_name="querychain")
@click.option(
    "--config-dir",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding querychain.yaml / querychain.toml.",
)
@click.option("--profile", "profiles", multiple=True, help="Active config profile(s).")
@click.option("-v", "--verbose", is_flag=True, help="Log compiled chains and executed queries to stderr.")
@click.pass_context
def cli(ctx: click.Context, config_dir: Path, profiles: tuple[str, ...], verbose: bool) -> None:
    """querychain — Rails-style query chains over SQLAlchemy."""
    config = Config.from_sources(config_dir, active_profiles=list(profiles))
    adapter = StructlogAdapter()
    adapter.configure(config)
    if verbose:
        adapter.set_level("querychain", "DEBUG")
    ctx.obj = config


_param_option = click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    metavar="NAME=VALUE",
    help="Value for pin(NAME); VALUE is parsed as YAML (42, true, [1, 2], ...).",
)
_models_option = click.option("--models", default=None, help="Module defining the mapped entities.")
_app_option = click.option("--app", default=None, help="Application namespace for entity and repo names.")


@cli.command("steps")
@click.argument("expr")
@_param_option
def steps_command(expr: str, params: tuple[str, ...]) -> None:
    """Show the canonical steps a chain expands to."""
    try:
        root, steps = unwrap(parse(expr, _parse_params(params)))
        canonical = expand_all(steps)
    except QueryChainException as exc:
        _fail(exc)

    table = Table(title=f"[querychain]{expr}[/querychain]", border_style="dim")
    table.add_column("#", style="dim")
    table.add_column("Step", style="info")
    table.add_column("Arguments")
    table.add_row("0", "root", repr(root))
    for index, step in enumerate(canonical, start=1):
        table.add_row(str(index), step.name, ", ".join(repr(arg) for arg in step.args))
    console.print(table)


@cli.command("explain")
@click.argument("expr")
@_param_option
@_models_option
@_app_option
@click.pass_obj
def explain_command(config: Config, expr: str, params: tuple[str, ...], models: str | None, app: str | None) -> None:
    """Print the SQL a chain compiles to, without touching a database."""
    adapter = _adapter(config, models, app)
    try:
        handle = compile_query(expr, _parse_params(params), adapter=adapter)
        sql = handle.explain()
    except QueryChainException as exc:
        _fail(exc)
    mode = handle.terminal.mode if handle.terminal else "handle"
    console.print(f"[dim]-- terminal: {mode}[/dim]")
    console.print(sql)


@cli.command("run")
@click.argument("expr")
@_param_option
@_models_option
@_app_option
@click.option("--database-url", required=True, envvar="QUERYCHAIN_DATABASE_URL", help="Async SQLAlchemy URL.")
@click.pass_obj
def run_command(
    config: Config,
    expr: str,
    params: tuple[str, ...],
    models: str | None,
    app: str | None,
    database_url: str,
) -> None:
    """Run a chain against a database and print the result."""
    adapter = _adapter(config, models, app)
    try:
        result = asyncio.run(_run(adapter, expr, _parse_params(params), database_url))
    except QueryChainException as exc:
        _fail(exc)
    render_result(result)


async def _run(adapter: ExecutionAdapter, expr: str, params: dict[str, Any], database_url: str) -> Any:
    engine = create_async_engine(database_url)
    try:
        repo = Repo(session_factory=async_sessionmaker(engine, expire_on_commit=False), registry=adapter.registry)
        handle = compile_query(expr, params, adapter=adapter, repo=repo)
        result = await handle.execute()
        if hasattr(result, "__aiter__"):
            result = [row async for row in result]
        return result
    finally:
        await engine.dispose()


def _adapter(config: Config, models: str | None, app: str | None) -> ExecutionAdapter:
    store = ConfigurationStore.from_config(config)
    if app:
        store.configure(app=app)
    base: Any = Base
    if models:
        _ensure_project_on_path()
        try:
            module = importlib.import_module(models)
        except ImportError as exc:
            console.print(f"[error]✗[/error] Cannot import models module {models!r}: {exc}")
            raise SystemExit(1) from None
        base = getattr(module, "Base", Base)
    registry = EntityRegistry()
    registry.scan(base, namespace=store.snapshot().namespace)
    return ExecutionAdapter(registry, store)


def _ensure_project_on_path() -> None:
    """Make the working directory (and ``src/`` in a src-layout project) importable."""
    for path in (Path.cwd(), Path("src").resolve()):
        if path.is_dir() and str(path) not in sys.path:
            sys.path.insert(0, str(path))


def _parse_params(raw: tuple[str, ...]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for item in raw:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--param")
        params[name.strip()] = yaml.safe_load(value)
    return params


def _fail(exc: QueryChainException) -> NoReturn:
    console.print(f"[error]✗ {type(exc).__name__}:[/error] {exc}")
    raise SystemExit(1)
