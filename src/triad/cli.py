from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from triad.docs.openapi import to_json, to_openapi, to_yaml
from triad.domain.errors import ContractDefinitionError
from triad.domain.models import EndpointContract


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


def load_contracts(target: str) -> list[EndpointContract]:
    """
    Resolve "package.module:attr" to contracts.

    attr may be a sequence of contracts, a single contract, anything with a
    `contracts` attribute (e.g. a Router), or a zero-arg callable returning one
    of those.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"Expected MODULE:ATTR, got: {target}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import {module_name}: {exc}") from exc

    obj: Any = module
    for part in attr.split("."):
        if not hasattr(obj, part):
            raise typer.BadParameter(f"{module_name} has no attribute {attr}")
        obj = getattr(obj, part)

    if callable(obj) and not isinstance(obj, EndpointContract):
        try:
            obj = obj()
        except TypeError as exc:
            raise typer.BadParameter(f"{target} must be callable without arguments: {exc}") from exc
    if hasattr(obj, "contracts"):
        obj = obj.contracts
    if isinstance(obj, EndpointContract):
        obj = [obj]

    contracts = list(obj)
    bad = [c for c in contracts if not isinstance(c, EndpointContract)]
    if bad:
        raise typer.BadParameter(f"{target} contains non-contract values: {bad[0]!r}")
    return contracts


def _inputs_label(c: EndpointContract) -> str:
    parts = []
    for d in c.all_inputs:
        mark = "?" if d.optional else ""
        parts.append(f"{d.kind}:{d.name}{mark}")
    return ", ".join(parts) or "-"


@app.command()
def routes(
    target: str = typer.Argument(..., help="Contracts to load, as MODULE:ATTR"),
) -> None:
    contracts = load_contracts(target)

    console.print(f"[bold]Contracts:[/bold] {len(contracts)}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH", no_wrap=True)
    table.add_column("NAME", no_wrap=True)
    table.add_column("INPUTS")
    table.add_column("OUT", no_wrap=True)
    table.add_column("ERR", no_wrap=True)

    for c in sorted(contracts, key=lambda x: (x.path_template(), x.method)):
        table.add_row(
            c.method,
            c.path_template(),
            c.name or "-",
            _inputs_label(c),
            str(c.output.status_code),
            str(c.error.status_code),
        )

    console.print(table)


@app.command()
def docs(
    target: str = typer.Argument(..., help="Contracts to load, as MODULE:ATTR"),
    format: str = typer.Option("yaml", help="Output format: yaml|json"),
    out: Optional[str] = typer.Option(None, help="Output path (default: print to stdout)"),
    title: str = typer.Option("API", help="info.title of the document"),
    version: str = typer.Option("1.0.0", help="info.version of the document"),
) -> None:
    fmt = format.lower().strip()
    if fmt not in ("json", "yaml"):
        raise typer.BadParameter("format must be one of: json, yaml")

    contracts = load_contracts(target)
    try:
        document = to_openapi(contracts, title=title, version=version)
    except ContractDefinitionError as exc:
        console.print(f"[bold red]error[/bold red]: {exc.message}")
        raise typer.Exit(code=1) from exc

    text = to_json(document) if fmt == "json" else to_yaml(document)

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] {fmt} document to: {out_path}")
    else:
        # plain stdout: rich markup would mangle brackets in the schema
        typer.echo(text)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
