"""Command line interface for scafalra (``sca``)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.columns import Columns
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from scafalra import __version__
from scafalra.core import Scafalra
from scafalra.errors import ScafalraError
from scafalra.reference import RefSelector

console = Console(highlight=False)

app = typer.Typer(
    name="sca",
    help="Manage project templates cached from GitHub repositories",
    add_completion=False,
    no_args_is_help=True,
)


class _State:
    token: Optional[str] = None


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"scafalra {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="GitHub personal access token (or set GH_TOKEN / GITHUB_TOKEN)",
    ),
    debug: bool = typer.Option(False, "--debug", help="Show debug logging"),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Cache GitHub repository subtrees as templates and create projects from them."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    state.token = token


def _scafalra() -> Scafalra:
    try:
        return Scafalra(token=state.token, console=console)
    except ScafalraError as exc:
        _fail(exc)


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(str(exc))}")
    raise typer.Exit(1)


@app.command("list")
def list_templates(
    table: bool = typer.Option(False, "--table", "-t", help="Output in table format"),
) -> None:
    """List all templates."""
    with _scafalra() as sca:
        templates = sca.store.templates()
    if not templates:
        return

    if not table:
        console.print(Columns([escape(template.name) for template in templates]))
        return

    grid = Table(show_lines=False)
    grid.add_column("Name", style="bold")
    grid.add_column("URL", style="cyan")
    grid.add_column("Sub templates")
    grid.add_column("Created at", style="dim")
    for template in templates:
        grid.add_row(
            escape(template.name),
            template.url,
            ", ".join(escape(sub.name) for sub in template.sub_templates),
            template.created_at,
        )
    console.print(grid)


@app.command()
def add(
    repository: str = typer.Argument(..., help="owner/name/.../subdir?(branch|tag|commit)=..."),
    depth: int = typer.Option(0, "--depth", "-d", min=0, max=1, help="0: whole tree, 1: each child directory"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Template name (depth 0 only)"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Fetch this branch"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Fetch this tag"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Fetch this commit"),
) -> None:
    """Add templates from a GitHub repository."""
    if name and depth:
        _fail(ValueError("--name cannot be combined with --depth 1"))

    refs = [(kind, value) for kind, value in (("branch", branch), ("tag", tag), ("commit", commit)) if value]
    if len(refs) > 1:
        _fail(ValueError("Only one of --branch, --tag, --commit may be given"))
    try:
        selector = RefSelector.create(*refs[0]) if refs else None
    except ValueError as exc:
        _fail(exc)

    with _scafalra() as sca:
        try:
            sca.add(repository, depth=depth, name=name, selector=selector)
        except ScafalraError as exc:
            _fail(exc)


@app.command()
def remove(names: List[str] = typer.Argument(..., help="Template names")) -> None:
    """Remove templates and their cached directories."""
    with _scafalra() as sca:
        try:
            missing = sca.remove(names)
        except ScafalraError as exc:
            _fail(exc)
    for name in missing:
        console.print(f"[dim]{escape(name)} not found[/dim]")


@app.command()
def mv(
    name: str = typer.Argument(..., help="Current template name"),
    new_name: str = typer.Argument(..., help="New template name"),
) -> None:
    """Rename a template."""
    with _scafalra() as sca:
        try:
            sca.rename(name, new_name)
        except ScafalraError as exc:
            _fail(exc)


@app.command()
def create(
    name: str = typer.Argument(..., help="Template name or owner/name/... reference"),
    directory: Optional[Path] = typer.Argument(None, help="Destination (defaults to ./<name>)"),
    with_globs: Optional[str] = typer.Option(
        None, "--with", "-w", help="Comma separated globs copied from the template's .scafalra folder"
    ),
) -> None:
    """Copy a template into a new project directory."""
    with _scafalra() as sca:
        try:
            destination = sca.create(name, directory, with_globs=with_globs)
        except ScafalraError as exc:
            _fail(exc)
    console.print(f"[green]Project created in[/green] {escape(str(destination))}")


@app.command()
def token(value: Optional[str] = typer.Argument(None, help="Token to store")) -> None:
    """Configure or display the GitHub personal access token."""
    with _scafalra() as sca:
        try:
            current = sca.token(value)
        except ScafalraError as exc:
            _fail(exc)
    if value is None and current:
        console.print(current)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
