"""CLI app definition and command registration."""

import os
from typing import Annotated

import typer

from orchestrar.errors import ConfigurationError
from orchestrar.milestone import TASK_LINE_RE, count_tasks, parse_milestones_from_text, resolve_docs
from orchestrar.utils import console, err_console
from orchestrar.version import get_version


def _version_callback(value: bool):
    if value:
        console.print(get_version())
        raise typer.Exit()


app = typer.Typer(
    help="Milestone orchestrator: drives opencode sessions through implement, review, and commit.",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit.", callback=_version_callback, is_eager=True),
    ] = False,
) -> None:
    """Milestone orchestrator."""

# Register commands from submodules
from orchestrar import orchestrator as _orchestrator_mod

_orchestrator_mod.register(app)


# ============================================
# Commands
# ============================================


@app.command()
def status(
    directory: Annotated[
        str, typer.Option("--directory", "-d", help="Project root containing PRD.md, SPEC.md and PLAN.md")
    ] = ".",
) -> None:
    """Quick view of where things stand: resolved documents and PLAN progress."""
    root = os.path.abspath(os.path.expanduser(directory))
    try:
        docs = resolve_docs(root)
    except ConfigurationError as exc:
        err_console.print(f"[orchestrator] {exc}", style="bold red", markup=False)
        raise typer.Exit(code=1)

    console.print()
    console.print("=== DOCS ===", style="bold magenta")
    for label, path in docs.relative_to(root).items():
        console.print(f"  {label.upper()}: {path}", markup=False)

    with open(docs.plan, "r", encoding="utf-8") as f:
        content = f.read()

    console.print()
    console.print("=== PLAN ===", style="bold cyan")
    milestones = parse_milestones_from_text(content)
    if milestones:
        for ms in milestones:
            mark = "x" if ms["done"] == ms["total"] else " "
            console.print(f"  [{mark}] {ms['name']} ({ms['done']}/{ms['total']})", markup=False)
    else:
        for line in content.split("\n"):
            if TASK_LINE_RE.match(line):
                console.print(line.rstrip(), markup=False)

    totals = count_tasks(content)
    remaining = totals["total"] - totals["done"]
    console.print()
    if remaining:
        console.print(f"{remaining} of {totals['total']} tasks remaining.", style="yellow")
    else:
        console.print(f"All {totals['total']} tasks complete.", style="green")
    console.print()
