from __future__ import annotations

import json
import logging
import sys
from collections import Counter
from typing import Any, NoReturn

import typer

from weighted_hierarchy.core.capacity.tracker import CapacityTracker
from weighted_hierarchy.core.config.engine_config import ConfigError, EngineConfig, load_and_merge
from weighted_hierarchy.core.errors import (
    HierarchyError,
    HierarchyLoadError,
    HierarchyValidationError,
    InvalidParent,
)
from weighted_hierarchy.core.io.dump_hierarchy import dump_hierarchy_yaml
from weighted_hierarchy.core.io.load_hierarchy import load_hierarchy
from weighted_hierarchy.core.kpi.contribution import compute_contribution
from weighted_hierarchy.core.lint.lint_hierarchy import lint_hierarchy
from weighted_hierarchy.core.model import Assignee, LinkedKPI, Priority, new_sub_milestone, new_task
from weighted_hierarchy.core.progress.aggregate import progress_report
from weighted_hierarchy.core.tasks.creation import create_sub_milestone, create_task
from weighted_hierarchy.core.tree.hierarchy import HierarchyTree
from weighted_hierarchy.core.validate.validate_hierarchy import summarize_hierarchy, validate_hierarchy

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr"),
) -> None:
    """Weighted hierarchy CLI."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Validate a hierarchy file and print a summary."""
    _check_format(format, "validate")
    config = _load_config(config_file)

    try:
        doc = load_hierarchy(path)
    except HierarchyLoadError as e:
        if format == "json":
            _emit_json("validate", False, errors=[e], exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    tree, errors = validate_hierarchy(doc, config=config)
    if errors or tree is None:
        if format == "json":
            _emit_json("validate", False, errors=errors, exit_code=2)
        _print_errors(errors)
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_hierarchy(tree))
        return

    counts = Counter([n.kind for n in tree.nodes_by_id.values()])
    summary = {
        "node_count": len(tree),
        "kind_counts": {k: int(v) for k, v in counts.items()},
        "root": tree.root_id,
        "progress": progress_report(tree)[tree.root_id],
    }
    _emit_json("validate", True, errors=[], exit_code=0, summary=summary)


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Lint a hierarchy (allocation, KPI links, status/progress consistency)."""
    _check_format(format, "lint")
    config = _load_config(config_file)

    try:
        doc = load_hierarchy(path)
    except HierarchyLoadError as e:
        if format == "json":
            _emit_json("lint", False, errors=[e], exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    tree, errors = validate_hierarchy(doc, config=config)
    if tree is not None:
        errors = lint_hierarchy(tree, file=doc.get("__file__"))

    if format == "json":
        _emit_json("lint", not errors, errors=list(errors), exit_code=2 if errors else 0)
    if errors:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("progress")
def progress(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    node: str | None = typer.Option(None, "--node", help="Report only this subtree"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Weighted progress for every node, bottom-up."""
    _check_format(format, "progress")
    tree = _load_tree(path, _load_config(config_file))

    try:
        report = progress_report(tree, node)
    except HierarchyError as e:
        _fail("progress", format, [e])

    if format == "json":
        _emit_json("progress", True, errors=[], exit_code=0, progress=report)

    base = tree.depth(node) if node else 0
    for n in tree.walk(node):
        indent = "  " * (tree.depth(n.id) - base)
        typer.echo(f"{indent}{n.id} [{n.kind}] {n.title} weight={n.weight:g} progress={report[n.id]:g}%")


@app.command("capacity")
def capacity(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    node: str | None = typer.Option(None, "--node", help="Parent to inspect (default: every parent)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Remaining weight and allocation state per parent."""
    _check_format(format, "capacity")
    tree = _load_tree(path, _load_config(config_file))
    tracker = CapacityTracker(tree)

    try:
        parents = [tree.get(node)] if node else [n for n in tree.walk() if not n.is_task]
        if node and parents[0].is_task:
            raise InvalidParent(message=f"task {node} has no children to allocate", node_id=node)
    except HierarchyError as e:
        _fail("capacity", format, [e])

    rows = [
        {
            "id": p.id,
            "allocated": tracker.allocated_for(p.id),
            "remaining": tracker.remaining_for(p.id),
            "state": tracker.state_for(p.id).value,
        }
        for p in parents
    ]
    if format == "json":
        _emit_json("capacity", True, errors=[], exit_code=0, capacity=rows)
    for r in rows:
        typer.echo(f"{r['id']}: allocated={r['allocated']:g} remaining={r['remaining']:g} state={r['state']}")


@app.command("tasks")
def tasks(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    root: str | None = typer.Option(None, "--root", help="Only tasks under this node"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Flat list of every task in the hierarchy (depth-first)."""
    _check_format(format, "tasks")
    tree = _load_tree(path, _load_config(config_file))

    try:
        flat = list(tree.flatten_tasks(root))
    except HierarchyError as e:
        _fail("tasks", format, [e])

    rows = [
        {
            "id": t.id,
            "parent": t.parent_id,
            "title": t.title,
            "weight": t.weight,
            "status": t.status.value,
            "progress": t.progress,
            "priority": t.task.priority.value if t.task else None,
            "dueDate": t.due_date.isoformat() if t.due_date else None,
        }
        for t in flat
    ]
    if format == "json":
        _emit_json("tasks", True, errors=[], exit_code=0, tasks=rows)
    for r in rows:
        typer.echo(
            f"{r['id']}\t{r['parent']}\t{r['weight']:g}%\t{r['status']}\t{r['progress']:g}%\t{r['title']}"
        )


@app.command("add")
def add(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML hierarchy"),
    parent: str = typer.Option(..., "--parent", help="Parent milestone/sub-milestone id"),
    kind: str = typer.Option("task", "--kind", help="Child kind: sub_milestone|task"),
    node_id: str = typer.Option(..., "--id", help="New node id"),
    title: str = typer.Option(..., "--title"),
    weight: float = typer.Option(..., "--weight", help="Share of the parent, in percent"),
    description: str = typer.Option("", "--description"),
    priority: str = typer.Option("MEDIUM", "--priority", help="LOW|MEDIUM|HIGH|CRITICAL"),
    assignees: list[str] | None = typer.Option(None, "--assignee", help="Assignee user id (repeatable)"),
    kpis: list[str] | None = typer.Option(
        None, "--kpi", help="Linked KPI as DOC:INDEX:WEIGHT[:USER] (repeatable)"
    ),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Insert a sub-milestone or task, rejecting it if the parent lacks capacity."""
    if kind not in ("sub_milestone", "task"):
        _print_errors(
            [
                HierarchyValidationError(
                    code="E_ADD_UNKNOWN_KIND",
                    message=f"unknown kind: {kind} (choose one of: sub_milestone, task)",
                    path="kind",
                )
            ]
        )
        raise typer.Exit(code=2)

    tree = _load_tree(path, _load_config(config_file))

    try:
        if kind == "sub_milestone":
            create_sub_milestone(
                tree, parent, new_sub_milestone(node_id, title, weight, description=description)
            )
        else:
            node = new_task(
                node_id,
                title,
                weight,
                description=description,
                priority=_parse_priority(priority),
                assignees=[Assignee(user_id=a) for a in assignees or []],
                linked_kpis=[_parse_kpi_option(k) for k in kpis or []],
            )
            create_task(tree, parent, node)
    except HierarchyError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    logger.info("inserted %s %s under %s", kind, node_id, parent)
    dump_hierarchy_yaml(tree, out)
    typer.echo(
        f"OK: added {node_id} under {parent} "
        f"(remaining={CapacityTracker(tree).remaining_for(parent):g}); wrote {out}"
    )


@app.command("remove")
def remove(
    path: str = typer.Argument(..., help="Path to a hierarchy file (.yaml/.yml/.json)"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML hierarchy"),
    parent: str = typer.Option(..., "--parent", help="Parent id"),
    node_id: str = typer.Option(..., "--id", help="Child id to remove with its whole subtree"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """Remove a child and everything beneath it."""
    tree = _load_tree(path, _load_config(config_file))
    try:
        removed = tree.remove_child(parent, node_id)
    except HierarchyError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    logger.info("removed %s", ", ".join(removed))
    dump_hierarchy_yaml(tree, out)
    typer.echo(f"OK: removed {len(removed)} nodes ({', '.join(removed)}); wrote {out}")


@app.command("contribution")
def contribution(
    task_weight: float = typer.Option(..., "--task-weight"),
    grade: float = typer.Option(..., "--grade", help="Completion grade 0-5 (half points allowed)"),
    kpi_weight: float = typer.Option(100.0, "--kpi-weight", help="KPI contribution weight, percent"),
    config_file: str | None = typer.Option(None, "--config-file", help="Optional YAML engine config"),
) -> None:
    """KPI achievement delta earned by a graded task."""
    config = _load_config(config_file)
    try:
        delta = compute_contribution(task_weight, grade, kpi_weight, config=config)
    except HierarchyError as e:
        _print_errors([e])
        raise typer.Exit(code=2)
    typer.echo(f"{delta:g}")


def _load_tree(path: str, config: EngineConfig) -> HierarchyTree:
    try:
        doc = load_hierarchy(path)
    except HierarchyLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    tree, errors = validate_hierarchy(doc, config=config)
    if errors or tree is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return tree


def _load_config(config_file: str | None) -> EngineConfig:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                HierarchyLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    path="config_file",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _print_errors(
            [
                HierarchyValidationError(
                    code="E_CONFIG_FILE_INVALID",
                    message=str(e),
                    path="config_file",
                )
            ]
        )
        raise typer.Exit(code=2)


def _check_format(format: str, command: str) -> None:
    if format not in ("text", "json"):
        err = HierarchyValidationError(
            code=f"E_{command.upper()}_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: text, json)",
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _parse_priority(raw: str) -> Priority:
    try:
        return Priority(raw.upper())
    except ValueError:
        _print_errors(
            [
                HierarchyValidationError(
                    code="E_ADD_UNKNOWN_PRIORITY",
                    message=f"unknown priority: {raw} (choose one of: {', '.join(p.value for p in Priority)})",
                    path="priority",
                )
            ]
        )
        raise typer.Exit(code=2)


def _parse_kpi_option(raw: str) -> LinkedKPI:
    parts = raw.split(":")
    try:
        if len(parts) not in (3, 4) or not parts[0]:
            raise ValueError(raw)
        return LinkedKPI(
            kpi_doc_id=parts[0],
            kpi_index=int(parts[1]),
            contribution_weight=float(parts[2]),
            user_id=parts[3] if len(parts) == 4 and parts[3] else None,
        )
    except ValueError:
        _print_errors(
            [
                HierarchyValidationError(
                    code="E_ADD_INVALID_KPI",
                    message=f"--kpi must look like DOC:INDEX:WEIGHT[:USER], got {raw}",
                    path="kpi",
                )
            ]
        )
        raise typer.Exit(code=2)


def _to_item(e: HierarchyError) -> dict[str, Any]:
    code = e.code
    source = "load" if isinstance(e, HierarchyLoadError) else "lint" if code.startswith("L_") else "validate"
    return {
        "code": code,
        "message": e.message,
        "node_id": e.node_id,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _emit_json(
    command: str,
    ok: bool,
    *,
    errors: list[Any],
    exit_code: int,
    **extra: Any,
) -> NoReturn:
    payload: dict[str, Any] = {
        "tool": "hierarchy",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
    }
    payload.update(extra)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _fail(command: str, format: str, errors: list[HierarchyError]) -> NoReturn:
    if format == "json":
        _emit_json(command, False, errors=errors, exit_code=2)
    _print_errors(errors)
    raise typer.Exit(code=2)


def _print_errors(errors: list[Any]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.path or "", e.node_id or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="hierarchy")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
