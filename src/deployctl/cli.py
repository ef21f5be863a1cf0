"""Typer-powered command line interface for ``deployctl``.

``deployctl deploy`` snapshots the address registry, runs the deployment
command once per configured target (in order, one at a time), and prints a
summary reconciled against the deployment records on disk. A failing target
never stops the run; only setup failures do.
"""
from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .archive import create_backup_set, resolve_algorithm
from .backups import BackupError, BackupRegistryError, BackupsRegistry, RegistrySnapshotter
from .config import ALLOWED_BACKUP_COMPRESSION, AppConfig, ConfigError, load_config
from .errors import FatalSetupError
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .orchestrator import (
    ResultReconciler,
    RunOrchestrator,
    RunReport,
    SummaryReport,
    SummaryStatus,
    Target,
    TargetInvoker,
    build_targets,
)
from .providers import CommandDeploymentAction
from .state import DeploymentRecordStore

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to deployctl's YAML config file.",
)
TARGET_OPTION = typer.Option(
    None,
    "--target",
    "-t",
    help="Target to process (repeatable, keeps the given order). Defaults to config targets.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit machine-readable JSON instead of tables.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Show the deployment plan without backing up or deploying anything.",
)
COMPRESSION_OPTION = typer.Option(
    None,
    "--compression",
    help="Archive compression (auto|gzip|none). Defaults to the configured value.",
)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    help="Deploy to an ordered list of targets with per-target failure isolation.",
)
targets_app = typer.Typer(help="Inspect configured deployment targets.")
config_app = typer.Typer(help="Inspect the effective configuration.")
backups_app = typer.Typer(help="Create and list backups of deployment state.")
app.add_typer(targets_app, name="targets")
app.add_typer(config_app, name="config")
app.add_typer(backups_app, name="backup")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    backups: BackupsRegistry
    records: DeploymentRecordStore


class ConsoleReporter:
    """Print per-target progress lines to a rich console."""

    def __init__(self, output: Console) -> None:
        """Store the console used for progress output."""
        self._console = output

    def attempt_started(self, target: Target) -> None:
        """Announce the deployment of *target*."""
        self._console.print(
            f"\n[bold]========== DEPLOYING TO {target.name.upper()} ==========[/bold]\n"
        )

    def attempt_succeeded(self, target: Target) -> None:
        """Report a successful attempt."""
        self._console.print(f"\n[green]✅ Successfully deployed to {target.name}[/green]\n")

    def attempt_failed(self, target: Target, reason: str) -> None:
        """Report a failed attempt with its reason."""
        self._console.print(
            f"\n[red]❌ Failed to deploy to {target.name}: {escape(reason)}[/red]\n",
            highlight=False,
        )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    logger = StructuredLogger(config.logs_dir)
    backups_registry = BackupsRegistry(config.backups_dir, config.backups.index)
    records = DeploymentRecordStore(
        config.deployments_dir,
        file_name=config.record.file_name,
        identifier_field=config.record.identifier_field,
    )
    runtime = RuntimeContext(
        config=config,
        logger=logger,
        backups=backups_registry,
        records=records,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the deployctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"deployctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]{escape(message)}[/red]", highlight=False)
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _resolve_targets(runtime: RuntimeContext, selected: Sequence[str] | None) -> tuple[Target, ...]:
    names = list(selected) if selected else list(runtime.config.targets)
    return build_targets(names)


def _render_summary(summary: SummaryReport) -> None:
    console.print("\n[bold]========== DEPLOYMENT SUMMARY ==========[/bold]\n")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Target", style="bold")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")

    if not summary.entries:
        table.add_row("(none)", "", "")
    for entry in summary.entries:
        style = "green" if entry.status is SummaryStatus.SUCCEEDED else "red"
        table.add_row(
            entry.target.name,
            f"[{style}]{entry.status.glyph}[/{style}]",
            escape(entry.detail),
        )
    console.print(table)
    console.print(
        f"{summary.succeeded} succeeded, {summary.failed} failed "
        f"({len(summary.entries)} target(s))."
    )


def _build_orchestrator(runtime: RuntimeContext, *, json_output: bool) -> RunOrchestrator:
    config = runtime.config
    snapshotter = RegistrySnapshotter(
        registry_file=config.registry_file,
        backups_dir=config.backups_dir,
        index=runtime.backups,
    )
    action = CommandDeploymentAction.from_config(
        config.action,
        cwd=config.project_root,
        stdout_to_stderr=json_output,
    )
    reporter = ConsoleReporter(err_console if json_output else console)
    invoker = TargetInvoker(action, reporter)
    return RunOrchestrator(
        snapshotter=snapshotter,
        records=runtime.records,
        invoker=invoker,
        reconciler=ResultReconciler(runtime.records),
    )


def _deploy_plan(runtime: RuntimeContext, targets: Sequence[Target]) -> dict[str, object]:
    config = runtime.config
    action = CommandDeploymentAction.from_config(config.action, cwd=config.project_root)
    registry_exists = config.registry_file.exists()
    snapshotter = RegistrySnapshotter(config.registry_file, config.backups_dir)
    return {
        "registry_file": str(config.registry_file),
        "registry_exists": registry_exists,
        "backup": str(snapshotter.destination_for()) if registry_exists else None,
        "deployments_dir": str(config.deployments_dir),
        "targets": [
            {
                "target": target.name,
                "command": action.argv_for(target.name),
                "record": str(runtime.records.path_for(target.name)),
            }
            for target in targets
        ],
    }


@app.command()
def deploy(
    ctx: typer.Context,
    target: list[str] | None = TARGET_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Back up the registry, deploy to every target in order, then summarise."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "deploy",
        args={"targets": list(target or []), "dry_run": dry_run, "json": json_output},
        target={"kind": "deployment", "scope": "targets"},
    ) as op:
        try:
            targets = _resolve_targets(runtime, target)
        except ValueError as exc:
            _command_error(op, str(exc))

        if dry_run:
            plan = _deploy_plan(runtime, targets)
            if json_output:
                console.print_json(data={"dry_run": True, "plan": plan})
            else:
                console.print(f"[yellow]Dry run[/yellow]: would deploy to {len(targets)} target(s).")
                if plan["backup"]:
                    console.print(f"Registry backup: {plan['backup']}")
                else:
                    console.print("Registry backup: skipped (registry file not found)")
                for entry in plan["targets"]:  # type: ignore[union-attr]
                    console.print(f"  {entry['target']}: {' '.join(entry['command'])}")
            op.success("Dry run complete.", changed=0, context=plan)
            return

        orchestrator = _build_orchestrator(runtime, json_output=json_output)
        try:
            report = orchestrator.run(targets)
        except FatalSetupError as exc:
            _command_error(op, f"Deployment aborted: {exc}", rc=ExitCode.ENVIRONMENT)

        for attempt in report.attempts:
            op.step(
                f"deploy.{attempt.target.name}",
                outcome=attempt.outcome.value,
                reason=attempt.reason,
                duration_ms=attempt.duration_ms,
            )

        _emit_report(report, json_output=json_output)
        backups = [str(report.backup.path)] if report.backup is not None else []
        context = report.to_dict()
        if report.interrupted:
            op.warning(
                "Deployment interrupted.",
                warnings=[f"not attempted: {t.name}" for t in report.not_attempted],
                changed=report.summary.succeeded,
                backups=backups,
                context=context,
                rc=int(ExitCode.INTERRUPTED),
            )
            raise typer.Exit(code=ExitCode.INTERRUPTED)
        if report.summary.failed:
            op.warning(
                f"Deployment finished with {report.summary.failed} failed target(s).",
                warnings=[
                    f"{entry.target.name}: {entry.detail}"
                    for entry in report.summary.entries
                    if entry.status is SummaryStatus.FAILED
                ],
                changed=report.summary.succeeded,
                backups=backups,
                context=context,
            )
            return
        op.success(
            "Deployment finished for all targets.",
            changed=report.summary.succeeded,
            backups=backups,
            context=context,
        )


def _emit_report(report: RunReport, *, json_output: bool) -> None:
    if json_output:
        console.print_json(data=report.to_dict())
        return
    if report.backup is not None:
        console.print(f"Backed up registry to {report.backup.path}")
    if report.interrupted:
        skipped = ", ".join(t.name for t in report.not_attempted) or "none"
        console.print(f"[yellow]Run interrupted.[/yellow] Not attempted: {skipped}")
    _render_summary(report.summary)


@app.command()
def summary(
    ctx: typer.Context,
    target: list[str] | None = TARGET_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Reconcile targets against deployment records without deploying."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "summary",
        args={"targets": list(target or []), "json": json_output},
        target={"kind": "deployment", "scope": "records"},
    ) as op:
        try:
            targets = _resolve_targets(runtime, target)
        except ValueError as exc:
            _command_error(op, str(exc))
        report = ResultReconciler(runtime.records).summarize(targets)
        if json_output:
            console.print_json(data=report.to_dict())
        else:
            _render_summary(report)
        op.success("Reported deployment summary.", changed=0, context=report.to_dict())


@targets_app.command("list")
def targets_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List configured targets in deployment order."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "targets list",
        args={"json": json_output},
        target={"kind": "config", "scope": "targets"},
    ) as op:
        entries = [
            {
                "position": target.position,
                "target": target.name,
                "record": str(runtime.records.path_for(target.name)),
                "recorded": runtime.records.exists(target.name),
            }
            for target in build_targets(runtime.config.targets)
        ]
        if json_output:
            console.print_json(data={"targets": entries})
            op.success("Reported targets as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Target", style="bold")
        table.add_column("Record")
        if not entries:
            table.add_row("", "(none)", "")
        for entry in entries:
            table.add_row(
                str(entry["position"] + 1),  # type: ignore[operator]
                str(entry["target"]),
                "present" if entry["recorded"] else "missing",
            )
        console.print(table)
        op.success("Reported targets.", changed=0)


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, (dict, list)):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


@backups_app.command("create")
def backup_create(
    ctx: typer.Context,
    compression: str | None = COMPRESSION_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Archive project state and write a database of all deployment records."""
    runtime = _get_runtime(ctx)
    config = runtime.config
    preference = compression or config.backups.compression
    with runtime.logger.operation(
        "backup create",
        args={"compression": preference, "json": json_output},
        target={"kind": "backup", "scope": "project"},
    ) as op:
        if preference not in ALLOWED_BACKUP_COMPRESSION:
            allowed = ", ".join(sorted(ALLOWED_BACKUP_COMPRESSION))
            _command_error(op, f"Unsupported compression '{preference}'. Allowed: {allowed}.")
        try:
            result = create_backup_set(
                project_root=config.project_root,
                paths=config.backups.paths,
                records=runtime.records,
                index=runtime.backups,
                algorithm=resolve_algorithm(preference),
                compression_level=config.backups.compression_level,
            )
        except BackupError as exc:
            _command_error(op, f"Backup failed: {exc}", rc=ExitCode.PROVIDER)

        if json_output:
            console.print_json(data=result.to_dict())
        else:
            for skipped in result.skipped:
                console.print(f"Skipping backup of {skipped} - path does not exist")
            for entry in result.entries:
                console.print(f"[green]✅ Backup created:[/green] {entry['path']}")
            for name, reason in result.record_errors.items():
                console.print(f"[yellow]Skipped deployment record for {name}:[/yellow] {reason}")

        backups = [str(entry["id"]) for entry in result.entries]
        if result.record_errors:
            op.warning(
                "Backup completed with unreadable deployment records.",
                warnings=[f"{name}: {reason}" for name, reason in result.record_errors.items()],
                changed=len(result.entries),
                backups=backups,
                context=result.to_dict(),
            )
            return
        op.success(
            "Backup completed.",
            changed=len(result.entries),
            backups=backups,
            context=result.to_dict(),
        )


@backups_app.command("list")
def backup_list(
    ctx: typer.Context,
    kind: str | None = typer.Option(
        None,
        "--kind",
        help="Only show entries of this kind (registry-snapshot|archive|deployment-db).",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """List entries recorded in the backups index."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "backup list",
        args={"kind": kind, "json": json_output},
        target={"kind": "backup", "scope": "index"},
    ) as op:
        try:
            entries = runtime.backups.list_entries(kind=kind)
        except BackupRegistryError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)

        if json_output:
            console.print_json(data={"backups": entries})
            op.success("Reported backups as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="bold")
        table.add_column("Kind")
        table.add_column("Created")
        table.add_column("Path", overflow="fold")
        if not entries:
            table.add_row("(none)", "", "", "")
        for entry in entries:
            table.add_row(
                str(entry.get("id", "")),
                str(entry.get("kind", "")),
                str(entry.get("created_at", "")),
                str(entry.get("path", "")),
            )
        console.print(table)
        op.success("Reported backups.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
