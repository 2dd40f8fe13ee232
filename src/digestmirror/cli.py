"""CLI entry point for digestmirror."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import yaml
from pydantic import ValidationError
from rich import print as rprint
from rich.syntax import Syntax
from rich.table import Table

from digestmirror.backup import BackupPolicy
from digestmirror.config import BackupConfig, MirrorConfig, MirrorTarget, StoreConfig, load_config
from digestmirror.config.loader import DEFAULT_CONFIG_TEMPLATE
from digestmirror.digest import compute_file_digest
from digestmirror.errors import MirrorError
from digestmirror.log import configure_logging
from digestmirror.models import Outcome, ReconcileReport
from digestmirror.reconciler import FileReconciler
from digestmirror.store import create_store

EXIT_ERROR = 1
EXIT_ANOMALY = 3

app = typer.Typer(
    name="digestmirror",
    help="Keep a local file mirroring an S3 object, using a digest stored in object metadata.",
)

config_app = typer.Typer(help="Manage digestmirror configuration.")
app.add_typer(config_app, name="config")

_config: MirrorConfig | None = None


def _get_config() -> MirrorConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to digestmirror.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)
    configure_logging(_config.log_level, _config.log_format)


# Shared target overrides for sync/status
BucketOpt = Annotated[str | None, typer.Option("--bucket", "-b", help="Bucket name")]
KeyOpt = Annotated[str | None, typer.Option("--key", "-k", help="Object key")]
LocalPathOpt = Annotated[Path | None, typer.Option("--local-path", "-l", help="Local file path")]
FieldOpt = Annotated[str | None, typer.Option("--field", help="Metadata field holding the digest")]
RegionOpt = Annotated[str | None, typer.Option("--region", help="Store region")]
EndpointOpt = Annotated[str | None, typer.Option("--endpoint-url", help="S3-compatible endpoint URL")]


def _resolve_config(
    bucket: str | None,
    key: str | None,
    local_path: Path | None,
    field: str | None,
    region: str | None,
    endpoint_url: str | None,
    backup_policy: BackupPolicy | None = None,
) -> MirrorConfig:
    """Apply CLI flags on top of the loaded config."""
    cfg = _get_config()
    target = {
        k: v
        for k, v in {
            "bucket": bucket,
            "key": key,
            "local_path": local_path,
            "metadata_field": field,
        }.items()
        if v is not None
    }
    store = {k: v for k, v in {"region": region, "endpoint_url": endpoint_url}.items() if v is not None}
    backup = {"policy": backup_policy} if backup_policy is not None else {}
    try:
        return cfg.model_copy(
            update={
                "target": MirrorTarget.model_validate({**cfg.target.model_dump(), **target}),
                "store": StoreConfig.model_validate({**cfg.store.model_dump(), **store}),
                "backup": BackupConfig.model_validate({**cfg.backup.model_dump(), **backup}),
            }
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        rprint(f"[red]Error:[/red] invalid option: {problems}")
        raise typer.Exit(EXIT_ERROR)


def _build_reconciler(cfg: MirrorConfig) -> FileReconciler:
    missing = cfg.target.missing_fields()
    if missing:
        flags = ", ".join(f"--{m.replace('_', '-')}" for m in missing)
        rprint(f"[red]Error:[/red] missing target settings: {flags}")
        raise typer.Exit(EXIT_ERROR)
    try:
        store = create_store(cfg.store)
    except (ValueError, MirrorError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)
    return FileReconciler(
        store,
        cfg.target,
        backup_policy=cfg.backup.policy,
        chunk_size=cfg.chunk_size,
    )


def _short(digest: str | None) -> str:
    return f"{digest[:16]}…" if digest else "-"


def _display_report(report: ReconcileReport) -> None:
    table = Table(title=f"s3://{report.bucket}/{report.key}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Local path", str(report.local_path))
    table.add_row("Branch", report.branch.value)
    style = "red" if report.outcome is Outcome.integrity_anomaly else "green"
    table.add_row("Outcome", f"[{style}]{report.outcome.value}[/{style}]")
    table.add_row("Local digest", _short(report.local_digest))
    table.add_row("Remote digest", _short(report.remote_digest))
    if report.backup_path:
        table.add_row("Backup", str(report.backup_path))
    actions = [
        name
        for name, done in (
            ("downloaded", report.downloaded),
            ("local file written", report.local_written),
            ("uploaded", report.uploaded),
            ("metadata updated", report.metadata_updated),
        )
        if done
    ]
    table.add_row("Actions", ", ".join(actions) or "none")
    table.add_row("Duration", f"{report.duration:.2f}s")
    rprint(table)


@app.command()
def sync(
    bucket: BucketOpt = None,
    key: KeyOpt = None,
    local_path: LocalPathOpt = None,
    field: FieldOpt = None,
    region: RegionOpt = None,
    endpoint_url: EndpointOpt = None,
    backup_policy: Annotated[
        BackupPolicy | None,
        typer.Option("--backup-policy", help="What to do with an existing .bak"),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
) -> None:
    """Run one reconciliation pass."""
    cfg = _resolve_config(bucket, key, local_path, field, region, endpoint_url, backup_policy)
    reconciler = _build_reconciler(cfg)

    try:
        report = reconciler.reconcile()
    except MirrorError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        _display_report(report)

    if report.anomaly is not None:
        rprint(
            "[red]Integrity anomaly:[/red] the remote body does not match its recorded digest. "
            "Metadata was left untouched."
        )
        raise typer.Exit(EXIT_ANOMALY)


@app.command()
def status(
    bucket: BucketOpt = None,
    key: KeyOpt = None,
    local_path: LocalPathOpt = None,
    field: FieldOpt = None,
    region: RegionOpt = None,
    endpoint_url: EndpointOpt = None,
) -> None:
    """Show what the next pass would do, without changing anything."""
    cfg = _resolve_config(bucket, key, local_path, field, region, endpoint_url)
    reconciler = _build_reconciler(cfg)

    try:
        state = reconciler.inspect()
        local_digest = (
            compute_file_digest(cfg.target.local_path, cfg.chunk_size) if state.local_exists else None
        )
    except MirrorError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)

    table = Table(title=f"s3://{cfg.target.bucket}/{cfg.target.key}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Local file", "present" if state.local_exists else "absent")
    table.add_row("Remote object", "present" if state.remote_exists else "absent")
    table.add_row(f"Remote {cfg.target.metadata_field}", _short(state.remote_digest))
    table.add_row("Local digest", _short(local_digest))
    table.add_row("Next pass", state.branch.value if state.branch else "nothing to reconcile")
    rprint(table)

    if state.branch is not None and local_digest and local_digest == state.remote_digest:
        rprint("[green]In sync.[/green]")


@app.command()
def digest(
    path: Annotated[Path, typer.Argument(help="File to hash")],
) -> None:
    """Print the SHA-512 digest of a local file."""
    try:
        value = compute_file_digest(path, _get_config().chunk_size)
    except MirrorError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)
    typer.echo(f"{value}  {path}")


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.safe_dump(cfg.model_dump(mode="json"), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default digestmirror.yaml in current directory."""
    target = Path("digestmirror.yaml")
    if target.exists() and not force:
        rprint("[yellow]digestmirror.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(EXIT_ERROR)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")


if __name__ == "__main__":
    app()
