"""
aws_cleanup.py
==============
Deletes aged EBS snapshots and unattached EBS volumes. Each matching resource
gets exactly one delete call; a failure on one resource is printed and the
run continues with the next.

Usage:
    python main.py cleanup snapshots --days 90
    python main.py cleanup snapshots --days 30 --tag Environment=dev --execute
    python main.py cleanup volumes --days 7 --region eu-west-1 --execute
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from commands.aws_actions import ActionReport, print_report, report_to_json, run_per_item
from commands.documents import parse_tag_filters, tags_match

app = typer.Typer(no_args_is_help=True)
console = Console()


def cutoff_for(days: int, now: datetime | None = None) -> datetime:
    if days < 0:
        raise ValueError(f"days must be zero or positive, got {days}")
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_older_than(created: datetime, cutoff: datetime) -> bool:
    return _as_utc(created) <= cutoff


# ── Snapshots ─────────────────────────────────────────────────────────────────


def find_old_snapshots(
    region: str,
    days: int,
    tags: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Snapshots owned by this account that were started at least ``days`` days ago."""
    ec2 = boto3.client("ec2", region_name=region)
    cutoff = cutoff_for(days)
    paginator = ec2.get_paginator("describe_snapshots")

    matches = []
    for page in paginator.paginate(OwnerIds=["self"]):
        for snap in page.get("Snapshots", []):
            if is_older_than(snap["StartTime"], cutoff) and tags_match(snap, tags or {}):
                matches.append(snap)
    return matches


def delete_snapshots(snapshots: list[dict[str, Any]], region: str, dry_run: bool) -> ActionReport:
    ec2 = boto3.client("ec2", region_name=region)
    by_id = {s["SnapshotId"]: s for s in snapshots}
    return run_per_item(
        "delete-snapshot",
        list(by_id),
        lambda snapshot_id: ec2.delete_snapshot(SnapshotId=snapshot_id),
        dry_run,
        describe=lambda sid: f"{sid} (started {by_id[sid]['StartTime']:%Y-%m-%d})",
    )


# ── Volumes ───────────────────────────────────────────────────────────────────


def find_unattached_volumes(
    region: str,
    days: int,
    tags: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Volumes in the ``available`` state created at least ``days`` days ago."""
    ec2 = boto3.client("ec2", region_name=region)
    cutoff = cutoff_for(days)
    paginator = ec2.get_paginator("describe_volumes")

    matches = []
    for page in paginator.paginate(Filters=[{"Name": "status", "Values": ["available"]}]):
        for volume in page.get("Volumes", []):
            if is_older_than(volume["CreateTime"], cutoff) and tags_match(volume, tags or {}):
                matches.append(volume)
    return matches


def delete_volumes(volumes: list[dict[str, Any]], region: str, dry_run: bool) -> ActionReport:
    ec2 = boto3.client("ec2", region_name=region)
    by_id = {v["VolumeId"]: v for v in volumes}
    return run_per_item(
        "delete-volume",
        list(by_id),
        lambda volume_id: ec2.delete_volume(VolumeId=volume_id),
        dry_run,
        describe=lambda vid: f"{vid} ({by_id[vid].get('Size')} GiB {by_id[vid].get('VolumeType')})",
    )


# ── CLI ───────────────────────────────────────────────────────────────────────


def _finish(report: ActionReport, output: str) -> None:
    if output == "json":
        typer.echo(report_to_json(report))
    else:
        print_report(report)
    if report.failed > 0:
        raise typer.Exit(1)


@app.command("snapshots")
def snapshots(
    days: int = typer.Option(90, "--days", "-d", min=0, help="Minimum snapshot age in days"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Key=Value tag filter (repeatable)"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually delete (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """
    Delete EBS snapshots older than --days.

    Examples:\n
        python main.py cleanup snapshots --days 90\n
        python main.py cleanup snapshots --days 30 --tag Team=data --execute
    """
    tags = parse_tag_filters(tag)
    try:
        found = find_old_snapshots(region, days, tags)
    except (BotoCoreError, ClientError) as e:
        console.print(f"[red]Failed to list snapshots: {e}[/red]")
        raise typer.Exit(1) from e
    if not found:
        console.print(f"[green]No snapshots older than {days} days in {region}.[/green]")
        return
    console.print(f"\n[bold blue]🧹 {len(found)} snapshot(s)[/bold blue] older than {days} days\n")
    _finish(delete_snapshots(found, region, dry_run=not execute), output)


@app.command("volumes")
def volumes(
    days: int = typer.Option(7, "--days", "-d", min=0, help="Minimum volume age in days"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Key=Value tag filter (repeatable)"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually delete (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Delete unattached EBS volumes older than --days."""
    tags = parse_tag_filters(tag)
    try:
        found = find_unattached_volumes(region, days, tags)
    except (BotoCoreError, ClientError) as e:
        console.print(f"[red]Failed to list volumes: {e}[/red]")
        raise typer.Exit(1) from e
    if not found:
        console.print(f"[green]No unattached volumes older than {days} days in {region}.[/green]")
        return
    console.print(f"\n[bold blue]🧹 {len(found)} unattached volume(s)[/bold blue] older than {days} days\n")
    _finish(delete_volumes(found, region, dry_run=not execute), output)
