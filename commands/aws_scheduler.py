"""
aws_scheduler.py
================
Stops or starts a fixed set of EC2 and RDS instances. Meant to be run from
cron or an EventBridge schedule (see ``lambda_handler``); there is no
scheduling logic here, only the stop/start calls.

Usage:
    python main.py schedule stop --instance-id i-0abc --db-instance-id reporting-db
    python main.py schedule start --config examples/schedule.yaml --execute
    python main.py schedule stop --tag AutoStop=Yes --execute
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any

import boto3
import typer
from rich.console import Console

from commands.aws_actions import ActionReport, print_report, run_per_item
from commands.documents import load_document, parse_tag_filters

app = typer.Typer(no_args_is_help=True)
console = Console()

ACTIONS = ("stop", "start")

# EC2 state an instance must be in for the action to apply.
EC2_SOURCE_STATE = {"stop": "running", "start": "stopped"}


@dataclass
class ScheduleTargets:
    ec2_instance_ids: list[str] = field(default_factory=list)
    rds_instance_ids: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.ec2_instance_ids or self.rds_instance_ids)


def load_schedule_targets(document: Any) -> ScheduleTargets:
    if not isinstance(document, dict):
        raise ValueError("Schedule document must be a mapping")
    ec2_ids = document.get("ec2_instance_ids") or []
    rds_ids = document.get("rds_instance_ids") or []
    if not isinstance(ec2_ids, list) or not isinstance(rds_ids, list):
        raise ValueError("ec2_instance_ids and rds_instance_ids must be lists")
    return ScheduleTargets([str(i) for i in ec2_ids], [str(i) for i in rds_ids])


def _check_action(action: str) -> None:
    if action not in ACTIONS:
        raise ValueError(f"Unknown action {action!r}; expected one of {', '.join(ACTIONS)}")


def find_tagged_instances(region: str, tags: dict[str, str], action: str) -> list[str]:
    """EC2 instance IDs carrying every tag and currently eligible for ``action``."""
    _check_action(action)
    ec2 = boto3.client("ec2", region_name=region)
    filters = [{"Name": f"tag:{k}", "Values": [v]} for k, v in tags.items()]
    filters.append({"Name": "instance-state-name", "Values": [EC2_SOURCE_STATE[action]]})

    ids = []
    for page in ec2.get_paginator("describe_instances").paginate(Filters=filters):
        for reservation in page.get("Reservations", []):
            ids.extend(i["InstanceId"] for i in reservation.get("Instances", []))
    return ids


def change_ec2_state(instance_ids: list[str], action: str, region: str, dry_run: bool) -> ActionReport:
    """One StopInstances/StartInstances request per instance."""
    _check_action(action)
    ec2 = boto3.client("ec2", region_name=region)
    call = ec2.stop_instances if action == "stop" else ec2.start_instances
    return run_per_item(
        f"{action}-instance",
        instance_ids,
        lambda instance_id: call(InstanceIds=[instance_id]),
        dry_run,
    )


def change_rds_state(db_instance_ids: list[str], action: str, region: str, dry_run: bool) -> ActionReport:
    """One StopDBInstance/StartDBInstance request per database."""
    _check_action(action)
    rds = boto3.client("rds", region_name=region)
    call = rds.stop_db_instance if action == "stop" else rds.start_db_instance
    return run_per_item(
        f"{action}-db-instance",
        db_instance_ids,
        lambda db_id: call(DBInstanceIdentifier=db_id),
        dry_run,
    )


def run_schedule(targets: ScheduleTargets, action: str, region: str, dry_run: bool) -> list[ActionReport]:
    # An ID named more than once (option, document, tag match) still gets a single call.
    ec2_ids = list(dict.fromkeys(targets.ec2_instance_ids))
    rds_ids = list(dict.fromkeys(targets.rds_instance_ids))

    reports = []
    if ec2_ids:
        reports.append(change_ec2_state(ec2_ids, action, region, dry_run))
    if rds_ids:
        reports.append(change_rds_state(rds_ids, action, region, dry_run))
    return reports


# ── Lambda entry point ────────────────────────────────────────────────────────

TRUE_STRINGS = {"true", "yes", "1", "on"}
FALSE_STRINGS = {"false", "no", "0", "off", ""}


def parse_event_flag(value: Any) -> bool:
    """Read a boolean event field; EventBridge input often carries them as strings."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise ValueError(f"Cannot read {value!r} as a boolean")
    return bool(value)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    EventBridge scheduled-rule target. Example event:

        {"action": "stop", "region": "us-east-1",
         "ec2_instance_ids": ["i-0abc"], "rds_instance_ids": ["reporting-db"]}
    """
    action = event.get("action", "")
    _check_action(action)
    region = event.get("region", "us-east-1")
    dry_run = parse_event_flag(event.get("dry_run", False))
    targets = load_schedule_targets(event)

    reports = run_schedule(targets, action, region, dry_run)
    for report in reports:
        for result in report.results:
            print(f"{result.status.value} {result.action} {result.target}: {result.message}")

    return {
        "action": action,
        "dry_run": dry_run,
        "failed": sum(r.failed for r in reports),
        "reports": [asdict(r) for r in reports],
    }


# ── CLI ───────────────────────────────────────────────────────────────────────


def _run_cli(
    action: str,
    instance_id: list[str] | None,
    db_instance_id: list[str] | None,
    config: str | None,
    tag: list[str] | None,
    region: str,
    execute: bool,
    output: str,
) -> None:
    targets = ScheduleTargets(list(instance_id or []), list(db_instance_id or []))
    try:
        if config:
            from_doc = load_schedule_targets(load_document(config))
            targets.ec2_instance_ids.extend(from_doc.ec2_instance_ids)
            targets.rds_instance_ids.extend(from_doc.rds_instance_ids)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    tags = parse_tag_filters(tag)
    if tags:
        targets.ec2_instance_ids.extend(find_tagged_instances(region, tags, action))

    if not targets:
        console.print("[yellow]Nothing to do.[/yellow]")
        return

    reports = run_schedule(targets, action, region, dry_run=not execute)

    if output == "json":
        typer.echo(json.dumps([asdict(r) for r in reports], indent=2, default=str))
    else:
        for report in reports:
            print_report(report)

    if any(r.failed > 0 for r in reports):
        raise typer.Exit(1)


@app.command("stop")
def stop(
    instance_id: list[str] | None = typer.Option(None, "--instance-id", "-i", help="EC2 instance ID (repeatable)"),
    db_instance_id: list[str] | None = typer.Option(
        None, "--db-instance-id", help="RDS DB instance identifier (repeatable)"
    ),
    config: str | None = typer.Option(None, "--config", "-c", help="Schedule document (JSON or YAML)"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Also select running EC2 instances by Key=Value"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually call AWS (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Stop the listed EC2 and RDS instances."""
    _run_cli("stop", instance_id, db_instance_id, config, tag, region, execute, output)


@app.command("start")
def start(
    instance_id: list[str] | None = typer.Option(None, "--instance-id", "-i", help="EC2 instance ID (repeatable)"),
    db_instance_id: list[str] | None = typer.Option(
        None, "--db-instance-id", help="RDS DB instance identifier (repeatable)"
    ),
    config: str | None = typer.Option(None, "--config", "-c", help="Schedule document (JSON or YAML)"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Also select stopped EC2 instances by Key=Value"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually call AWS (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Start the listed EC2 and RDS instances."""
    _run_cli("start", instance_id, db_instance_id, config, tag, region, execute, output)
