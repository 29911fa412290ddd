"""
aws_autoscaling.py
==================
Creates or updates an Auto Scaling group from a fixed JSON/YAML document.
The document is the CreateAutoScalingGroup request body, so anything the API
accepts (including a MixedInstancesPolicy for Spot capacity) can be expressed.

Usage:
    python main.py autoscaling deploy --config examples/asg.json
    python main.py autoscaling deploy --config examples/asg-spot.json --execute
"""

from typing import Any

import boto3
import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from commands.aws_actions import (
    ActionReport,
    ActionResult,
    ActionStatus,
    print_report,
    report_to_json,
)
from commands.documents import load_document

app = typer.Typer(no_args_is_help=True)
console = Console()

LAUNCH_SOURCES = ("LaunchTemplate", "LaunchConfigurationName", "MixedInstancesPolicy", "InstanceId")

# Keys CreateAutoScalingGroup accepts but UpdateAutoScalingGroup does not.
CREATE_ONLY_KEYS = {
    "InstanceId",
    "Tags",
    "LoadBalancerNames",
    "TargetGroupARNs",
    "LifecycleHookSpecificationList",
    "TrafficSources",
}


def validate_group_config(config: Any) -> None:
    if not isinstance(config, dict):
        raise ValueError("Auto Scaling document must be a mapping of CreateAutoScalingGroup fields")

    missing = [k for k in ("AutoScalingGroupName", "MinSize", "MaxSize") if k not in config]
    if missing:
        raise ValueError(f"Auto Scaling document is missing: {', '.join(missing)}")

    sources = [k for k in LAUNCH_SOURCES if k in config]
    if len(sources) != 1:
        raise ValueError(
            f"Exactly one launch source is required ({', '.join(LAUNCH_SOURCES)}), "
            f"got {len(sources)}"
        )

    min_size, max_size = int(config["MinSize"]), int(config["MaxSize"])
    if min_size > max_size:
        raise ValueError(f"MinSize ({min_size}) is greater than MaxSize ({max_size})")
    if "DesiredCapacity" in config:
        desired = int(config["DesiredCapacity"])
        if not min_size <= desired <= max_size:
            raise ValueError(
                f"DesiredCapacity ({desired}) must be between MinSize ({min_size}) "
                f"and MaxSize ({max_size})"
            )


def group_exists(autoscaling: Any, name: str) -> bool:
    groups = autoscaling.describe_auto_scaling_groups(AutoScalingGroupNames=[name])
    return bool(groups.get("AutoScalingGroups"))


def update_payload(config: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in config.items() if k not in CREATE_ONLY_KEYS}


def deploy_group(config: dict[str, Any], region: str, dry_run: bool) -> ActionReport:
    """Create the group when it does not exist yet, otherwise update it in place."""
    name = config["AutoScalingGroupName"]
    asg = boto3.client("autoscaling", region_name=region)
    try:
        exists = group_exists(asg, name)
        action = "update-auto-scaling-group" if exists else "create-auto-scaling-group"

        if dry_run:
            result = ActionResult(
                action, name, ActionStatus.DRY_RUN, f"DRY RUN: Would {action} {name}"
            )
        elif exists:
            asg.update_auto_scaling_group(**update_payload(config))
            result = ActionResult(action, name, ActionStatus.SUCCESS, "Group updated")
        else:
            asg.create_auto_scaling_group(**config)
            result = ActionResult(action, name, ActionStatus.SUCCESS, "Group created")
    except (BotoCoreError, ClientError) as e:
        result = ActionResult(
            "deploy-auto-scaling-group", name, ActionStatus.FAILED, f"AWS error: {e}"
        )

    return ActionReport.from_results(result.action, dry_run, [result])


# ── CLI ───────────────────────────────────────────────────────────────────────


@app.command("deploy")
def deploy(
    config: str = typer.Option(
        ..., "--config", "-c", help="Path or s3:// URI of the group document (JSON or YAML)"
    ),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually call AWS (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """
    Create or update an Auto Scaling group from a configuration document.

    Examples:\n
        python main.py autoscaling deploy --config examples/asg.json\n
        python main.py autoscaling deploy --config asg.yaml --region eu-west-1 --execute
    """
    try:
        document = load_document(config)
        validate_group_config(document)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    report = deploy_group(document, region, dry_run=not execute)

    if output == "json":
        typer.echo(report_to_json(report))
    else:
        print_report(report)

    if report.failed > 0:
        raise typer.Exit(1)
