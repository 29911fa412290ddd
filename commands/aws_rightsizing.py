"""
aws_rightsizing.py
==================
Right-sizing queries against AWS Compute Optimizer, reshaped with a JMESPath
expression and printed as a table. Also pulls raw CPU utilization from
CloudWatch for instances you want to eyeball before acting on a recommendation.

Usage:
    python main.py rightsize run
    python main.py rightsize run --resource ebs --finding NotOptimized
    python main.py rightsize run --query 'instanceRecommendations[*].[instanceId, finding]'
    python main.py rightsize utilization --instance-id i-0abc --days 14
"""

import csv
import io
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
import jmespath
import typer
from botocore.exceptions import ClientError
from jmespath.exceptions import JMESPathError
from rich import box
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()


# ── Recommendation endpoints ──────────────────────────────────────────────────


@dataclass(frozen=True)
class RecommendationEndpoint:
    operation: str
    result_key: str
    default_query: str


ENDPOINTS: dict[str, RecommendationEndpoint] = {
    "ec2": RecommendationEndpoint(
        "get_ec2_instance_recommendations",
        "instanceRecommendations",
        "instanceRecommendations[*].{InstanceId:instanceId, "
        "CurrentType:currentInstanceType, "
        "RecommendedType:recommendationOptions[0].instanceType}",
    ),
    "ebs": RecommendationEndpoint(
        "get_ebs_volume_recommendations",
        "volumeRecommendations",
        "volumeRecommendations[*].{VolumeArn:volumeArn, "
        "CurrentType:currentConfiguration.volumeType, "
        "CurrentSize:currentConfiguration.volumeSize, "
        "RecommendedType:volumeRecommendationOptions[0].configuration.volumeType}",
    ),
    "asg": RecommendationEndpoint(
        "get_auto_scaling_group_recommendations",
        "autoScalingGroupRecommendations",
        "autoScalingGroupRecommendations[*].{GroupName:autoScalingGroupName, "
        "CurrentType:currentConfiguration.instanceType, "
        "RecommendedType:recommendationOptions[0].configuration.instanceType}",
    ),
}


def fetch_recommendations(
    resource: str,
    region: str,
    filters: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Fetch every page of recommendations for ``resource`` and merge them."""
    endpoint = ENDPOINTS[resource]
    co = boto3.client("compute-optimizer", region_name=region)
    call = getattr(co, endpoint.operation)

    kwargs: dict[str, Any] = {}
    if filters:
        kwargs["filters"] = filters

    merged: dict[str, Any] = {endpoint.result_key: [], "errors": []}
    try:
        while True:
            page = call(**kwargs)
            merged[endpoint.result_key].extend(page.get(endpoint.result_key, []))
            merged["errors"].extend(page.get("errors", []))
            token = page.get("nextToken")
            if not token:
                break
            kwargs["nextToken"] = token
    except ClientError as e:
        if e.response["Error"]["Code"] == "OptInRequiredException":
            raise RuntimeError(
                "Compute Optimizer is not enabled for this account. "
                "Opt in first: aws compute-optimizer update-enrollment-status --status Active"
            ) from e
        raise
    return merged


def apply_query(response: dict[str, Any], expression: str) -> Any:
    try:
        return jmespath.search(expression, response)
    except JMESPathError as e:
        raise ValueError(f"Invalid query expression {expression!r}: {e}") from e


def rows_from_result(result: Any) -> tuple[list[str], list[list[Any]]]:
    """Flatten a query result into (columns, rows), like ``--output table`` does."""
    if result is None or result == []:
        return [], []
    if isinstance(result, dict):
        result = [result]
    if not isinstance(result, list):
        return ["Value"], [[result]]

    if all(isinstance(item, dict) for item in result):
        columns: list[str] = []
        for item in result:
            for key in item:
                if key not in columns:
                    columns.append(key)
        return columns, [[item.get(c) for c in columns] for item in result]

    if all(isinstance(item, list) for item in result):
        width = max(len(item) for item in result)
        columns = [str(i + 1) for i in range(width)]
        return columns, [item + [None] * (width - len(item)) for item in result]

    return ["Value"], [[item] for item in result]


def _cell(value: Any) -> str:
    if value is None:
        return "[dim]None[/dim]"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def print_result_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold blue")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(_cell(v) for v in row))
    console.print(table)


def to_csv(columns: list[str], rows: list[list[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    writer.writerows(rows)
    return output.getvalue()


# ── CloudWatch utilization ────────────────────────────────────────────────────


@dataclass
class InstanceUtilization:
    instance_id: str
    average_cpu: float | None
    maximum_cpu: float | None
    datapoints: int
    period_start: str
    period_end: str


def fetch_cpu_utilization(
    instance_ids: list[str],
    region: str,
    days: int = 14,
    period: int = 3600,
) -> list[InstanceUtilization]:
    """Average and peak CPUUtilization per instance over the last ``days`` days."""
    cw = boto3.client("cloudwatch", region_name=region)
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)

    results = []
    for instance_id in instance_ids:
        datapoints = cw.get_metric_statistics(
            Namespace="AWS/EC2",
            MetricName="CPUUtilization",
            Dimensions=[{"Name": "InstanceId", "Value": instance_id}],
            StartTime=start,
            EndTime=end,
            Period=period,
            Statistics=["Average", "Maximum"],
        ).get("Datapoints", [])

        averages = [d["Average"] for d in datapoints if "Average" in d]
        maxima = [d["Maximum"] for d in datapoints if "Maximum" in d]
        results.append(
            InstanceUtilization(
                instance_id=instance_id,
                average_cpu=round(sum(averages) / len(averages), 2) if averages else None,
                maximum_cpu=round(max(maxima), 2) if maxima else None,
                datapoints=len(datapoints),
                period_start=start.isoformat(),
                period_end=end.isoformat(),
            )
        )
    return results


# ── CLI ───────────────────────────────────────────────────────────────────────


@app.command("run")
def run(
    resource: str = typer.Option(
        "ec2", "--resource", help="Recommendation type: ec2 | ebs | asg"
    ),
    query: str | None = typer.Option(
        None, "--query", "-q", help="JMESPath expression applied to the raw response"
    ),
    finding: list[str] | None = typer.Option(
        None, "--finding", help="Only return recommendations with this finding (repeatable)"
    ),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region to query"
    ),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json | csv"),
) -> None:
    """
    Show Compute Optimizer right-sizing recommendations.

    Examples:\n
        python main.py rightsize run\n
        python main.py rightsize run --resource asg --output json
    """
    resource = resource.lower()
    if resource not in ENDPOINTS:
        console.print(f"[red]Unknown resource type: {resource}[/red]")
        console.print(f"Valid options: {', '.join(ENDPOINTS.keys())}")
        raise typer.Exit(1)

    filters = [{"name": "Finding", "values": finding}] if finding else None
    try:
        response = fetch_recommendations(resource, region, filters=filters)
        result = apply_query(response, query or ENDPOINTS[resource].default_query)
    except (RuntimeError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if output == "json":
        typer.echo(json.dumps(result, indent=2, default=str))
        return

    columns, rows = rows_from_result(result)
    if output == "csv":
        typer.echo(to_csv(columns, rows))
        return

    if not rows:
        console.print("[yellow]No recommendations returned.[/yellow]")
        return
    print_result_table(f"{resource.upper()} right-sizing · {region}", columns, rows)


@app.command("utilization")
def utilization(
    instance_id: list[str] = typer.Option(..., "--instance-id", "-i", help="EC2 instance ID (repeatable)"),
    days: int = typer.Option(14, "--days", "-d", help="Look-back window in days"),
    period: int = typer.Option(3600, "--period", help="Datapoint period in seconds"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Show average and peak CPU utilization for the given instances."""
    results = fetch_cpu_utilization(instance_id, region, days=days, period=period)

    if output == "json":
        typer.echo(json.dumps([asdict(r) for r in results], indent=2, default=str))
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold blue")
    table.add_column("InstanceId", width=22)
    table.add_column("Avg CPU %", justify="right")
    table.add_column("Max CPU %", justify="right")
    table.add_column("Datapoints", justify="right")
    for r in results:
        table.add_row(
            r.instance_id,
            f"{r.average_cpu:.2f}" if r.average_cpu is not None else "[dim]N/A[/dim]",
            f"{r.maximum_cpu:.2f}" if r.maximum_cpu is not None else "[dim]N/A[/dim]",
            str(r.datapoints),
        )
    console.print(table)
    console.print(f"[dim]Last {days} days · {region}[/dim]")
