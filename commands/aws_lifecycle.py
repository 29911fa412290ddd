"""
aws_lifecycle.py
================
Uploads an S3 lifecycle policy document to one or more buckets, and shows the
rules a bucket currently carries.

Usage:
    python main.py lifecycle apply --config examples/lifecycle.yaml --bucket my-logs
    python main.py lifecycle apply --config policy.json --bucket a --bucket b --execute
    python main.py lifecycle show --bucket my-logs
"""

import json
from typing import Any

import boto3
import typer
from botocore.exceptions import ClientError
from rich import box
from rich.console import Console
from rich.table import Table

from commands.aws_actions import ActionReport, print_report, report_to_json, run_per_item
from commands.documents import load_document

app = typer.Typer(no_args_is_help=True)
console = Console()

RULE_STATUSES = {"Enabled", "Disabled"}


def normalize_lifecycle_document(document: Any) -> dict[str, Any]:
    """Return ``{"Rules": [...]}`` from any of the accepted document shapes."""
    if isinstance(document, list):
        rules = document
    elif isinstance(document, dict) and "LifecycleConfiguration" in document:
        rules = (document["LifecycleConfiguration"] or {}).get("Rules", [])
    elif isinstance(document, dict):
        rules = document.get("Rules", [])
    else:
        raise ValueError("Lifecycle document must be a mapping or a list of rules")

    if not rules:
        raise ValueError("Lifecycle document contains no rules")

    for i, rule in enumerate(rules):
        if not isinstance(rule, dict):
            raise ValueError(f"Rule #{i + 1} is not a mapping")
        if not rule.get("ID"):
            raise ValueError(f"Rule #{i + 1} has no ID")
        if rule.get("Status") not in RULE_STATUSES:
            raise ValueError(
                f"Rule {rule['ID']!r} has Status {rule.get('Status')!r}; "
                f"expected Enabled or Disabled"
            )
    return {"Rules": rules}


def apply_lifecycle(
    buckets: list[str],
    configuration: dict[str, Any],
    region: str,
    dry_run: bool,
) -> ActionReport:
    """One PutBucketLifecycleConfiguration request per bucket."""
    s3 = boto3.client("s3", region_name=region)

    def put(bucket: str) -> Any:
        return s3.put_bucket_lifecycle_configuration(
            Bucket=bucket, LifecycleConfiguration=configuration
        )

    return run_per_item(
        "put-bucket-lifecycle-configuration",
        buckets,
        put,
        dry_run,
        describe=lambda b: f"s3://{b} ({len(configuration['Rules'])} rule(s))",
    )


def get_lifecycle_rules(bucket: str, region: str) -> list[dict[str, Any]]:
    s3 = boto3.client("s3", region_name=region)
    try:
        return s3.get_bucket_lifecycle_configuration(Bucket=bucket).get("Rules", [])
    except ClientError as e:
        if e.response["Error"]["Code"] == "NoSuchLifecycleConfiguration":
            return []
        raise


def _describe_rule_actions(rule: dict[str, Any]) -> str:
    parts = []
    for t in rule.get("Transitions", []):
        when = f"after {t['Days']}d" if "Days" in t else f"on {str(t.get('Date', ''))[:10]}"
        parts.append(f"→ {t.get('StorageClass')} {when}")
    expiration = rule.get("Expiration", {})
    if "Days" in expiration:
        parts.append(f"expire after {expiration['Days']}d")
    noncurrent = rule.get("NoncurrentVersionExpiration", {})
    if "NoncurrentDays" in noncurrent:
        parts.append(f"expire noncurrent after {noncurrent['NoncurrentDays']}d")
    abort = rule.get("AbortIncompleteMultipartUpload", {})
    if "DaysAfterInitiation" in abort:
        parts.append(f"abort uploads after {abort['DaysAfterInitiation']}d")
    return "; ".join(parts) or "-"


def print_rules(bucket: str, rules: list[dict[str, Any]]) -> None:
    if not rules:
        console.print(f"[yellow]s3://{bucket} has no lifecycle configuration.[/yellow]")
        return
    table = Table(title=f"s3://{bucket}", box=box.ROUNDED, header_style="bold blue")
    table.add_column("ID", width=28)
    table.add_column("Status", width=10)
    table.add_column("Filter", width=24)
    table.add_column("Actions", width=60)
    for rule in rules:
        table.add_row(
            rule.get("ID", ""),
            rule.get("Status", ""),
            json.dumps(rule.get("Filter", rule.get("Prefix", {}))),
            _describe_rule_actions(rule),
        )
    console.print(table)


# ── CLI ───────────────────────────────────────────────────────────────────────


@app.command("apply")
def apply(
    config: str = typer.Option(
        ..., "--config", "-c", help="Path or s3:// URI of the lifecycle document (JSON or YAML)"
    ),
    bucket: list[str] = typer.Option(..., "--bucket", "-b", help="Target bucket (repeatable)"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    execute: bool = typer.Option(False, "--execute", help="Actually call AWS (default: dry run)"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Upload a lifecycle policy to each bucket."""
    try:
        configuration = normalize_lifecycle_document(load_document(config))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    report = apply_lifecycle(bucket, configuration, region, dry_run=not execute)

    if output == "json":
        typer.echo(report_to_json(report))
    else:
        print_report(report)

    if report.failed > 0:
        raise typer.Exit(1)


@app.command("show")
def show(
    bucket: str = typer.Option(..., "--bucket", "-b", help="Bucket to inspect"),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table | json"),
) -> None:
    """Show the lifecycle rules currently attached to a bucket."""
    try:
        rules = get_lifecycle_rules(bucket, region)
    except ClientError as e:
        console.print(f"[red]AWS error: {e}[/red]")
        raise typer.Exit(1) from e

    if output == "json":
        typer.echo(json.dumps({"Rules": rules}, indent=2, default=str))
    else:
        print_rules(bucket, rules)
