#!/usr/bin/env python3
"""
aws-ops-snippets
================
A catalog of small AWS snippets, each wrapping a single API call family:
right-sizing queries, Auto Scaling group deployment, S3 lifecycle uploads,
EBS snapshot/volume cleanup, and scheduled stop/start of EC2 and RDS.

Usage:
    python main.py rightsize run --resource ec2
    python main.py autoscaling deploy --config examples/asg.json --execute
    python main.py lifecycle apply --config examples/lifecycle.yaml --bucket my-logs
    python main.py cleanup snapshots --days 90 --execute
    python main.py schedule stop --config examples/schedule.yaml --execute
"""

import typer
from commands.aws_rightsizing import app as rightsize_app
from commands.aws_autoscaling import app as autoscaling_app
from commands.aws_lifecycle import app as lifecycle_app
from commands.aws_cleanup import app as cleanup_app
from commands.aws_scheduler import app as schedule_app

app = typer.Typer(
    name="aws-ops-snippets",
    help="Small, independent AWS snippets for cost and housekeeping chores.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

app.add_typer(rightsize_app,   name="rightsize",   help="Query Compute Optimizer and CloudWatch for right-sizing data.")
app.add_typer(autoscaling_app, name="autoscaling", help="Create or update an Auto Scaling group from a document.")
app.add_typer(lifecycle_app,   name="lifecycle",   help="Upload or inspect S3 lifecycle policies.")
app.add_typer(cleanup_app,     name="cleanup",     help="Delete aged EBS snapshots and unattached volumes.")
app.add_typer(schedule_app,    name="schedule",    help="Stop or start EC2 and RDS instances.")

if __name__ == "__main__":
    app()
