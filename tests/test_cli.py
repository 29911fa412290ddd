"""
test_cli.py
===========
Integration tests for the CLI entry point using typer CliRunner.
Mocks AWS (moto) or the command implementations to focus on CLI wiring.
"""

import json
from unittest.mock import patch

import boto3
from botocore.exceptions import ClientError
from moto import mock_aws
from typer.testing import CliRunner

from commands.aws_actions import ActionReport, ActionResult, ActionStatus
from main import app

runner = CliRunner()
REGION = "us-east-1"


def test_root_help_lists_snippets():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("rightsize", "autoscaling", "lifecycle", "cleanup", "schedule"):
        assert name in result.stdout


# ── rightsize ─────────────────────────────────────────────────────────────────


@patch("commands.aws_rightsizing.fetch_recommendations")
def test_rightsize_table(mock_fetch):
    mock_fetch.return_value = {
        "instanceRecommendations": [
            {
                "instanceId": "i-0aaa",
                "currentInstanceType": "m5.xlarge",
                "recommendationOptions": [{"instanceType": "m5.large"}],
            }
        ]
    }
    result = runner.invoke(app, ["rightsize", "run"])
    assert result.exit_code == 0
    assert "i-0aaa" in result.stdout
    assert "m5.large" in result.stdout


@patch("commands.aws_rightsizing.fetch_recommendations")
def test_rightsize_json_with_finding_filter(mock_fetch):
    mock_fetch.return_value = {"instanceRecommendations": []}
    result = runner.invoke(app, ["rightsize", "run", "--finding", "OVER_PROVISIONED", "--output", "json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == []
    assert mock_fetch.call_args.kwargs["filters"] == [{"name": "Finding", "values": ["OVER_PROVISIONED"]}]


@patch("commands.aws_rightsizing.fetch_recommendations")
def test_rightsize_empty(mock_fetch):
    mock_fetch.return_value = {"instanceRecommendations": []}
    result = runner.invoke(app, ["rightsize", "run"])
    assert result.exit_code == 0
    assert "No recommendations returned" in result.stdout


def test_rightsize_unknown_resource():
    result = runner.invoke(app, ["rightsize", "run", "--resource", "lambda"])
    assert result.exit_code == 1
    assert "Unknown resource type" in result.stdout


@patch("commands.aws_rightsizing.fetch_recommendations")
def test_rightsize_opt_in_error_exits_1(mock_fetch):
    mock_fetch.side_effect = RuntimeError("Compute Optimizer is not enabled")
    result = runner.invoke(app, ["rightsize", "run"])
    assert result.exit_code == 1
    assert "not enabled" in result.stdout


# ── autoscaling ───────────────────────────────────────────────────────────────


@mock_aws
def test_autoscaling_deploy_dry_run(tmp_path):
    config = tmp_path / "asg.json"
    config.write_text(
        json.dumps(
            {
                "AutoScalingGroupName": "web-asg",
                "LaunchTemplate": {"LaunchTemplateName": "web-template"},
                "MinSize": 0,
                "MaxSize": 2,
            }
        )
    )
    result = runner.invoke(app, ["autoscaling", "deploy", "--config", str(config)])
    assert result.exit_code == 0
    assert "DRY RUN MODE" in result.stdout


def test_autoscaling_invalid_document(tmp_path):
    config = tmp_path / "asg.yaml"
    config.write_text("AutoScalingGroupName: web-asg\n")
    result = runner.invoke(app, ["autoscaling", "deploy", "--config", str(config)])
    assert result.exit_code == 1
    assert "missing" in result.stdout


def test_autoscaling_missing_file(tmp_path):
    result = runner.invoke(app, ["autoscaling", "deploy", "--config", str(tmp_path / "none.json")])
    assert result.exit_code == 1
    assert "not found" in result.stdout


# ── lifecycle ─────────────────────────────────────────────────────────────────


@mock_aws
def test_lifecycle_apply_and_show(tmp_path):
    boto3.client("s3", region_name=REGION).create_bucket(Bucket="app-logs")
    config = tmp_path / "lifecycle.yaml"
    config.write_text(
        "Rules:\n"
        "  - ID: expire-tmp\n"
        "    Status: Enabled\n"
        "    Filter:\n"
        "      Prefix: tmp/\n"
        "    Expiration:\n"
        "      Days: 7\n"
    )

    applied = runner.invoke(
        app, ["lifecycle", "apply", "--config", str(config), "--bucket", "app-logs", "--execute"]
    )
    assert applied.exit_code == 0
    assert "1 succeeded" in applied.stdout

    shown = runner.invoke(app, ["lifecycle", "show", "--bucket", "app-logs", "--output", "json"])
    assert shown.exit_code == 0
    assert json.loads(shown.stdout)["Rules"][0]["ID"] == "expire-tmp"


@patch("commands.aws_lifecycle.apply_lifecycle")
def test_lifecycle_failure_exits_1(mock_apply, tmp_path):
    config = tmp_path / "lifecycle.json"
    config.write_text(json.dumps({"Rules": [{"ID": "x", "Status": "Enabled"}]}))
    mock_apply.return_value = ActionReport.from_results(
        "put-bucket-lifecycle-configuration",
        False,
        [ActionResult("put-bucket-lifecycle-configuration", "b", ActionStatus.FAILED, "AccessDenied")],
    )
    result = runner.invoke(app, ["lifecycle", "apply", "--config", str(config), "--bucket", "b", "--execute"])
    assert result.exit_code == 1
    assert "AccessDenied" in result.stdout


# ── cleanup ───────────────────────────────────────────────────────────────────


@mock_aws
def test_cleanup_snapshots_dry_run():
    ec2 = boto3.client("ec2", region_name=REGION)
    volume_id = ec2.create_volume(AvailabilityZone="us-east-1a", Size=8)["VolumeId"]
    ec2.create_snapshot(VolumeId=volume_id)

    result = runner.invoke(app, ["cleanup", "snapshots", "--days", "0"])
    assert result.exit_code == 0
    assert "DRY RUN MODE" in result.stdout


@mock_aws
def test_cleanup_volumes_nothing_to_do():
    result = runner.invoke(app, ["cleanup", "volumes", "--days", "365"])
    assert result.exit_code == 0
    assert "No unattached volumes" in result.stdout


def test_cleanup_bad_tag_filter():
    result = runner.invoke(app, ["cleanup", "snapshots", "--tag", "Env"])
    assert result.exit_code != 0


def test_cleanup_negative_days_rejected():
    result = runner.invoke(app, ["cleanup", "snapshots", "--days", "-5"])
    assert result.exit_code == 2


@patch("commands.aws_cleanup.find_old_snapshots")
def test_cleanup_listing_error_exits_1(mock_find):
    mock_find.side_effect = ClientError(
        {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}}, "DescribeSnapshots"
    )
    result = runner.invoke(app, ["cleanup", "snapshots"])
    assert result.exit_code == 1
    assert "Failed to list snapshots" in result.stdout


@patch("commands.aws_cleanup.find_unattached_volumes")
def test_cleanup_volume_listing_error_exits_1(mock_find):
    mock_find.side_effect = ClientError(
        {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}}, "DescribeVolumes"
    )
    result = runner.invoke(app, ["cleanup", "volumes"])
    assert result.exit_code == 1
    assert "Failed to list volumes" in result.stdout


# ── schedule ──────────────────────────────────────────────────────────────────


def test_schedule_nothing_to_do():
    result = runner.invoke(app, ["schedule", "stop"])
    assert result.exit_code == 0
    assert "Nothing to do" in result.stdout


@mock_aws
def test_schedule_stop_from_config(tmp_path):
    ec2 = boto3.client("ec2", region_name=REGION)
    instance_id = ec2.run_instances(ImageId="ami-12c6146b", MinCount=1, MaxCount=1)["Instances"][0]["InstanceId"]
    config = tmp_path / "schedule.yaml"
    config.write_text(f"ec2_instance_ids:\n  - {instance_id}\n")

    result = runner.invoke(app, ["schedule", "stop", "--config", str(config), "--execute", "--output", "json"])

    assert result.exit_code == 0
    reports = json.loads(result.stdout)
    assert reports[0]["succeeded"] == 1
    assert reports[0]["results"][0]["target"] == instance_id
    assert "InstanceId" in json.dumps(reports[0]["results"][0]["details"])


@mock_aws
def test_schedule_overlapping_selection_stops_once():
    ec2 = boto3.client("ec2", region_name=REGION)
    instance_id = ec2.run_instances(
        ImageId="ami-12c6146b",
        MinCount=1,
        MaxCount=1,
        TagSpecifications=[{"ResourceType": "instance", "Tags": [{"Key": "AutoStop", "Value": "Yes"}]}],
    )["Instances"][0]["InstanceId"]

    result = runner.invoke(
        app,
        ["schedule", "stop", "--instance-id", instance_id, "--tag", "AutoStop=Yes", "--execute", "--output", "json"],
    )

    assert result.exit_code == 0
    reports = json.loads(result.stdout)
    assert reports[0]["total"] == 1
    assert reports[0]["succeeded"] == 1
