"""
aws_actions.py
==============
Per-item outcome reporting shared by the snippets that mutate AWS resources.
Every request is issued once; a failure is recorded and the loop moves on.
"""

import json
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from rich.console import Console

console = Console()


# ── Data models ───────────────────────────────────────────────────────────────


class ActionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    DRY_RUN = "DRY_RUN"
    FAILED = "FAILED"


@dataclass
class ActionResult:
    action: str
    target: str
    status: ActionStatus
    message: str
    executed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionReport:
    action: str
    dry_run: bool
    total: int
    succeeded: int
    skipped: int
    failed: int
    results: list[ActionResult]

    @classmethod
    def from_results(
        cls, action: str, dry_run: bool, results: list[ActionResult]
    ) -> "ActionReport":
        return cls(
            action,
            dry_run,
            len(results),
            sum(1 for r in results if r.status == ActionStatus.SUCCESS),
            sum(1 for r in results if r.status == ActionStatus.SKIPPED),
            sum(1 for r in results if r.status == ActionStatus.FAILED),
            results,
        )


# ── Runner ────────────────────────────────────────────────────────────────────


def run_per_item(
    action: str,
    targets: Iterable[str],
    call: Callable[[str], Any],
    dry_run: bool,
    describe: Callable[[str], str] | None = None,
) -> ActionReport:
    """Issue ``call(target)`` once per target, catching and recording any failure."""
    results: list[ActionResult] = []
    for target in targets:
        label = describe(target) if describe else target
        if dry_run:
            results.append(
                ActionResult(action, target, ActionStatus.DRY_RUN, f"DRY RUN: Would {action} {label}")
            )
            continue
        try:
            response = call(target)
        except Exception as e:
            results.append(ActionResult(action, target, ActionStatus.FAILED, f"Error: {e}"))
            continue
        results.append(
            ActionResult(
                action,
                target,
                ActionStatus.SUCCESS,
                f"{action} {label} succeeded",
                details=_summarize_response(response),
            )
        )
    return ActionReport.from_results(action, dry_run, results)


def _summarize_response(response: Any) -> dict[str, Any]:
    # Drop the transport metadata; timestamps and other non-JSON values become strings.
    if not isinstance(response, dict):
        return {}
    body = {k: v for k, v in response.items() if k != "ResponseMetadata"}
    return json.loads(json.dumps(body, default=str))


# ── Output ───────────────────────────────────────────────────────────────────

STATUS_COLOURS = {
    ActionStatus.SUCCESS: "green",
    ActionStatus.SKIPPED: "yellow",
    ActionStatus.DRY_RUN: "blue",
    ActionStatus.FAILED: "red",
}


def print_report(report: ActionReport) -> None:
    pre = "[blue]🔵 DRY RUN MODE[/blue] — " if report.dry_run else ""
    console.print(
        f"\n{pre}[bold]{report.action}[/bold] — {report.succeeded} succeeded · "
        f"{report.skipped} skipped · {report.failed} failed\n"
    )
    for r in report.results:
        colour = STATUS_COLOURS[r.status]
        console.print(f"  [{colour}]{r.status.value}[/{colour}]: {r.target}\n  [dim]{r.message}[/dim]\n")


def report_to_json(report: ActionReport) -> str:
    return json.dumps(asdict(report), indent=2, default=str)
