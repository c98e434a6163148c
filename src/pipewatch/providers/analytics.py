"""Run statistics shared by the provider clients: rates, percentiles, daily trends."""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from .models import RunOutcome, RunRecord


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values."""
    return int(math.floor(value + 0.5))


def success_rate(successes: int, total: int) -> int:
    """Whole-number percentage, 0 when there is nothing to rate."""
    return round_half_up(100 * successes / total) if total else 0


def average(values: Sequence[float]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def percentile(values: Sequence[float], p: float) -> int:
    """Nearest-rank percentile; 0 for an empty sequence."""
    if not values:
        return 0
    ordered = sorted(values)
    index = math.ceil(p / 100 * len(ordered)) - 1
    return round_half_up(ordered[max(0, min(len(ordered) - 1, index))])


def _durations(runs: Sequence[RunRecord]) -> List[float]:
    return [run.duration_seconds for run in runs if run.duration_seconds]


def _successes(runs: Sequence[RunRecord]) -> int:
    return sum(1 for run in runs if run.outcome == RunOutcome.SUCCESS)


def run_stats(runs: Sequence[RunRecord]) -> Dict[str, Any]:
    """Totals over terminal runs: count, success rate, mean, median and p95 duration."""
    completed = [run for run in runs if run.is_terminal]
    durations = _durations(completed)
    return {
        "total_runs": len(completed),
        "success_rate": success_rate(_successes(completed), len(completed)),
        "avg_duration_seconds": average(durations),
        "median_duration_seconds": percentile(durations, 50),
        "p95_duration_seconds": percentile(durations, 95),
    }


def daily_trend(
    runs: Sequence[RunRecord], days: int, now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Bucket runs by UTC start date over the last ``days`` days, oldest first.

    Every day in the range gets a point, including days without runs. Runs
    without a start time or outside the range are ignored.
    """
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    first = today - timedelta(days=days - 1)

    buckets: Dict[date, List[RunRecord]] = {
        first + timedelta(days=offset): [] for offset in range(days)
    }
    for run in runs:
        if run.started_at is None:
            continue
        day = run.started_at.astimezone(timezone.utc).date()
        if day in buckets:
            buckets[day].append(run)

    return [
        {
            "date": day.isoformat(),
            "total_runs": len(day_runs),
            "success_rate": success_rate(_successes(day_runs), len(day_runs)),
            "avg_duration_seconds": average(_durations(day_runs)),
        }
        for day, day_runs in buckets.items()
    ]


def deployment_totals(per_target: Dict[str, List[RunRecord]]) -> Dict[str, Any]:
    """Deployment counts and success rates, overall and per target."""
    deployments = sum(len(runs) for runs in per_target.values())
    successes = sum(_successes(runs) for runs in per_target.values())
    return {
        "deployments": deployments,
        "success_rate": success_rate(successes, deployments),
        "per_job": [
            {
                "job": name,
                "deployments": len(runs),
                "success_rate": success_rate(_successes(runs), len(runs)),
            }
            for name, runs in per_target.items()
        ],
    }
