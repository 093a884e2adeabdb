"""Daily commit activity over a lookback window."""

import logging
import re
from collections import Counter
from datetime import date, timedelta
from pathlib import Path

from treestate.git.models import ActivityDay, ActivitySeries
from treestate.git.runner import run_git_checked
from treestate.lib.config import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def window_start(days: int, today: date) -> date:
    """First day of a window of `days` days ending today (inclusive)."""
    return today - timedelta(days=max(1, days) - 1)


def build_series(dates: list[str], start: date, end: date) -> ActivitySeries:
    """
    Bucket YYYY-MM-DD strings into a dense per-day series.

    Days without commits are present with count 0. Dates outside the window
    or not in YYYY-MM-DD form are ignored.
    """
    counts = Counter(d for d in dates if _DATE_PATTERN.match(d))
    series = []
    total = 0
    cursor = start
    while cursor <= end:
        key = cursor.isoformat()
        count = counts.get(key, 0)
        series.append(ActivityDay(date=key, count=count))
        total += count
        cursor += timedelta(days=1)
    return ActivitySeries(series=tuple(series), total=total)


async def load_activity(
    repo: Path,
    days: int | None = None,
    today: date | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ActivitySeries:
    """Commit counts per author date for the last `days` days across all refs."""
    days = days or config.activity_days
    end = today or date.today()
    start = window_start(days, end)

    result = await run_git_checked(
        ["log", "--all", f"--since={start.isoformat()}", "--date=short", "--pretty=format:%ad"],
        repo, config,
        timeout=config.log_timeout,
        max_output_bytes=config.history_output_bytes,
        fallback="Failed to load activity",
    )
    return build_series(result.stdout.split("\n"), start, end)
