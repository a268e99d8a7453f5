from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd


DEFAULT_PERIOD = "last-6-months"
WEEKLY_PERIOD = "last-4-weeks"
CUSTOM_PERIOD = "custom"
PERIOD_CHOICES = ["last-4-weeks", "last-2-months", "last-6-months", "custom"]

WEEKS_IN_WINDOW = 4


@dataclass(frozen=True)
class PeriodInfo:
    type: str
    comparison_type: str
    comparison_label: str
    chart_granularity: str
    sparkline_type: str

    def as_payload(self) -> Dict[str, str]:
        data = asdict(self)
        return {
            "type": data["type"],
            "comparisonType": data["comparison_type"],
            "comparisonLabel": data["comparison_label"],
            "chartGranularity": data["chart_granularity"],
            "sparklineType": data["sparkline_type"],
        }


# Every downstream bucketing decision reads from this table; new periods go here first.
PERIOD_TABLE: Dict[str, PeriodInfo] = {
    "last-4-weeks": PeriodInfo("weekly", "wow", "WoW %", "weekly", "weekly"),
    "last-2-months": PeriodInfo("monthly", "mom", "MoM %", "monthly", "weekly"),
    "last-6-months": PeriodInfo("monthly", "qoq", "QoQ %", "monthly", "monthly"),
    "custom": PeriodInfo("monthly", "mom", "vs prev period", "monthly", "monthly"),
}
FALLBACK_PERIOD_INFO = PERIOD_TABLE[DEFAULT_PERIOD]

# Months kept before the latest data month (inclusive window of N + 1 months).
PERIOD_MONTH_SPAN = {"last-2-months": 1, "last-6-months": 5}
TARGET_DATA_POINTS = {"last-2-months": 2, "last-6-months": 6}
COMPARISON_MONTH_OFFSET = {"wow": 1, "mom": 1, "qoq": 3}

MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def resolve_period(period: Optional[str]) -> PeriodInfo:
    return PERIOD_TABLE.get(period or "", FALLBACK_PERIOD_INFO)


def boundary_period(period: Optional[str]) -> str:
    """Period whose boundary rule applies; unknown values use the default profile."""
    if period in PERIOD_TABLE:
        return period  # type: ignore[return-value]
    return DEFAULT_PERIOD


def parse_month(month: object) -> Optional[Tuple[int, int]]:
    if month is None:
        return None
    match = MONTH_RE.match(str(month).strip())
    if not match:
        return None
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        return None
    return year, mon


def shift_month(month: str, delta: int) -> Optional[str]:
    """Shift a YYYY-MM key by `delta` months, wrapping across years."""
    parsed = parse_month(month)
    if parsed is None:
        return None
    year, mon = parsed
    total = year * 12 + (mon - 1) + delta
    return f"{total // 12:04d}-{total % 12 + 1:02d}"


def month_key(ts: pd.Timestamp) -> str:
    return ts.strftime("%Y-%m")


def month_label(month: str) -> str:
    parsed = parse_month(month)
    if parsed is None:
        return str(month)
    return pd.Timestamp(year=parsed[0], month=parsed[1], day=1).strftime("%b '%y")


def week_start(ts: pd.Timestamp) -> pd.Timestamp:
    """Sunday on or before `ts`."""
    ts = pd.Timestamp(ts).normalize()
    return ts - pd.Timedelta(days=(ts.dayofweek + 1) % 7)


def weekly_buckets(latest: pd.Timestamp, count: int = WEEKS_IN_WINDOW) -> List[Tuple[pd.Timestamp, pd.Timestamp]]:
    """Consecutive Sunday-Saturday buckets ending with the week of `latest`.

    The final bucket stops at `latest`, so it is partial unless `latest` is a Saturday.
    """
    latest = pd.Timestamp(latest).normalize()
    anchor = week_start(latest)
    buckets: List[Tuple[pd.Timestamp, pd.Timestamp]] = []
    for idx in range(count):
        start = anchor - pd.Timedelta(weeks=count - 1 - idx)
        end = min(start + pd.Timedelta(days=6), latest)
        buckets.append((start, end))
    return buckets


def assign_week_bucket(dates: pd.Series, buckets: List[Tuple[pd.Timestamp, pd.Timestamp]]) -> pd.Series:
    """Bucket index per date (NaN outside the window or undated)."""
    if not buckets or dates.empty:
        return pd.Series(float("nan"), index=dates.index, dtype=float)
    first_start = buckets[0][0]
    last_end = buckets[-1][1]
    starts = dates - pd.to_timedelta((dates.dt.dayofweek + 1) % 7, unit="D")
    idx = (starts - first_start).dt.days // 7
    in_window = dates.notna() & (dates >= first_start) & (dates <= last_end)
    return idx.where(in_window).astype(float)


def comparison_windows(months: List[str], comparison_type: str) -> Tuple[List[str], List[str]]:
    """Current and previous month windows for a sorted list of months.

    wow/mom compare the latest month with the calendar month before it. qoq compares the latest
    three months with the three months before them; with fewer than three months the latest month
    is compared with the month three months earlier.
    """
    months = [m for m in months if parse_month(m) is not None]
    if not months:
        return [], []
    latest = months[-1]
    if comparison_type == "qoq":
        offset = COMPARISON_MONTH_OFFSET["qoq"]
        if len(months) >= offset:
            current = months[-offset:]
            start = current[0]
            previous = [shift_month(start, -k) for k in range(offset, 0, -1)]
        else:
            current = [latest]
            previous = [shift_month(latest, -offset)]
    else:
        current = [latest]
        previous = [shift_month(latest, -COMPARISON_MONTH_OFFSET.get(comparison_type, 1))]
    return current, [m for m in previous if m]
