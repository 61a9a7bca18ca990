# medtrack/services/adherence.py
from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from medtrack.core.config import TREAT_OVERDUE_AS_MISSED
from medtrack.schemas.models import (
    AdherenceInsights,
    AdherencePoint,
    AdherenceStats,
    DoseEntry,
)
from medtrack.utils.dates import (
    Clock,
    SystemClock,
    WEEKDAY_LABELS,
    js_weekday,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

# minutes since midnight, [start, end)
TIME_WINDOWS: List[Dict[str, Any]] = [
    {"start": 6 * 60, "end": 9 * 60, "label": "6-9 AM", "cue": "breakfast"},
    {"start": 9 * 60, "end": 12 * 60, "label": "9-12 AM", "cue": None},
    {"start": 12 * 60, "end": 15 * 60, "label": "12-3 PM", "cue": "lunch"},
    {"start": 15 * 60, "end": 18 * 60, "label": "3-6 PM", "cue": None},
    {"start": 18 * 60, "end": 21 * 60, "label": "6-9 PM", "cue": "dinner"},
    {"start": 21 * 60, "end": 24 * 60, "label": "9 PM-12 AM", "cue": "night"},
]

INSIGHT_LOOKBACK_DAYS = 30
STREAK_MAX_DAYS = 30


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def adherence_rate(taken: int, total: int, pending: int) -> float:
    """taken / (total - pending) * 100, or 0 when nothing is due yet."""
    due = total - pending
    if due <= 0:
        return 0.0
    return max(0.0, min(100.0, taken / due * 100))


def stddev(values: List[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def rating_for(percentage: float) -> str:
    if percentage >= 90:
        return "Excellent"
    if percentage >= 80:
        return "Good"
    if percentage >= 70:
        return "Fair"
    return "Needs Improvement"


def consistency_for(sd: float) -> str:
    if sd < 10:
        return "High"
    if sd < 20:
        return "Medium"
    return "Low"


class AdherenceAggregator:
    """
    Statistics over the dose store. Every series is a sequence of plain
    range queries so a bucket always agrees with `get_adherence_stats` over
    the same dates.
    """

    def __init__(self, store, clock: Optional[Clock] = None,
                 treat_overdue_as_missed: bool = TREAT_OVERDUE_AS_MISSED):
        self.store = store
        self.clock = clock or SystemClock()
        self.treat_overdue_as_missed = treat_overdue_as_missed

    # ---------------------------
    # range statistics
    # ---------------------------
    def _effective_status(self, entry: DoseEntry, today: date) -> str:
        if self.treat_overdue_as_missed and entry.status == "pending" and entry.date < today:
            return "missed"
        return entry.status

    def _with_effective_status(self, entries: Iterable[DoseEntry]) -> List[DoseEntry]:
        today = self.clock.today()
        out = []
        for e in entries:
            status = self._effective_status(e, today)
            out.append(e if status == e.status else e.model_copy(update={"status": status}))
        return out

    def _counts(self, entries: Iterable[DoseEntry]) -> Tuple[Dict[str, int], int]:
        today = self.clock.today()
        counts = {"taken": 0, "missed": 0, "skipped": 0, "pending": 0}
        total = 0
        for e in entries:
            total += 1
            counts[self._effective_status(e, today)] += 1
        return counts, total

    def _raw_rate(self, start: Any, end: Any) -> float:
        counts, total = self._counts(self.store.get_entries_in_range(start, end))
        return adherence_rate(counts["taken"], total, counts["pending"])

    def get_adherence_stats(self, start: Any, end: Any) -> AdherenceStats:
        counts, total = self._counts(self.store.get_entries_in_range(start, end))
        rate = adherence_rate(counts["taken"], total, counts["pending"])
        return AdherenceStats(total=total, adherence_rate=round_half_up(rate), **counts)

    def get_weekly_adherence(self) -> AdherenceStats:
        today = self.clock.today()
        return self.get_adherence_stats(today - timedelta(days=7), today)

    def get_monthly_adherence(self) -> AdherenceStats:
        today = self.clock.today()
        return self.get_adherence_stats(today - timedelta(days=30), today)

    # ---------------------------
    # series
    # ---------------------------
    def daily_series(self, days: int) -> List[AdherencePoint]:
        today = self.clock.today()
        points = []
        for i in range(days - 1, -1, -1):
            d = today - timedelta(days=i)
            points.append(AdherencePoint(label=WEEKDAY_LABELS[js_weekday(d)], start=d, end=d,
                                         pct=self._raw_rate(d, d)))
        return points

    def weekly_series(self) -> List[AdherencePoint]:
        return self.daily_series(7)

    def trend_series(self) -> List[AdherencePoint]:
        return self.daily_series(14)

    def monthly_series(self, bucket_days: int = 3, span_days: int = 30) -> List[AdherencePoint]:
        """Buckets of `bucket_days` starting 27, 24, ... 0 days ago."""
        today = self.clock.today()
        points = []
        for i in range(span_days - bucket_days, -1, -bucket_days):
            start = today - timedelta(days=i)
            end = start + timedelta(days=bucket_days - 1)
            points.append(AdherencePoint(label=start.strftime("%b %d"), start=start, end=end,
                                         pct=self._raw_rate(start, end)))
        return points

    @staticmethod
    def trend_delta(series: List[AdherencePoint]) -> int:
        """Mean of the second half minus the first half of a 14-point series."""
        if len(series) < 14:
            return 0
        first = sum(p.pct for p in series[:7]) / 7
        last = sum(p.pct for p in series[7:14]) / 7
        return round_half_up(last - first)

    # ---------------------------
    # insights
    # ---------------------------
    def streak_days(self, entries: List[DoseEntry]) -> int:
        by_date: Dict[date, List[DoseEntry]] = defaultdict(list)
        for e in entries:
            by_date[e.date].append(e)

        today = self.clock.today()
        streak = 0
        for i in range(STREAK_MAX_DAYS):
            day_entries = by_date.get(today - timedelta(days=i), [])
            if not day_entries:
                break  # nothing scheduled ends the streak
            due = [e for e in day_entries if e.status != "pending"]
            if not due or any(e.status in ("missed", "skipped") for e in due):
                break
            streak += 1
        return streak

    @staticmethod
    def window_rates(entries: List[DoseEntry]) -> List[Dict[str, Any]]:
        buckets = [{**w, "taken": 0, "due": 0} for w in TIME_WINDOWS]
        for e in entries:
            mins = time_to_minutes(e.time)
            if mins is None or e.status == "pending":
                continue
            w = next((b for b in buckets if b["start"] <= mins < b["end"]), None)
            if w is None:
                continue
            w["due"] += 1
            if e.status == "taken":
                w["taken"] += 1
        for b in buckets:
            b["rate"] = b["taken"] / b["due"] * 100 if b["due"] else 0.0
        return buckets

    @staticmethod
    def weekday_rates(entries: List[DoseEntry]) -> List[Dict[str, Any]]:
        days = [{"day": i, "taken": 0, "due": 0} for i in range(7)]
        for e in entries:
            if e.status == "pending":
                continue
            d = days[js_weekday(e.date)]
            d["due"] += 1
            if e.status == "taken":
                d["taken"] += 1
        for d in days:
            d["rate"] = d["taken"] / d["due"] * 100 if d["due"] else 0.0
        return days

    def top_missed_medication(self, entries: List[DoseEntry]) -> Optional[str]:
        agg: Dict[int, Dict[str, int]] = {}
        for e in entries:
            a = agg.setdefault(e.medication_id, {"due": 0, "missed": 0})
            if e.status == "pending":
                continue
            a["due"] += 1
            if e.status in ("missed", "skipped"):
                a["missed"] += 1

        names = {m.id: m.name for m in self.store.get_medications()}
        worst_id, worst_rate = None, -1.0
        for mid, a in agg.items():
            if not a["due"]:
                continue
            rate = a["missed"] / a["due"] * 100
            if rate > worst_rate:
                worst_id, worst_rate = mid, rate

        if worst_id is None:
            return None
        return names.get(worst_id, f"Medication {worst_id}")

    def get_insights(self) -> AdherenceInsights:
        today = self.clock.today()
        recent = self._with_effective_status(
            self.store.get_entries_in_range(today - timedelta(days=INSIGHT_LOOKBACK_DAYS), today))
        if not recent:
            return AdherenceInsights()
        logger.debug("computing insights over %d entries", len(recent))

        trend = self.trend_series()
        delta = self.trend_delta(trend)
        streak = self.streak_days(recent)

        # empty buckets would always win "worst" at 0%
        windows = [w for w in self.window_rates(recent) if w["due"]] or self.window_rates(recent)
        best = windows[0]
        worst = windows[0]
        for w in windows[1:]:
            if w["rate"] > best["rate"]:
                best = w
            if w["rate"] < worst["rate"]:
                worst = w

        dow = [d for d in self.weekday_rates(recent) if d["due"]] or self.weekday_rates(recent)
        worst_day = dow[0]
        for d in dow[1:]:
            if d["rate"] < worst_day["rate"]:
                worst_day = d
        worst_day_label = WEEKDAY_LABELS[worst_day["day"]]

        top_miss = self.top_missed_medication(recent)

        rec: List[str] = []
        if delta <= -10:
            rec.append(f"Adherence dropped {abs(delta)}% vs last week - consider earlier reminders "
                       "or simplifying the evening routine.")
        if delta >= 10:
            rec.append(f"Great momentum: +{delta}% vs last week - keep the current routine!")
        if best["rate"] - worst["rate"] >= 10 and worst["due"] >= 3:
            rec.append(f"Shift doses in {worst['label']} toward {best['label']} "
                       f"(historically +{round_half_up(best['rate'] - worst['rate'])}% adherence).")
        if best.get("cue"):
            rec.append(f"Anchor a dose to {best['cue']} ({best['label']}) - your best window.")
        if worst_day["due"] >= 3 and worst_day["rate"] <= 80:
            rec.append(f"{worst_day_label} has lower adherence - add a stronger reminder or caregiver check-in.")
        if top_miss:
            rec.append(f"Focus on {top_miss} - most missed over the last 30 days.")
        if 3 <= streak < 7:
            rec.append(f"Nice {streak}-day streak - aim for 7 days to reach higher weekly adherence.")
        if streak >= 7:
            rec.append(f"Strong streak of {streak} days - excellent consistency!")

        return AdherenceInsights(
            best_window=f"{best['label']} ({round_half_up(best['rate'])}%)",
            struggle_window=f"{worst['label']} ({round_half_up(worst['rate'])}%)",
            worst_day=worst_day_label,
            top_miss_medication=top_miss or "-",
            consistency=consistency_for(stddev([p.pct for p in trend])),
            streak_days=streak,
            trend_delta=delta,
            recommendations=rec[:5],
        )
