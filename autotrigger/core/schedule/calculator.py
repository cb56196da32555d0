"""Fire-time calculator — schedule config + current instant → upcoming fire times.

Pure functions, no state between calls. All datetimes are naive local time.

A non-blank ``crontab`` overrides the structured repeat mode entirely. The
cron path only honours the minute and hour fields and scans a fixed 7-day
window; day-of-month, month and day-of-week are accepted but not applied.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime, time, timedelta

from loguru import logger

from autotrigger.core.schedule.fields import clean_candidates, parse_field
from autotrigger.core.schedule.types import (
    CrontabValidation,
    RepeatMode,
    ScheduleConfig,
)

CRON_LOOKAHEAD_DAYS = 7
DAILY_LOOKAHEAD_DAYS = 7
WEEKLY_LOOKAHEAD_DAYS = 14
INTERVAL_LOOKAHEAD_DAYS = 7

DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_UNUSED_FIELDS_NOTE = (
    "Only the minute and hour fields are applied; "
    "day-of-month, month and day-of-week are ignored in previews."
)


# ════════════════════════════════════════════════════════════
# HELPERS
# ════════════════════════════════════════════════════════════


def _parse_hhmm(value: str) -> tuple[int, int] | None:
    """'HH:MM' → (hour, minute), None if malformed."""
    hour, sep, minute = value.partition(":")
    if not sep:
        return None
    try:
        h, m = int(hour), int(minute)
    except ValueError:
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h, m


def _sorted_times(times: Iterable[str]) -> list[tuple[int, int]]:
    # Lexicographic order equals chronological order for zero-padded HH:MM
    parsed = (_parse_hhmm(t) for t in sorted(times))
    return [p for p in parsed if p is not None]


def _day_start(now: datetime, offset: int) -> datetime:
    return datetime.combine(now.date(), time()) + timedelta(days=offset)


def _sunday_weekday(day: datetime) -> int:
    """Weekday with 0 = Sunday."""
    return (day.weekday() + 1) % 7


def _collect(candidates: Iterator[datetime], now: datetime, count: int) -> list[datetime]:
    """Keep strictly-future candidates, stop at ``count``."""
    results: list[datetime] = []
    for candidate in candidates:
        if candidate > now and (not results or candidate > results[-1]):
            results.append(candidate)
            if len(results) >= count:
                break
    return results


# ════════════════════════════════════════════════════════════
# CANDIDATE GENERATORS
# ════════════════════════════════════════════════════════════


def _cron_candidates(minutes: list[int], hours: list[int], now: datetime) -> Iterator[datetime]:
    for offset in range(CRON_LOOKAHEAD_DAYS):
        day = _day_start(now, offset)
        for h in hours:
            for m in minutes:
                yield day.replace(hour=h, minute=m)


def _daily_candidates(config: ScheduleConfig, now: datetime) -> Iterator[datetime]:
    times = _sorted_times(config.daily_times)
    for offset in range(DAILY_LOOKAHEAD_DAYS):
        day = _day_start(now, offset)
        for h, m in times:
            yield day.replace(hour=h, minute=m)


def _weekly_candidates(config: ScheduleConfig, now: datetime) -> Iterator[datetime]:
    days = set(config.weekly_days)
    times = _sorted_times(config.weekly_times)
    # Two weeks: a selected weekday may not recur within the next 7 days
    for offset in range(WEEKLY_LOOKAHEAD_DAYS):
        day = _day_start(now, offset)
        if _sunday_weekday(day) not in days:
            continue
        for h, m in times:
            yield day.replace(hour=h, minute=m)


def _interval_candidates(config: ScheduleConfig, now: datetime) -> Iterator[datetime]:
    start = _parse_hhmm(config.interval_start_time)
    end = _parse_hhmm(config.interval_end_time)
    if start is None or end is None or config.interval_hours < 1:
        return
    start_h, start_m = start
    # End bound compares the hour only; its minute is ignored
    end_h = min(end[0], 23)
    for offset in range(INTERVAL_LOOKAHEAD_DAYS):
        day = _day_start(now, offset)
        for h in range(start_h, end_h + 1, config.interval_hours):
            yield day.replace(hour=h, minute=start_m)


# ════════════════════════════════════════════════════════════
# PUBLIC API
# ════════════════════════════════════════════════════════════


def compute_cron_fire_times(crontab: str, now: datetime, count: int) -> list[datetime]:
    """Cron path only. Fewer than 5 fields → empty list (invalid expression)."""
    if count <= 0:
        return []
    parts = crontab.strip().split()
    if len(parts) < 5:
        return []
    minutes = clean_candidates(parse_field(parts[0], 59), 59)
    hours = clean_candidates(parse_field(parts[1], 23), 23)
    if not minutes or not hours:
        return []
    return _collect(_cron_candidates(minutes, hours, now), now, count)


def compute_next_fire_times(
    config: ScheduleConfig, now: datetime, count: int
) -> list[datetime]:
    """Upcoming fire times for ``config`` after ``now``, ascending, at most ``count``."""
    if count <= 0:
        return []

    if config.has_crontab:
        return compute_cron_fire_times(config.crontab, now, count)

    if config.repeat_mode == RepeatMode.DAILY:
        candidates = _daily_candidates(config, now)
    elif config.repeat_mode == RepeatMode.WEEKLY:
        candidates = _weekly_candidates(config, now)
    elif config.repeat_mode == RepeatMode.INTERVAL:
        candidates = _interval_candidates(config, now)
    else:
        logger.warning(f"Unknown repeat mode: {config.repeat_mode}")
        return []

    return _collect(candidates, now, count)


def next_fire_time(config: ScheduleConfig, now: datetime) -> datetime | None:
    """First upcoming fire time, or None when the schedule is disabled."""
    if not config.enabled:
        return None
    runs = compute_next_fire_times(config, now, 1)
    return runs[0] if runs else None


def validate_crontab(expression: str, now: datetime, count: int = 5) -> CrontabValidation:
    """Run the cron path and report whether any future fire time came out."""
    parts = expression.strip().split()
    if len(parts) < 5:
        return CrontabValidation(
            valid=False, error="Invalid crontab format, 5 fields required"
        )

    runs = compute_cron_fire_times(expression, now, count)
    note = None if parts[2:5] == ["*", "*", "*"] else _UNUSED_FIELDS_NOTE
    if not runs:
        return CrontabValidation(
            valid=False,
            error=f"No upcoming fire times within the next {CRON_LOOKAHEAD_DAYS} days",
            note=note,
        )
    return CrontabValidation(
        valid=True,
        description=describe_crontab(expression),
        next_runs=runs,
        note=note,
    )


# ════════════════════════════════════════════════════════════
# CRONTAB RENDERING / DESCRIPTION
# ════════════════════════════════════════════════════════════


def config_to_crontab(config: ScheduleConfig) -> str:
    """Render the structured repeat mode as an equivalent 5-field crontab."""
    if config.repeat_mode == RepeatMode.DAILY:
        return _daily_to_crontab(config.daily_times)
    if config.repeat_mode == RepeatMode.WEEKLY:
        return _weekly_to_crontab(config.weekly_days, config.weekly_times)
    if config.repeat_mode == RepeatMode.INTERVAL:
        return _interval_to_crontab(
            config.interval_hours, config.interval_start_time, config.interval_end_time
        )
    return "0 8 * * *"


def _daily_to_crontab(times: list[str]) -> str:
    parsed = [p for p in (_parse_hhmm(t) for t in times) if p is not None]
    if not parsed:
        return "0 8 * * *"
    minutes = {m for _, m in parsed}
    if len(minutes) == 1:
        hours = ",".join(str(h) for h in sorted({h for h, _ in parsed}))
        return f"{minutes.pop()} {hours} * * *"
    # Mixed minutes cannot share one expression; fall back to the first time
    h, m = parsed[0]
    return f"{m} {h} * * *"


def _weekly_to_crontab(days: list[int], times: list[str]) -> str:
    first = _parse_hhmm(times[0]) if times else None
    if not days or first is None:
        return "0 8 * * 1-5"
    ordered = sorted(set(days))
    if len(ordered) == 1:
        day_expr = str(ordered[0])
    elif ordered == list(range(ordered[0], ordered[-1] + 1)):
        day_expr = f"{ordered[0]}-{ordered[-1]}"
    else:
        day_expr = ",".join(str(d) for d in ordered)
    h, m = first
    return f"{m} {h} * * {day_expr}"


def _interval_to_crontab(interval_hours: int, start_time: str, end_time: str) -> str:
    start = _parse_hhmm(start_time) or (0, 0)
    end = _parse_hhmm(end_time)
    end_h = end[0] if end else 23
    hours = list(range(start[0], end_h + 1, max(interval_hours, 1))) or [start[0]]
    return f"{start[1]} {','.join(str(h) for h in hours)} * * *"


def _expand_days(field: str) -> list[int]:
    if field == "*":
        return list(range(7))
    days: set[int] = set()
    for part in field.split(","):
        days.update(clean_candidates(parse_field(part, 6), 6))
    return sorted(days)


def describe_crontab(expression: str) -> str:
    """Human-readable description of a 5-field crontab."""
    parts = expression.strip().split()
    if len(parts) < 5:
        return expression
    minute, hour, day_of_month, month, day_of_week = parts[:5]

    if day_of_month != "*" or month != "*":
        return "Custom Schedule"
    if "/" in minute or "/" in hour or "/" in day_of_week:
        return "Custom Schedule"

    pieces: list[str] = []
    if minute == "0" and hour == "*":
        pieces.append("Every hour on the hour")
    elif "," in hour and "," not in minute and minute != "*":
        times = ", ".join(f"{h}:{minute.zfill(2)}" for h in hour.split(","))
        pieces.append(f"Every day at {times}")
    elif hour != "*" and minute != "*" and "," not in minute:
        pieces.append(f"Every day at {hour}:{minute.zfill(2)}")

    if day_of_week != "*":
        if day_of_week == "1-5":
            pieces.append("Weekdays")
        elif day_of_week in ("0,6", "6,0"):
            pieces.append("Weekends")
        else:
            pieces.append(", ".join(DAY_NAMES[d] for d in _expand_days(day_of_week)))

    return " ".join(p for p in pieces if p) or "Custom Schedule"


def describe_schedule(config: ScheduleConfig) -> str:
    crontab = config.crontab if config.has_crontab else config_to_crontab(config)
    return describe_crontab(crontab)
