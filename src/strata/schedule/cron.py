import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from apscheduler.triggers.cron import CronTrigger

from strata.errors import SpecError

logger = logging.getLogger(__name__)

# crontab numbering: 0 and 7 are Sunday
_DOW_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _translate_dow(field: str) -> str:
    """
    Rewrite numeric crontab day-of-week values as names, since APScheduler
    numbers weekdays from Monday.
    """
    out: List[str] = []
    for part in field.split(","):
        expr, slash, step_text = part.partition("/")
        step = 1
        if slash:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValueError(f"invalid day-of-week step: {part}")
            step = int(step_text)

        if expr == "*":
            if not slash:
                out.append("*")
                continue
            values = range(0, 7, step)
        elif "-" in expr:
            low, _, high = expr.partition("-")
            if not (low.isdigit() and high.isdigit()):
                out.append(part)
                continue
            values = range(int(low), int(high) + 1, step)
        elif expr.isdigit():
            values = range(int(expr), 7 if slash else int(expr) + 1, step)
        else:
            out.append(part)
            continue

        for value in values:
            if value > 7:
                raise ValueError(f"day-of-week out of range: {part}")
            name = _DOW_NAMES[value]
            if name not in out:
                out.append(name)
    return ",".join(out)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CronSchedule:
    """
    A 5-field cron expression (minute hour day-of-month month day-of-week),
    evaluated in UTC.

    When both day-of-month and day-of-week are restricted a time matches if
    either field does, as in cron(8).
    """

    def __init__(self, expression: str):
        self.expression = (expression or "").strip()
        fields = self.expression.split()
        if len(fields) != 5:
            raise SpecError(f"invalid schedule {self.expression!r}: expected 5 fields, got {len(fields)}")
        fields = ["*" if f == "?" else f for f in fields]
        minute, hour, dom, month, dow = fields

        try:
            dow = _translate_dow(dow)
            if dom != "*" and dow != "*":
                variants = [(dom, "*"), ("*", dow)]
            else:
                variants = [(dom, dow)]
            self._triggers = [
                CronTrigger.from_crontab(f"{minute} {hour} {d} {month} {w}", timezone="UTC")
                for d, w in variants
            ]
        except ValueError as e:
            raise SpecError(f"invalid schedule {self.expression!r}: {e}")

    def next_after(self, after: datetime) -> Optional[datetime]:
        """First occurrence strictly after `after`, at one-second resolution."""
        start = _utc(after).replace(microsecond=0) + timedelta(seconds=1)
        candidates = [t.get_next_fire_time(None, start) for t in self._triggers]
        candidates = [_utc(c) for c in candidates if c is not None]
        return min(candidates) if candidates else None

    def is_due(self, now: datetime, last_run: Optional[datetime]) -> bool:
        """Due when nothing ran yet, or when `now` has reached the occurrence after the last run."""
        if last_run is None:
            return True
        upcoming = self.next_after(last_run)
        return upcoming is not None and _utc(now) >= upcoming


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp from a status field. Unreadable values read as None."""
    if not value:
        return None
    try:
        return _utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"ignoring unparseable timestamp {value!r}")
        return None


def format_time(value: datetime) -> str:
    return _utc(value).replace(microsecond=0).isoformat().replace("+00:00", "Z")
