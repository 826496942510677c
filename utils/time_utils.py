"""
Clock helpers.

The organizer never reads the wall clock directly: every component takes a
``Clock`` (a zero-argument callable returning an aware datetime) so tests
and the two processes can be driven from a controlled time source.
"""
from __future__ import annotations

import calendar
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

Clock = Callable[[], datetime]

_DAY_SECONDS = 86_400


class LocalTimezone(tzinfo):
    """
    The host's zone with its daylight-saving rules.

    Offsets are looked up per datetime through the C library instead of being
    captured once, so a long-running process keeps correct local midnights
    after a DST change. Ambiguous and skipped wall times follow ``fold``.
    """

    def utcoffset(self, dt: Optional[datetime]) -> timedelta:
        if dt is None:
            return timedelta(seconds=-time.timezone)
        return timedelta(seconds=self._offset(dt))

    def dst(self, dt: Optional[datetime]) -> timedelta:
        return self.utcoffset(dt) - timedelta(seconds=-time.timezone)

    def tzname(self, dt: Optional[datetime]) -> str:
        return time.tzname[1 if self.dst(dt) else 0]

    def fromutc(self, dt: datetime) -> datetime:
        utc = dt.replace(tzinfo=None)
        offset = time.localtime(calendar.timegm(utc.timetuple())).tm_gmtoff
        local = (utc + timedelta(seconds=offset)).replace(tzinfo=self)
        if self._offset(local) != offset:
            local = local.replace(fold=1)
        return local

    def _offset(self, dt: datetime) -> int:
        wall = calendar.timegm(dt.replace(tzinfo=None, fold=0).timetuple())
        candidates: List[int] = []
        for sample in (wall - _DAY_SECONDS, wall + _DAY_SECONDS):
            offset = time.localtime(sample).tm_gmtoff
            if offset not in candidates:
                candidates.append(offset)
        valid = [offset for offset in candidates if time.localtime(wall - offset).tm_gmtoff == offset]
        if len(valid) == 1:
            return valid[0]
        # ambiguous (two valid) or skipped (none valid): fold picks the side
        pool = valid or candidates
        return pool[-1] if dt.fold else pool[0]

    def __repr__(self) -> str:
        return "LocalTimezone()"


LOCAL_TZ = LocalTimezone()


def system_clock(tz: Optional[tzinfo] = None) -> Clock:
    """Wall clock in ``tz`` (the host zone, DST-aware, when omitted)."""
    zone = tz or LOCAL_TZ

    def _now() -> datetime:
        return datetime.now(zone)
    return _now


def to_ms(moment: datetime) -> int:
    """Epoch milliseconds of an aware datetime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(round(moment.timestamp() * 1000))


def to_iso(moment: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z, the persisted timestamp format."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> Optional[datetime]:
    """Parse a persisted ISO timestamp; None when it is missing or malformed."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
