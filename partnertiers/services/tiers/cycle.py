from __future__ import annotations

from datetime import datetime, timezone

from partnertiers.domain.models import Partner


def add_years(moment: datetime, years: int) -> datetime:
    # Feb 29 rolls forward to Mar 1 in non-leap years.
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, month=3, day=1)


def cycle_start(partner: Partner) -> datetime:
    # Records written without an offset are treated as UTC.
    start = partner.cycle_started_at or partner.created_at
    if start.tzinfo is None:
        return start.replace(tzinfo=timezone.utc)
    return start


def next_renewal_date(partner: Partner) -> datetime:
    return add_years(cycle_start(partner), 1)
