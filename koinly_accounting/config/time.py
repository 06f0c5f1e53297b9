"""
Shared time utilities for block timestamps and month buckets.

All record dates are UTC. The month bucket of a record is the UTC calendar
month of its block timestamp, rendered as YYYY-MM; that string is also the
name of the destination file/spreadsheet for that month.

This module provides:
    * to_dt(ts): convert unix ts -> aware UTC datetime
    * format_date(dt): aware datetime -> 'YYYY-MM-DD HH:MM:SS UTC'
    * month_key(dt): aware datetime -> 'YYYY-MM'
"""

from __future__ import annotations
from datetime import datetime, timezone

DATE_FORMAT = "%Y-%m-%d %H:%M:%S UTC"
MONTH_FORMAT = "%Y-%m"


def to_dt(ts: int) -> datetime:
    """
    Convert a unix timestamp to an aware UTC datetime.
    """
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def format_date(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(DATE_FORMAT)


def month_key(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(MONTH_FORMAT)
