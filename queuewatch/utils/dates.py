"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime

import pendulum

DEFAULT_TZ = "Asia/Shanghai"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz(tz: str | None = None) -> pendulum.DateTime:
    return pendulum.now(pendulum.timezone(tz or timezone_name()))


def today_in_tz(tz: str | None = None) -> date:
    return now_in_tz(tz).date()


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime."""
    return naive_utc(pendulum.now("UTC"))


def to_local(value: datetime, tz: str | None = None) -> pendulum.DateTime:
    """Interpret a naive UTC datetime and convert it to the local zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=pendulum.UTC)
    return pendulum.instance(value).in_timezone(tz or timezone_name())


def naive_utc(value: datetime) -> datetime:
    """Return a plain naive UTC datetime; naive input is already UTC."""
    if value.tzinfo is not None:
        value = pendulum.instance(value).in_timezone("UTC")
    return datetime(value.year, value.month, value.day, value.hour, value.minute, value.second, value.microsecond)


def local_date(value: datetime, tz: str | None = None) -> date:
    local = to_local(value, tz)
    return date(local.year, local.month, local.day)


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 instant into a naive UTC datetime.

    Values without an offset are taken as UTC.
    """
    parsed = pendulum.parse(value)
    if not isinstance(parsed, pendulum.DateTime):
        raise ValueError(f"Not a datetime: {value!r}")
    return naive_utc(parsed)


def format_iso_datetime(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_iso_date(value: str) -> date:
    parsed = pendulum.parse(value)
    return date(parsed.year, parsed.month, parsed.day)


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
