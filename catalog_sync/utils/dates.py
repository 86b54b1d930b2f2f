"""Datetime helpers."""

from __future__ import annotations

import os

import pendulum

DEFAULT_TZ = "UTC"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def format_timestamp(value: pendulum.DateTime) -> str:
    return value.format("YYYY-MM-DD HH:mm:ss zz")


def format_duration(start: pendulum.DateTime, end: pendulum.DateTime) -> str:
    seconds = (end - start).total_seconds()
    return f"{seconds:.2f}s"
