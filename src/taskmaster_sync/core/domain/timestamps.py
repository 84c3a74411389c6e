"""
RFC 3339 timestamps as written into snapshot and config files.
"""

from __future__ import annotations

from datetime import datetime, timezone


def format_rfc3339(value: datetime) -> str:
    """UTC timestamp with a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Accepts a trailing Z and fractional seconds beyond microseconds, which
    are truncated. Naive values are taken as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
