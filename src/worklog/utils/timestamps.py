"""Timestamp helpers for task records.

Entries and checkpoints carry a short ``YYYY-MM-DD HH:MM`` stamp; frontmatter
fields such as ``created_at`` and ``last_checkpoint`` are ISO 8601. All
comparisons happen on naive local datetimes.
"""

from __future__ import annotations

from datetime import date, datetime

SHORT_FORMAT = "%Y-%m-%d %H:%M"


def now_local() -> datetime:
    return datetime.now().replace(microsecond=0)


def iso_now() -> str:
    return now_local().isoformat()


def short_now() -> str:
    return now_local().strftime(SHORT_FORMAT)


def id_date_prefix(today: date | None = None) -> str:
    """Six-character ``YYMMDD`` prefix used for local task ids."""
    return (today or date.today()).strftime("%y%m%d")


def parse_timestamp(value: str) -> datetime:
    """Parse short, ISO or date-only stamps into a naive local datetime.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if "T" not in text and " " in text:
        text = text.replace(" ", "T", 1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed