"""Markdown helpers for the summary report."""

import re
from enum import Enum
from typing import Sequence


class Align(Enum):
    LEFT = ":---"
    CENTER = ":---:"
    RIGHT = "---:"
    NONE = "---"


class Icon:
    skip = "⚪"
    success = "✅"
    fail = "❌"


def link(title: str, address: str) -> str:
    return f"[{title}]({address})"


def table(headers: Sequence[str], align: Sequence[Align], *rows: Sequence[str]) -> str:
    header_row = table_row(headers)
    align_row = table_row([a.value for a in align])
    body = "\n".join(table_row(r) for r in rows)
    return f"{header_row}\n{align_row}\n{body}" if body else f"{header_row}\n{align_row}"


def table_row(columns: Sequence[str]) -> str:
    return "|" + "|".join(c.replace("|", "\\|") for c in columns) + "|"


def slug(name: str) -> tuple[str, str]:
    """Return (id, link) of an in-page anchor. GitHub prefixes ids with 'user-content-'."""
    slug_id = re.sub(r'[^\w-]', '', re.sub(r'[./\\]', '-', name.strip().replace('_', '')))
    return f"user-content-{slug_id}", f"#{slug_id}"


def format_time(seconds: float) -> str:
    if seconds >= 60:
        minutes, secs = divmod(int(round(seconds)), 60)
        return f"{minutes}m {secs}s"
    if seconds > 1:
        return f"{round(seconds)}s"
    return f"{round(seconds * 1000)}ms"


def ellipsis(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def fix_eol(text: str) -> str:
    return text.replace("\r", "") if text else text


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))
