from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date window; a missing bound leaves that side open."""

    start: Optional[date] = None
    end: Optional[date] = None


def resolve_window(start: Optional[str], end: Optional[str]) -> DateWindow:
    start_date = date.fromisoformat(start) if start else None
    end_date = date.fromisoformat(end) if end else None
    if start_date and end_date and start_date > end_date:
        raise ValueError("Start date must be before end date")
    return DateWindow(start_date, end_date)
