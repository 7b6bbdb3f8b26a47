"""
Academic Session Resolver

Converts session labels such as "2025-26" or "25-26" into concrete date
ranges. One convention is used everywhere: an academic session starts on
April 1 00:00 UTC of its start year and ends on March 31 of the following
year (inclusive, to the last microsecond).

The "current" session rolls over on April 1: January to March belong to
the session that started the previous calendar year.
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

SESSION_LABEL_PATTERN = re.compile(r"^\d{2,4}-\d{2,4}$")
EXPECTED_FORMAT = "YYYY-YY or YY-YY (e.g. 2025-26)"

MIN_SESSION_YEAR = 2000
MAX_SESSION_YEAR = 2100

# First month of the academic year (April)
SESSION_START_MONTH = 4


class InvalidSessionFormatError(ValueError):
    """Raised when a session label cannot be resolved."""

    def __init__(self, label: str | None, reason: str):
        self.label = label
        self.expected_format = EXPECTED_FORMAT
        self.reason = reason
        super().__init__(
            f"Invalid session format '{label}': {reason}. Expected {EXPECTED_FORMAT}."
        )


@dataclass(frozen=True)
class SessionRange:
    """A resolved academic session."""

    start_year: int
    start_date: datetime
    end_date: datetime

    @property
    def label(self) -> str:
        return format_session_label(self.start_year)

    def contains(self, moment: datetime) -> bool:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return self.start_date <= moment <= self.end_date


def format_session_label(start_year: int) -> str:
    """Format a start year as "YYYY-YY"."""
    return f"{start_year}-{(start_year + 1) % 100:02d}"


def session_for_year(start_year: int) -> SessionRange:
    """Build the date range for the session starting in `start_year`."""
    start = datetime(start_year, SESSION_START_MONTH, 1, tzinfo=UTC)
    end = datetime(start_year + 1, SESSION_START_MONTH, 1, tzinfo=UTC) - timedelta(microseconds=1)
    return SessionRange(start_year=start_year, start_date=start, end_date=end)


def current_session_start_year(today: date | None = None) -> int:
    """Start year of the session containing `today` (defaults to now, UTC)."""
    today = today or datetime.now(UTC).date()
    if today.month < SESSION_START_MONTH:
        return today.year - 1
    return today.year


def _parse_start_year(label: str) -> int:
    if not SESSION_LABEL_PATTERN.match(label):
        raise InvalidSessionFormatError(label, "label must be two numeric parts separated by '-'")

    start_token, end_token = label.split("-")

    start_year = int(start_token)
    if len(start_token) == 2:
        start_year += 2000
    elif len(start_token) != 4:
        raise InvalidSessionFormatError(label, "start year must have 2 or 4 digits")

    end_year = int(end_token)
    if len(end_token) == 2:
        if end_year != (start_year + 1) % 100:
            raise InvalidSessionFormatError(label, "end year must follow the start year")
    elif len(end_token) == 4:
        if end_year != start_year + 1:
            raise InvalidSessionFormatError(label, "end year must follow the start year")
    else:
        raise InvalidSessionFormatError(label, "end year must have 2 or 4 digits")

    if start_year < MIN_SESSION_YEAR or start_year + 1 > MAX_SESSION_YEAR:
        raise InvalidSessionFormatError(
            label, f"years must be between {MIN_SESSION_YEAR} and {MAX_SESSION_YEAR}"
        )

    return start_year


def resolve_session(label: str | None, today: date | None = None) -> SessionRange:
    """
    Resolve a session label into its date range.

    Args:
        label: "YYYY-YY", "YY-YY" or "YYYY-YYYY". None or blank resolves
            to the current session.
        today: Reference date for the current-session default

    Raises:
        InvalidSessionFormatError: If the label is malformed, the end year
            does not follow the start year, or a year is outside 2000-2100
    """
    if label is None or not label.strip():
        return session_for_year(current_session_start_year(today))

    return session_for_year(_parse_start_year(label.strip()))


def get_available_sessions(
    years_back: int = 5,
    years_forward: int = 2,
    today: date | None = None,
) -> list[str]:
    """
    List selectable session labels, newest first.

    Starts `years_forward` sessions ahead of the current one and walks back,
    yielding `years_back + years_forward` labels in total (the current
    session counts as one of the `years_back`).
    """
    if years_back < 0 or years_forward < 0:
        raise ValueError("years_back and years_forward must be non-negative")

    current = current_session_start_year(today)
    newest = current + years_forward
    return [format_session_label(newest - i) for i in range(years_back + years_forward)]
