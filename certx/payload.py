"""QR payload: the verification text embedded in every certificate."""

import datetime
from dataclasses import dataclass

from certx.logging import get_logger

log = get_logger("payload")

DEFAULT_VERIFIER = "nameSpace"

# Fixed English names so the output never depends on the process locale.
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _to_date(value: str | datetime.date) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    # Only the calendar part counts; "2025-01-05T23:00:00-05:00" is still Jan 5.
    return datetime.date.fromisoformat(text[:10])


def format_event_date(value: str | datetime.date) -> str:
    """Long form date, e.g. ``"2025-01-05"`` -> ``"January 5, 2025"``."""
    d = _to_date(value)
    return f"{MONTH_NAMES[d.month - 1]} {d.day}, {d.year}"


@dataclass(frozen=True)
class QRPayload:
    verifier: str
    email: str
    name: str
    event_name: str
    event_date: str

    def serialize(self) -> str:
        return (
            f"This certificate is verified by {self.verifier} with the below details:\n"
            f"\n"
            f"Email: {self.email}\n"
            f"Name: {self.name}\n"
            f"Event name: {self.event_name}\n"
            f"Date: {self.event_date}"
        )


def build_payload(
    email: str,
    name: str,
    event_name: str,
    event_date: str | datetime.date,
    verifier: str = DEFAULT_VERIFIER,
) -> QRPayload:
    return QRPayload(
        verifier=verifier,
        email=email,
        name=name,
        event_name=event_name,
        event_date=format_event_date(event_date),
    )


def encode_payload(
    email: str,
    name: str,
    event_name: str,
    event_date: str | datetime.date,
    verifier: str = DEFAULT_VERIFIER,
) -> str:
    """Canonical QR text for a registrant.

    The result is a pure function of the arguments: no clock, no locale.
    """
    text = build_payload(email, name, event_name, event_date, verifier).serialize()
    log.debug("payload encoded (%d chars)", len(text))
    return text
