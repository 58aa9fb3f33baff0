"""Export stays to CSV, tab-separated and iCalendar text."""

import csv
import io
import logging
from datetime import date, datetime, timezone
from typing import Iterable

from models.room import Room
from models.stay import Stay, StayStatus

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Confirmation",
    "Guest",
    "Room",
    "Check-in",
    "Check-out",
    "Status",
    "Total",
    "Adults",
    "Children",
    "Notes",
]

CHECK_IN_TIME = "140000"
CHECK_OUT_TIME = "120000"
PRODID = "-//InnSync//Property Management//EN"

# VEVENT STATUS only allows TENTATIVE, CONFIRMED and CANCELLED
ICS_STATUS = {
    StayStatus.PENDING: "TENTATIVE",
    StayStatus.CONFIRMED: "CONFIRMED",
    StayStatus.CHECKED_IN: "CONFIRMED",
    StayStatus.CHECKED_OUT: "CONFIRMED",
    StayStatus.CANCELLED: "CANCELLED",
    StayStatus.NO_SHOW: "CANCELLED",
}

MAX_LINE_OCTETS = 75


def _room_numbers(rooms: Iterable[Room]) -> dict[str, str]:
    return {room.id: room.number for room in rooms}


def _rows(stays: Iterable[Stay], rooms: Iterable[Room]) -> list[list[str]]:
    numbers = _room_numbers(rooms)
    rows = []
    for stay in stays:
        rows.append([
            stay.confirmation_number or "",
            stay.guest_name or "",
            numbers.get(stay.room_id or "", stay.room_id or ""),
            stay.check_in.isoformat() if stay.check_in else "",
            stay.check_out.isoformat() if stay.check_out else "",
            stay.status.value,
            str(stay.total_amount),
            str(stay.adults),
            str(stay.children),
            stay.notes or "",
        ])
    return rows


def to_csv(stays: Iterable[Stay], rooms: Iterable[Room]) -> str:
    """Render stays as CSV with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(_rows(stays, rooms))
    return buffer.getvalue()


def to_tsv(stays: Iterable[Stay], rooms: Iterable[Room]) -> str:
    """Render stays as tab-separated text that spreadsheets open directly."""
    lines = ["\t".join(EXPORT_HEADERS)]
    for row in _rows(stays, rooms):
        lines.append("\t".join(value.replace("\t", " ").replace("\n", " ") for value in row))
    return "\n".join(lines) + "\n"


def _ics_escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def _ics_datetime(day: date, time: str) -> str:
    return f"{day.strftime('%Y%m%d')}T{time}"


def _fold(line: str) -> str:
    """Fold a content line into chunks of at most 75 UTF-8 octets.

    Continuation lines start with a single space. Characters are never split.
    """
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line
    parts = []
    current = ""
    size = 0
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > MAX_LINE_OCTETS:
            parts.append(current)
            current, size = " ", 1
        current += char
        size += width
    parts.append(current)
    return "\r\n".join(parts)


def to_icalendar(
    stays: Iterable[Stay],
    rooms: Iterable[Room],
    domain: str = "innsync.com",
    stamp: datetime | None = None,
) -> str:
    """Render stays as an iCalendar feed.

    Each stay becomes a VEVENT from 14:00 on check-in to 12:00 on check-out
    (floating local time) with a display alarm one hour before arrival.
    Stays without valid dates are skipped. ``stamp`` is the DTSTAMP of every
    event and defaults to the current UTC time.
    """
    stamp = stamp or datetime.now(timezone.utc)
    dtstamp = stamp.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    numbers = _room_numbers(rooms)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]

    for stay in stays:
        if not stay.has_valid_dates:
            logger.warning(f"Skipping stay {stay.id} in calendar export: invalid dates")
            continue

        room_number = numbers.get(stay.room_id or "", stay.room_id or "?")
        guests = f"{stay.adults} adult(s)"
        if stay.children > 0:
            guests += f", {stay.children} child(ren)"
        description = (
            f"Confirmation: {stay.confirmation_number or '-'}\n"
            f"Guests: {guests}\n"
            f"Total: {stay.total_amount}"
        )
        if stay.notes:
            description += f"\nNotes: {stay.notes}"

        lines.extend([
            "BEGIN:VEVENT",
            f"UID:{stay.id}@{domain}",
            f"DTSTAMP:{dtstamp}",
            f"DTSTART:{_ics_datetime(stay.check_in, CHECK_IN_TIME)}",
            f"DTEND:{_ics_datetime(stay.check_out, CHECK_OUT_TIME)}",
            f"SUMMARY:{_ics_escape(stay.guest_name or 'Guest')} - Room {_ics_escape(room_number)}",
            f"DESCRIPTION:{_ics_escape(description)}",
            f"LOCATION:Room {_ics_escape(room_number)}",
            f"STATUS:{ICS_STATUS[stay.status]}",
            "BEGIN:VALARM",
            "TRIGGER:-PT1H",
            "DESCRIPTION:Reminder: check-in in 1 hour",
            "ACTION:DISPLAY",
            "END:VALARM",
            "END:VEVENT",
        ])

    lines.append("END:VCALENDAR")
    return "\r\n".join(_fold(line) for line in lines) + "\r\n"
