from __future__ import annotations

import re

MARKER_PREFIX = "[CAL_EVENT:"
MARKER_SUFFIX = "]"
MARKER_PATTERN = re.compile(r"\[CAL_EVENT:([^\]\r\n]+)\]")
MARKER_LINE_PATTERN = re.compile(r"\n?\[CAL_EVENT:[^\]\r\n]+\]")


def build_marker(event_id: str) -> str:
    text = str(event_id or "").strip()
    if not text or "]" in text or "\n" in text or "\r" in text:
        raise ValueError(f"event id cannot be stored in a marker: {event_id!r}")
    return f"{MARKER_PREFIX}{text}{MARKER_SUFFIX}"


def extract_marker(notes: str | None) -> str | None:
    if not notes:
        return None
    match = MARKER_PATTERN.search(notes)
    if not match:
        return None
    return match.group(1)


def insert_marker(notes: str | None, event_id: str) -> str:
    marker = build_marker(event_id)
    if not notes:
        return marker
    if MARKER_PATTERN.search(notes):
        # Only one marker may live in a notes field.
        return MARKER_PATTERN.sub(lambda _match: marker, notes, count=1)
    return f"{notes}\n{marker}"


def replace_marker(notes: str | None, new_event_id: str) -> str:
    marker = build_marker(new_event_id)
    if not notes or not MARKER_PATTERN.search(notes):
        return insert_marker(notes, new_event_id)
    return MARKER_PATTERN.sub(lambda _match: marker, notes, count=1)


def strip_marker(notes: str | None) -> str:
    if not notes:
        return ""
    return MARKER_LINE_PATTERN.sub("", notes, count=1).strip()
