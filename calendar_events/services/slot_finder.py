import datetime
from collections.abc import Iterable, Sequence

from calendar_events.exceptions import (
    EmptyUserListError,
    InvalidDurationError,
    InvalidTimeRangeError,
)
from calendar_events.recurrence import as_utc
from calendar_events.services.dataclasses import AvailableSlot, FreeBusyInterval


Interval = tuple[datetime.datetime, datetime.datetime]


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Union of intervals. Overlapping or touching intervals are joined."""
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def _all_free_gaps(
    busy_by_user: dict[int, list[Interval]],
    window_start: datetime.datetime,
    window_end: datetime.datetime,
) -> list[Interval]:
    # +1 when someone becomes busy, -1 when they are free again; ends sort before starts
    boundaries: list[tuple[datetime.datetime, int]] = []
    for intervals in busy_by_user.values():
        for start, end in intervals:
            boundaries.append((start, 1))
            boundaries.append((end, -1))
    boundaries.sort()

    gaps: list[Interval] = []
    busy_count = 0
    gap_start: datetime.datetime | None = window_start
    for instant, delta in boundaries:
        if delta == 1 and busy_count == 0 and gap_start is not None:
            if instant > gap_start:
                gaps.append((gap_start, instant))
            gap_start = None
        busy_count += delta
        if busy_count == 0:
            gap_start = instant
    if gap_start is not None and window_end > gap_start:
        gaps.append((gap_start, window_end))
    return gaps


def _clip_to_preferred_hours(
    gap: Interval, start_hour: int | None, end_hour: int | None
) -> list[Interval]:
    if start_hour is None and end_hour is None:
        return [gap]

    pieces: list[Interval] = []
    gap_start, gap_end = gap
    day = datetime.datetime.combine(gap_start.date(), datetime.time(), tzinfo=datetime.UTC)
    while day < gap_end:
        band_start = day + datetime.timedelta(hours=start_hour or 0)
        band_end = (
            day + datetime.timedelta(hours=end_hour)
            if end_hour is not None
            else day + datetime.timedelta(days=1)
        )
        piece_start, piece_end = max(gap_start, band_start), min(gap_end, band_end)
        if piece_end > piece_start:
            pieces.append((piece_start, piece_end))
        day += datetime.timedelta(days=1)
    return pieces


def find_available_slots(
    user_ids: Sequence[int],
    duration_minutes: int,
    window_start: datetime.datetime,
    window_end: datetime.datetime,
    busy_intervals: Iterable[FreeBusyInterval],
    preferred_start_hour: int | None = None,
    preferred_end_hour: int | None = None,
    max_results: int | None = None,
) -> list[AvailableSlot]:
    """
    Find slots where none of the users is busy.

    Each maximal gap in which every user is free yields one slot of ``duration_minutes``
    at its start. Preferred hours are a daily UTC band ``[start_hour, end_hour)`` that gaps
    are clipped to first.

    :raises EmptyUserListError: no users were given.
    :raises InvalidDurationError: the duration is not positive.
    :raises InvalidTimeRangeError: the window or the preferred hours are empty.
    :return: slots ordered by start, at most ``max_results`` of them.
    """
    if not user_ids:
        raise EmptyUserListError()
    if duration_minutes <= 0:
        raise InvalidDurationError()

    window_start = as_utc(window_start)
    window_end = as_utc(window_end)
    if window_end <= window_start:
        raise InvalidTimeRangeError()
    if (
        preferred_start_hour is not None
        and preferred_end_hour is not None
        and preferred_end_hour <= preferred_start_hour
    ):
        raise InvalidTimeRangeError("Preferred end hour must be after preferred start hour.")

    requested = set(user_ids)
    busy_by_user: dict[int, list[Interval]] = {}
    for interval in busy_intervals:
        if interval.user_id not in requested:
            continue
        start, end = max(as_utc(interval.start), window_start), min(as_utc(interval.end), window_end)
        if end > start:
            busy_by_user.setdefault(interval.user_id, []).append((start, end))
    busy_by_user = {user_id: merge_intervals(items) for user_id, items in busy_by_user.items()}

    duration = datetime.timedelta(minutes=duration_minutes)
    slots: list[AvailableSlot] = []
    for gap in _all_free_gaps(busy_by_user, window_start, window_end):
        for piece_start, piece_end in _clip_to_preferred_hours(
            gap, preferred_start_hour, preferred_end_hour
        ):
            if piece_end - piece_start >= duration:
                slots.append(AvailableSlot(start=piece_start, end=piece_start + duration))
                if max_results is not None and len(slots) >= max_results:
                    return slots
    return slots
