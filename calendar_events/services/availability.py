import datetime
from collections.abc import Iterable, Mapping, Sequence

from calendar_events.constants import OccurrenceSourceKind
from calendar_events.recurrence import as_utc, expand_occurrence_starts
from calendar_events.services.dataclasses import (
    CalendarEventData,
    EventExceptionData,
    ExternalEventData,
    FreeBusyInterval,
)
from calendar_events.services.occurrence_resolver import index_exceptions, resolve_occurrences


def _clip(
    start: datetime.datetime,
    end: datetime.datetime,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
) -> tuple[datetime.datetime, datetime.datetime] | None:
    clipped_start, clipped_end = max(start, range_start), min(end, range_end)
    if clipped_end <= clipped_start:
        return None
    return clipped_start, clipped_end


def compute_free_busy(
    user_ids: Sequence[int],
    range_start: datetime.datetime,
    range_end: datetime.datetime,
    events: Iterable[CalendarEventData],
    exceptions_by_event: Mapping[int, Iterable[EventExceptionData]],
    external_events: Iterable[ExternalEventData],
) -> list[FreeBusyInterval]:
    """
    Busy intervals of each requested user inside ``[range_start, range_end)``.

    A user is busy during every occurrence of an event they are an involved member of, and
    during every external event of their subscriptions. Each source is clipped to the range
    and reported on its own. Users with nothing qualifying get no intervals.

    :return: intervals ordered by the requested user order, then start, end and source.
    """
    range_start = as_utc(range_start)
    range_end = as_utc(range_end)
    user_order = {user_id: index for index, user_id in enumerate(dict.fromkeys(user_ids))}
    intervals: list[FreeBusyInterval] = []

    for event in events:
        busy_user_ids = [
            user_id for user_id in dict.fromkeys(event.involved_user_ids()) if user_id in user_order
        ]
        if not busy_user_ids:
            continue

        # occurrences starting before the range may still overlap it
        starts = expand_occurrence_starts(event, range_start - event.duration, range_end)
        occurrences = resolve_occurrences(
            starts, event, index_exceptions(exceptions_by_event.get(event.id, ()))
        )
        for occurrence in occurrences:
            clipped = _clip(occurrence.start, occurrence.end, range_start, range_end)
            if clipped is None:
                continue
            for user_id in busy_user_ids:
                intervals.append(
                    FreeBusyInterval(
                        user_id=user_id,
                        start=clipped[0],
                        end=clipped[1],
                        source=OccurrenceSourceKind.HOUSEHOLD,
                        event_id=event.id,
                        title=occurrence.title,
                    )
                )

    for external_event in external_events:
        if external_event.user_id not in user_order:
            continue
        clipped = _clip(
            as_utc(external_event.start_time), as_utc(external_event.end_time), range_start, range_end
        )
        if clipped is None:
            continue
        intervals.append(
            FreeBusyInterval(
                user_id=external_event.user_id,
                start=clipped[0],
                end=clipped[1],
                source=OccurrenceSourceKind.EXTERNAL,
                event_id=external_event.id,
                title=external_event.title,
            )
        )

    intervals.sort(
        key=lambda i: (user_order[i.user_id], i.start, i.end, str(i.source), i.event_id)
    )
    return intervals
