import datetime
from collections.abc import Iterable, Mapping

from calendar_events.constants import OccurrenceSourceKind
from calendar_events.recurrence import as_utc
from calendar_events.services.dataclasses import (
    CalendarEventData,
    CalendarOccurrence,
    EventExceptionData,
    ExternalEventData,
)


def _apply_exception(
    occurrence: CalendarOccurrence, exception: EventExceptionData, duration: datetime.timedelta
) -> CalendarOccurrence:
    if exception.override_title is not None:
        occurrence.title = exception.override_title
    if exception.override_description is not None:
        occurrence.description = exception.override_description
    if exception.override_location is not None:
        occurrence.location = exception.override_location
    if exception.override_is_all_day is not None:
        occurrence.is_all_day = exception.override_is_all_day

    if exception.override_start_time is not None:
        occurrence.start = as_utc(exception.override_start_time)
        # a moved occurrence keeps the series duration unless its end is overridden too
        occurrence.end = occurrence.start + duration
    if exception.override_end_time is not None:
        occurrence.end = as_utc(exception.override_end_time)

    occurrence.is_exception = True
    return occurrence


def resolve_occurrences(
    occurrence_starts: Iterable[datetime.datetime],
    event: CalendarEventData,
    exceptions_by_original_start: Mapping[datetime.datetime, EventExceptionData],
) -> list[CalendarOccurrence]:
    """
    Turn generated occurrence starts into occurrences, applying the exception stored for
    each exact start. Deleted occurrences are dropped.

    :param occurrence_starts: starts produced by the expander for `event`.
    :param event: the event definition providing the base fields.
    :param exceptions_by_original_start: exceptions keyed by their UTC original start time.
    :return: occurrences ordered by start time.
    """
    duration = event.duration
    occurrences = []
    for original_start in occurrence_starts:
        original_start = as_utc(original_start)
        exception = exceptions_by_original_start.get(original_start)
        if exception is not None and exception.is_deleted:
            continue

        occurrence = CalendarOccurrence(
            event_id=event.id,
            original_start=original_start,
            start=original_start,
            end=original_start + duration,
            title=event.title,
            description=event.description,
            location=event.location,
            is_all_day=event.is_all_day,
            color=event.color,
            source_kind=OccurrenceSourceKind.HOUSEHOLD,
            is_recurring=event.is_recurring,
            members=list(event.members),
        )
        if exception is not None:
            occurrence = _apply_exception(occurrence, exception, duration)
        occurrences.append(occurrence)

    occurrences.sort(key=lambda o: (o.start, o.original_start))
    return occurrences


def index_exceptions(
    exceptions: Iterable[EventExceptionData],
) -> dict[datetime.datetime, EventExceptionData]:
    return {as_utc(exception.original_start_time): exception for exception in exceptions}


def external_event_occurrences(
    external_events: Iterable[ExternalEventData],
) -> list[CalendarOccurrence]:
    """Map synced external events to occurrences. They never recur."""
    return [
        CalendarOccurrence(
            event_id=external_event.id,
            original_start=as_utc(external_event.start_time),
            start=as_utc(external_event.start_time),
            end=as_utc(external_event.end_time),
            title=external_event.title,
            is_all_day=external_event.is_all_day,
            color=external_event.color,
            source_kind=OccurrenceSourceKind.EXTERNAL,
            owner_user_id=external_event.user_id,
            subscription_id=external_event.subscription_id,
        )
        for external_event in external_events
    ]


def merge_occurrences(*sequences: Iterable[CalendarOccurrence]) -> list[CalendarOccurrence]:
    """
    Stable union of occurrence sequences keyed by (source kind, event id, original start),
    sorted by start with ties broken by source kind and event id.
    """
    merged: dict[tuple[str, int, datetime.datetime], CalendarOccurrence] = {}
    for sequence in sequences:
        for occurrence in sequence:
            key = (str(occurrence.source_kind), occurrence.event_id, occurrence.original_start)
            merged.setdefault(key, occurrence)

    return sorted(
        merged.values(),
        key=lambda o: (o.start, str(o.source_kind), o.event_id, o.original_start),
    )
