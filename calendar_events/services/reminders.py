import datetime
from collections.abc import Iterable, Mapping

from calendar_events.recurrence import as_utc, expand_occurrence_starts
from calendar_events.services.dataclasses import (
    CalendarEventData,
    EventExceptionData,
    EventReminderData,
)
from calendar_events.services.occurrence_resolver import index_exceptions, resolve_occurrences


def evaluate_due_reminders(
    events: Iterable[CalendarEventData],
    exceptions_by_event: Mapping[int, Iterable[EventExceptionData]],
    now: datetime.datetime,
) -> list[EventReminderData]:
    """
    Occurrences whose reminder is due at ``now``: ``now`` lies between the reminder time and
    the occurrence start. Only involved members are reminded.
    """
    now = as_utc(now)
    reminders = []
    for event in events:
        user_ids = event.involved_user_ids()
        if not event.reminder_minutes_before or not user_ids:
            continue

        lead_time = datetime.timedelta(minutes=event.reminder_minutes_before)
        starts = expand_occurrence_starts(
            event, now - lead_time, now + lead_time + datetime.timedelta(minutes=1)
        )
        occurrences = resolve_occurrences(
            starts, event, index_exceptions(exceptions_by_event.get(event.id, ()))
        )
        for occurrence in occurrences:
            if occurrence.start - lead_time <= now < occurrence.start:
                reminders.append(
                    EventReminderData(
                        event_id=event.id,
                        occurrence_start=occurrence.original_start,
                        start=occurrence.start,
                        title=occurrence.title,
                        reminder_minutes_before=event.reminder_minutes_before,
                        user_ids=user_ids,
                    )
                )

    reminders.sort(key=lambda r: (r.start, r.event_id))
    return reminders
