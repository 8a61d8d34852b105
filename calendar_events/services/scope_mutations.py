"""Scoped edits and deletes of calendar events.

The planners are pure: they read an in-memory event with its exceptions and return a
``MutationPlan`` describing the writes. ``CalendarEventRepository.apply_mutation``
performs them in a single transaction.

Scopes:
- ``entire_series`` changes the event definition itself.
- ``this_occurrence`` stores an exception for one generated start.
- ``this_and_future`` caps the series before the occurrence and, for edits, starts a
  continuation series at it.
"""

import dataclasses
import datetime
from collections.abc import Iterable

from calendar_events.constants import EditScope
from calendar_events.exceptions import (
    InvalidScopeError,
    InvalidTimeRangeError,
    OccurrenceNotFoundError,
)
from calendar_events.recurrence import RecurrenceRule, as_utc
from calendar_events.recurrence_utils import OccurrenceValidator, RecurrenceRuleSplitter
from calendar_events.services.dataclasses import (
    CalendarEventData,
    CalendarEventPatchData,
    EventExceptionData,
    EventMemberData,
    EventMemberInputData,
    MutationPlan,
)


_PATCHABLE_FIELDS = (
    "title",
    "description",
    "location",
    "start_time",
    "end_time",
    "is_all_day",
    "recurrence_end_date",
    "reminder_minutes_before",
    "color",
)


def build_members(members: Iterable[EventMemberInputData]) -> list[EventMemberData]:
    """Member list with one entry per user. A repeated user keeps its last participation type."""
    by_user: dict[int, EventMemberData] = {}
    for member in members:
        by_user[member.user_id] = EventMemberData(
            user_id=member.user_id, participation_type=member.participation_type
        )
    return list(by_user.values())


def apply_patch(
    event: CalendarEventData,
    patch: CalendarEventPatchData,
    recurrence_rule: RecurrenceRule | None = None,
) -> CalendarEventData:
    """Return a copy of ``event`` with the patch applied. ``recurrence_rule`` is the parsed patch rule."""
    changes: dict = {
        name: getattr(patch, name)
        for name in _PATCHABLE_FIELDS
        if getattr(patch, name) is not None
    }
    if recurrence_rule is not None:
        changes["recurrence_rule"] = recurrence_rule
    if patch.members is not None:
        changes["members"] = build_members(patch.members)
    if patch.start_time is not None and patch.end_time is None:
        # moving only the start keeps the duration
        changes["end_time"] = patch.start_time + event.duration

    updated = dataclasses.replace(event, **changes)
    if updated.end_time <= updated.start_time:
        raise InvalidTimeRangeError()
    if patch.recurrence_end_date is not None and patch.recurrence_end_date <= updated.start_time:
        raise InvalidTimeRangeError("Recurrence end date must be after start time.")
    # the end date is inclusive, so a series may start exactly on it
    if updated.recurrence_end_date is not None and (
        as_utc(updated.recurrence_end_date) < as_utc(updated.start_time)
    ):
        raise InvalidTimeRangeError("Recurrence end date must be after start time.")
    return updated


def _check_preconditions(
    event: CalendarEventData,
    scope: str,
    occurrence_start: datetime.datetime | None,
) -> tuple[EditScope, datetime.datetime | None]:
    try:
        scope = EditScope(scope)
    except ValueError as e:
        raise InvalidScopeError(f"Unknown scope: {scope}.") from e

    if scope != EditScope.ENTIRE_SERIES and not event.is_recurring:
        raise InvalidScopeError()

    if occurrence_start is None:
        if scope != EditScope.ENTIRE_SERIES:
            raise OccurrenceNotFoundError("An occurrence start is required for this scope.")
        return scope, None

    return scope, OccurrenceValidator.validate_modification_date(event, occurrence_start)


def _find_exception(
    exceptions: Iterable[EventExceptionData], original_start: datetime.datetime
) -> EventExceptionData | None:
    return next(
        (e for e in exceptions if as_utc(e.original_start_time) == original_start),
        None,
    )


def _build_continuation(
    event: CalendarEventData,
    occurrence_start: datetime.datetime,
    continuation_rule: RecurrenceRule | None,
) -> CalendarEventData:
    return dataclasses.replace(
        event,
        id=None,
        start_time=occurrence_start,
        end_time=occurrence_start + event.duration,
        recurrence_rule=continuation_rule,
        members=[dataclasses.replace(member) for member in event.members],
        created=None,
        modified=None,
    )


def plan_update(
    event: CalendarEventData,
    exceptions: Iterable[EventExceptionData],
    scope: str,
    occurrence_start: datetime.datetime | None,
    patch: CalendarEventPatchData,
) -> MutationPlan:
    """
    Plan an edit of ``event`` with the given scope.

    :raises InvalidScopeError: scope other than entire series on a non-recurring event.
    :raises OccurrenceNotFoundError: ``occurrence_start`` is missing or not a generated start.
    :raises InvalidRecurrenceRuleError: the patch carries an unparseable rule.
    :raises InvalidTimeRangeError: the patched event would end before it starts.
    """
    scope, occurrence_start = _check_preconditions(event, scope, occurrence_start)
    new_rule = RecurrenceRule.parse(patch.recurrence_rule) if patch.recurrence_rule else None

    if scope == EditScope.ENTIRE_SERIES:
        return MutationPlan(
            event_id=event.id,
            updated_event=apply_patch(event, patch, new_rule),
            replace_members=patch.members is not None,
        )

    if scope == EditScope.THIS_OCCURRENCE:
        if patch.has_series_only_changes():
            raise InvalidScopeError(
                "Only title, description, location, start, end and all-day can be changed "
                "on a single occurrence."
            )
        effective_start = as_utc(patch.start_time) if patch.start_time else occurrence_start
        effective_end = (
            as_utc(patch.end_time) if patch.end_time else effective_start + event.duration
        )
        if effective_end <= effective_start:
            raise InvalidTimeRangeError()

        existing = _find_exception(exceptions, occurrence_start)
        return MutationPlan(
            event_id=event.id,
            updated_event=event,
            upsert_exception=EventExceptionData(
                id=existing.id if existing else None,
                original_start_time=occurrence_start,
                is_deleted=False,
                override_title=patch.title,
                override_description=patch.description,
                override_location=patch.location,
                override_start_time=patch.start_time,
                override_end_time=patch.end_time,
                override_is_all_day=patch.is_all_day,
            ),
        )

    cap, continuation_rule = RecurrenceRuleSplitter.split_at_date(event, occurrence_start)
    continuation = apply_patch(
        _build_continuation(event, occurrence_start, continuation_rule), patch, new_rule
    )
    if cap is None:
        # editing from the first occurrence replaces the whole series
        return MutationPlan(event_id=event.id, created_event=continuation, delete_event=True)

    return MutationPlan(
        event_id=event.id,
        updated_event=dataclasses.replace(event, recurrence_end_date=cap),
        created_event=continuation,
        discard_exceptions_from=occurrence_start,
    )


def plan_delete(
    event: CalendarEventData,
    exceptions: Iterable[EventExceptionData],
    scope: str,
    occurrence_start: datetime.datetime | None,
) -> MutationPlan:
    """
    Plan a delete of ``event`` with the given scope. Raises like ``plan_update``.
    """
    scope, occurrence_start = _check_preconditions(event, scope, occurrence_start)

    if scope == EditScope.ENTIRE_SERIES:
        return MutationPlan(event_id=event.id, delete_event=True)

    if scope == EditScope.THIS_OCCURRENCE:
        existing = _find_exception(exceptions, occurrence_start)
        return MutationPlan(
            event_id=event.id,
            updated_event=event,
            upsert_exception=EventExceptionData(
                id=existing.id if existing else None,
                original_start_time=occurrence_start,
                is_deleted=True,
            ),
        )

    cap, _ = RecurrenceRuleSplitter.split_at_date(event, occurrence_start)
    if cap is None:
        return MutationPlan(event_id=event.id, delete_event=True)

    return MutationPlan(
        event_id=event.id,
        updated_event=dataclasses.replace(event, recurrence_end_date=cap),
        discard_exceptions_from=occurrence_start,
    )
