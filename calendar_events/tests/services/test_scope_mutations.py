import datetime

import pytest

from calendar_events.constants import EditScope, ParticipationType
from calendar_events.exceptions import (
    InvalidRecurrenceRuleError,
    InvalidScopeError,
    InvalidTimeRangeError,
    OccurrenceNotFoundError,
)
from calendar_events.recurrence import RecurrenceRule, expand_occurrence_starts
from calendar_events.services.dataclasses import (
    CalendarEventData,
    CalendarEventPatchData,
    EventExceptionData,
    EventMemberData,
    EventMemberInputData,
)
from calendar_events.services.occurrence_resolver import index_exceptions, resolve_occurrences
from calendar_events.services.scope_mutations import (
    apply_patch,
    build_members,
    plan_delete,
    plan_update,
)


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def standup():
    """Weekly event starting Mon 2024-01-01 09:00 UTC ending on 2024-02-01."""
    return CalendarEventData(
        id=10,
        household_id=1,
        title="Standup",
        start_time=_dt(2024, 1, 1),
        end_time=_dt(2024, 1, 1, 9, 30),
        recurrence_rule=RecurrenceRule.parse("FREQ=WEEKLY"),
        recurrence_end_date=_dt(2024, 2, 1, 0),
        reminder_minutes_before=10,
        members=[
            EventMemberData(user_id=1),
            EventMemberData(user_id=2, participation_type=ParticipationType.AWARE),
        ],
    )


@pytest.fixture
def single_event():
    return CalendarEventData(
        id=20,
        household_id=1,
        title="Dentist",
        start_time=_dt(2024, 1, 3, 15),
        end_time=_dt(2024, 1, 3, 16),
    )


def _january(event, exceptions=()):
    starts = expand_occurrence_starts(event, _dt(2024, 1, 1, 0), _dt(2024, 2, 1, 0))
    return resolve_occurrences(starts, event, index_exceptions(exceptions))


def test_entire_series_update_changes_definition(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.ENTIRE_SERIES,
        None,
        CalendarEventPatchData(title="Daily sync", recurrence_rule="FREQ=DAILY"),
    )

    assert plan.event_id == 10
    assert plan.updated_event.title == "Daily sync"
    assert plan.updated_event.recurrence_rule.frequency == "DAILY"
    assert plan.updated_event.start_time == standup.start_time
    assert not plan.replace_members
    assert plan.created_event is None
    assert not plan.delete_event
    # input is not mutated
    assert standup.title == "Standup"


def test_entire_series_update_replaces_members(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.ENTIRE_SERIES,
        None,
        CalendarEventPatchData(
            members=[
                EventMemberInputData(user_id=3),
                EventMemberInputData(user_id=3, participation_type=ParticipationType.AWARE),
            ]
        ),
    )

    assert plan.replace_members
    assert plan.updated_event.members == [
        EventMemberData(user_id=3, participation_type=ParticipationType.AWARE)
    ]


def test_entire_series_update_on_single_event(single_event):
    plan = plan_update(
        single_event,
        [],
        EditScope.ENTIRE_SERIES,
        None,
        CalendarEventPatchData(end_time=_dt(2024, 1, 3, 17)),
    )

    assert plan.updated_event.end_time == _dt(2024, 1, 3, 17)


@pytest.mark.parametrize("scope", [EditScope.THIS_OCCURRENCE, EditScope.THIS_AND_FUTURE])
def test_non_entire_scope_on_single_event_is_rejected(single_event, scope):
    with pytest.raises(InvalidScopeError):
        plan_update(single_event, [], scope, _dt(2024, 1, 3, 15), CalendarEventPatchData())

    with pytest.raises(InvalidScopeError):
        plan_delete(single_event, [], scope, _dt(2024, 1, 3, 15))


def test_unknown_scope_is_rejected(standup):
    with pytest.raises(InvalidScopeError):
        plan_delete(standup, [], "some_other_scope", _dt(2024, 1, 8))


@pytest.mark.parametrize("scope", [EditScope.THIS_OCCURRENCE, EditScope.THIS_AND_FUTURE])
def test_occurrence_start_must_be_generated(standup, scope):
    with pytest.raises(OccurrenceNotFoundError):
        plan_delete(standup, [], scope, _dt(2024, 1, 9))

    with pytest.raises(OccurrenceNotFoundError):
        plan_delete(standup, [], scope, None)

    # outside the series end date
    with pytest.raises(OccurrenceNotFoundError):
        plan_delete(standup, [], scope, _dt(2024, 2, 5))


def test_this_occurrence_delete_leaves_other_occurrences(standup):
    plan = plan_delete(standup, [], EditScope.THIS_OCCURRENCE, _dt(2024, 1, 15))

    assert plan.upsert_exception.original_start_time == _dt(2024, 1, 15)
    assert plan.upsert_exception.is_deleted
    assert plan.upsert_exception.id is None
    assert plan.updated_event == standup
    assert not plan.delete_event

    remaining = _january(standup, [plan.upsert_exception])
    assert [o.start for o in remaining] == [
        _dt(2024, 1, 1),
        _dt(2024, 1, 8),
        _dt(2024, 1, 22),
        _dt(2024, 1, 29),
    ]


def test_this_occurrence_update_stores_override(standup):
    existing = EventExceptionData(id=99, original_start_time=_dt(2024, 1, 8), is_deleted=True)

    plan = plan_update(
        standup,
        [existing],
        EditScope.THIS_OCCURRENCE,
        _dt(2024, 1, 8),
        CalendarEventPatchData(title="Standup (moved)", start_time=_dt(2024, 1, 8, 11)),
    )

    exception = plan.upsert_exception
    assert exception.id == 99
    assert not exception.is_deleted
    assert exception.override_title == "Standup (moved)"
    assert exception.override_start_time == _dt(2024, 1, 8, 11)
    assert exception.override_end_time is None
    assert exception.override_location is None
    assert plan.updated_event.title == "Standup"

    moved = next(
        o for o in _january(standup, [exception]) if o.original_start == _dt(2024, 1, 8)
    )
    assert (moved.start, moved.end) == (_dt(2024, 1, 8, 11), _dt(2024, 1, 8, 11, 30))


def test_this_occurrence_update_rejects_series_changes(standup):
    with pytest.raises(InvalidScopeError):
        plan_update(
            standup,
            [],
            EditScope.THIS_OCCURRENCE,
            _dt(2024, 1, 8),
            CalendarEventPatchData(recurrence_rule="FREQ=DAILY"),
        )


def test_this_occurrence_update_rejects_inverted_times(standup):
    with pytest.raises(InvalidTimeRangeError):
        plan_update(
            standup,
            [],
            EditScope.THIS_OCCURRENCE,
            _dt(2024, 1, 8),
            CalendarEventPatchData(end_time=_dt(2024, 1, 8, 8)),
        )


def test_this_and_future_update_splits_series(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.THIS_AND_FUTURE,
        _dt(2024, 1, 22),
        CalendarEventPatchData(title="Standup v2"),
    )

    original = plan.updated_event
    continuation = plan.created_event
    assert original.recurrence_end_date == _dt(2024, 1, 15)
    assert original.title == "Standup"
    assert continuation.id is None
    assert continuation.title == "Standup v2"
    assert continuation.start_time == _dt(2024, 1, 22)
    assert continuation.end_time == _dt(2024, 1, 22, 9, 30)
    assert continuation.recurrence_rule == standup.recurrence_rule
    assert continuation.recurrence_end_date == standup.recurrence_end_date
    assert continuation.reminder_minutes_before == 10
    assert continuation.members == standup.members
    assert plan.discard_exceptions_from == _dt(2024, 1, 22)
    assert not plan.delete_event

    combined = sorted(_january(original) + _january(continuation), key=lambda o: o.start)
    assert [(o.start, o.title) for o in combined] == [
        (_dt(2024, 1, 1), "Standup"),
        (_dt(2024, 1, 8), "Standup"),
        (_dt(2024, 1, 15), "Standup"),
        (_dt(2024, 1, 22), "Standup v2"),
        (_dt(2024, 1, 29), "Standup v2"),
    ]


def test_this_and_future_update_keeps_remaining_count():
    event = CalendarEventData(
        id=11,
        household_id=1,
        title="Swimming",
        start_time=_dt(2024, 1, 1),
        end_time=_dt(2024, 1, 1, 10),
        recurrence_rule=RecurrenceRule.parse("FREQ=DAILY;COUNT=5"),
    )

    plan = plan_update(
        event,
        [],
        EditScope.THIS_AND_FUTURE,
        _dt(2024, 1, 3),
        CalendarEventPatchData(location="Pool B"),
    )

    assert plan.updated_event.recurrence_end_date == _dt(2024, 1, 2)
    assert plan.created_event.recurrence_rule.count == 3
    assert plan.created_event.location == "Pool B"


def test_this_and_future_update_from_first_occurrence_replaces_series(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.THIS_AND_FUTURE,
        _dt(2024, 1, 1),
        CalendarEventPatchData(title="Standup v2"),
    )

    assert plan.delete_event
    assert plan.updated_event is None
    assert plan.created_event.title == "Standup v2"
    assert plan.created_event.start_time == _dt(2024, 1, 1)


def test_this_and_future_update_moves_continuation_start(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.THIS_AND_FUTURE,
        _dt(2024, 1, 15),
        CalendarEventPatchData(start_time=_dt(2024, 1, 15, 10), end_time=_dt(2024, 1, 15, 11)),
    )

    assert plan.updated_event.recurrence_end_date == _dt(2024, 1, 8)
    assert plan.created_event.start_time == _dt(2024, 1, 15, 10)
    assert plan.created_event.end_time == _dt(2024, 1, 15, 11)


def test_this_and_future_update_rejects_invalid_rule(standup):
    with pytest.raises(InvalidRecurrenceRuleError):
        plan_update(
            standup,
            [],
            EditScope.THIS_AND_FUTURE,
            _dt(2024, 1, 15),
            CalendarEventPatchData(recurrence_rule="FREQ=SOMETIMES"),
        )


def test_this_and_future_delete_caps_series(standup):
    plan = plan_delete(standup, [], EditScope.THIS_AND_FUTURE, _dt(2024, 1, 22))

    assert plan.updated_event.recurrence_end_date == _dt(2024, 1, 15)
    assert plan.created_event is None
    assert plan.discard_exceptions_from == _dt(2024, 1, 22)
    assert [o.start for o in _january(plan.updated_event)] == [
        _dt(2024, 1, 1),
        _dt(2024, 1, 8),
        _dt(2024, 1, 15),
    ]


def test_this_and_future_delete_from_first_occurrence_deletes_series(standup):
    plan = plan_delete(standup, [], EditScope.THIS_AND_FUTURE, _dt(2024, 1, 1))

    assert plan.delete_event
    assert plan.updated_event is None


def test_entire_series_delete(standup):
    plan = plan_delete(standup, [], EditScope.ENTIRE_SERIES, None)

    assert plan.delete_event


def test_apply_patch_rejects_end_before_start(single_event):
    with pytest.raises(InvalidTimeRangeError):
        apply_patch(single_event, CalendarEventPatchData(end_time=_dt(2024, 1, 3, 14)))


def test_apply_patch_moving_start_keeps_duration(single_event):
    updated = apply_patch(single_event, CalendarEventPatchData(start_time=_dt(2024, 1, 3, 18)))

    assert updated.start_time == _dt(2024, 1, 3, 18)
    assert updated.end_time == _dt(2024, 1, 3, 19)


def test_entire_series_update_moving_start_keeps_duration(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.ENTIRE_SERIES,
        None,
        CalendarEventPatchData(start_time=_dt(2024, 1, 1, 8)),
    )

    assert plan.updated_event.start_time == _dt(2024, 1, 1, 8)
    assert plan.updated_event.end_time == _dt(2024, 1, 1, 8, 30)


def test_this_and_future_update_moving_start_keeps_duration(standup):
    plan = plan_update(
        standup,
        [],
        EditScope.THIS_AND_FUTURE,
        _dt(2024, 1, 22),
        CalendarEventPatchData(start_time=_dt(2024, 1, 22, 9, 15)),
    )

    assert plan.created_event.start_time == _dt(2024, 1, 22, 9, 15)
    assert plan.created_event.end_time == _dt(2024, 1, 22, 9, 45)


def test_entire_series_update_rejects_start_past_recurrence_end(standup):
    with pytest.raises(InvalidTimeRangeError):
        plan_update(
            standup,
            [],
            EditScope.ENTIRE_SERIES,
            None,
            CalendarEventPatchData(start_time=_dt(2024, 3, 4)),
        )


def test_this_and_future_update_from_first_occurrence_rejects_start_past_recurrence_end(
    standup,
):
    with pytest.raises(InvalidTimeRangeError):
        plan_update(
            standup,
            [],
            EditScope.THIS_AND_FUTURE,
            _dt(2024, 1, 1),
            CalendarEventPatchData(start_time=_dt(2024, 3, 4)),
        )


def test_apply_patch_allows_start_on_recurrence_end(standup):
    updated = apply_patch(
        standup, CalendarEventPatchData(start_time=_dt(2024, 2, 1, 0))
    )

    assert expand_occurrence_starts(updated, _dt(2024, 1, 1, 0), _dt(2024, 3, 1, 0)) == [
        _dt(2024, 2, 1, 0)
    ]


@pytest.mark.parametrize(
    "rrule,start",
    [
        ("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH", _dt(2024, 1, 1)),
        ("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH;COUNT=9", _dt(2024, 1, 1)),
        ("FREQ=WEEKLY;BYDAY=WE;COUNT=6", _dt(2024, 1, 1)),
        ("FREQ=WEEKLY;BYDAY=WE", _dt(2024, 1, 1)),
        ("FREQ=MONTHLY;BYMONTHDAY=31", _dt(2024, 1, 31)),
        ("FREQ=MONTHLY;BYMONTHDAY=31;COUNT=5", _dt(2024, 1, 31)),
        ("FREQ=DAILY;INTERVAL=3;UNTIL=20240301T000000Z", _dt(2024, 1, 2)),
        ("FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=29;COUNT=3", _dt(2024, 2, 29)),
    ],
)
def test_this_and_future_split_preserves_occurrences(rrule, start):
    event = CalendarEventData(
        id=12,
        household_id=1,
        title="Chores",
        start_time=start,
        end_time=start + datetime.timedelta(hours=1),
        recurrence_rule=RecurrenceRule.parse(rrule),
    )
    window_start, window_end = _dt(2024, 1, 1, 0), _dt(2036, 1, 1, 0)
    original = expand_occurrence_starts(event, window_start, window_end)
    split_at = original[len(original) // 2]

    plan = plan_update(
        event, [], EditScope.THIS_AND_FUTURE, split_at, CalendarEventPatchData(title="Chores v2")
    )

    before = expand_occurrence_starts(plan.updated_event, window_start, window_end)
    after = expand_occurrence_starts(plan.created_event, window_start, window_end)
    assert before[-1] < split_at
    assert after[0] == split_at
    assert before + after == original


def test_build_members_keeps_last_participation_per_user():
    members = build_members(
        [
            EventMemberInputData(user_id=1),
            EventMemberInputData(user_id=2),
            EventMemberInputData(user_id=1, participation_type=ParticipationType.AWARE),
        ]
    )

    assert members == [
        EventMemberData(user_id=1, participation_type=ParticipationType.AWARE),
        EventMemberData(user_id=2),
    ]
