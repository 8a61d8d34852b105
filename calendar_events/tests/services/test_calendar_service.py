import datetime

import pytest

from calendar_events.constants import EditScope, OccurrenceSourceKind, ParticipationType
from calendar_events.exceptions import (
    EmptyUserListError,
    EntityNotFoundError,
    InvalidDurationError,
    InvalidRecurrenceRuleError,
    InvalidScopeError,
    InvalidTimeRangeError,
)
from calendar_events.factories import CalendarEventFactory, ExternalCalendarFactory
from calendar_events.models import CalendarEvent, CalendarEventException, CalendarEventMember
from calendar_events.services.calendar_repository import CalendarEventRepository
from calendar_events.services.calendar_service import CalendarService
from calendar_events.services.dataclasses import (
    AvailableSlot,
    CalendarEventInputData,
    CalendarEventPatchData,
    EventMemberInputData,
)
from households.factories import HouseholdFactory
from users.factories import UserFactory


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def calendar_service():
    return CalendarService(calendar_event_repository=CalendarEventRepository())


@pytest.fixture
def standup(household, user):
    """Weekly event from Mon 2024-01-01 09:00 UTC ending on 2024-02-01."""
    return CalendarEventFactory.create_event(
        household,
        title="Standup",
        start_time=_dt(2024, 1, 1),
        end_time=_dt(2024, 1, 1, 9, 30),
        recurrence_rule="FREQ=WEEKLY",
        recurrence_end_date=_dt(2024, 2, 1, 0),
        involved=[user],
        created_by=user,
    )


@pytest.fixture
def other_household_event():
    outsider = UserFactory().create_user()
    other_household = HouseholdFactory().create_household(members=[outsider])
    return CalendarEventFactory.create_event(
        other_household,
        title="Someone else's event",
        start_time=_dt(2024, 1, 2),
        end_time=_dt(2024, 1, 2, 10),
        involved=[outsider],
    )


def _titles_by_start(occurrences):
    return [(o.start, o.title) for o in occurrences]


@pytest.mark.django_db
class TestCreateEvent:
    def test_create_recurring_event_adds_creator(
        self, calendar_service, household, user, other_member
    ):
        event = calendar_service.create_event(
            household.id,
            user.id,
            CalendarEventInputData(
                title="Swimming",
                start_time=datetime.datetime(2024, 1, 2, 17, 0, 0, 123456, tzinfo=datetime.UTC),
                end_time=_dt(2024, 1, 2, 18),
                recurrence_rule="RRULE:FREQ=WEEKLY;BYDAY=TU",
                reminder_minutes_before=30,
                members=[
                    EventMemberInputData(
                        user_id=other_member.id, participation_type=ParticipationType.AWARE
                    )
                ],
            ),
        )

        stored = CalendarEvent.objects.filter_by_household(household.id).get(id=event.id)
        assert stored.start_time == _dt(2024, 1, 2, 17)
        assert stored.recurrence_rule == "FREQ=WEEKLY;BYDAY=TU"
        assert stored.created_by == user
        assert {
            (m.user_id, m.participation_type) for m in CalendarEventMember.objects.filter(event=stored)
        } == {
            (user.id, ParticipationType.INVOLVED),
            (other_member.id, ParticipationType.AWARE),
        }
        assert event.recurrence_rule.by_weekday == ("TU",)

    def test_create_rejects_users_outside_household(
        self, calendar_service, household, user, other_household_event
    ):
        outsider_id = other_household_event.members.get().user_id

        with pytest.raises(EntityNotFoundError):
            calendar_service.create_event(
                household.id,
                user.id,
                CalendarEventInputData(
                    title="Party",
                    start_time=_dt(2024, 1, 5, 20),
                    end_time=_dt(2024, 1, 5, 23),
                    members=[EventMemberInputData(user_id=outsider_id)],
                ),
            )

        assert not CalendarEvent.objects.filter_by_household(household.id).exists()

    def test_create_rejects_invalid_input(self, calendar_service, household, user):
        with pytest.raises(InvalidRecurrenceRuleError):
            calendar_service.create_event(
                household.id,
                user.id,
                CalendarEventInputData(
                    title="Bad rule",
                    start_time=_dt(2024, 1, 5),
                    end_time=_dt(2024, 1, 5, 10),
                    recurrence_rule="FREQ=EVERY_OTHER_DAY",
                ),
            )

        with pytest.raises(InvalidTimeRangeError):
            calendar_service.create_event(
                household.id,
                user.id,
                CalendarEventInputData(
                    title="Backwards",
                    start_time=_dt(2024, 1, 5, 10),
                    end_time=_dt(2024, 1, 5, 9),
                ),
            )


@pytest.mark.django_db
class TestGetOccurrences:
    def test_occurrences_apply_exceptions(self, calendar_service, household, standup):
        CalendarEventFactory.create_exception(standup, _dt(2024, 1, 15), is_deleted=True)
        CalendarEventFactory.create_exception(
            standup, _dt(2024, 1, 22), override_title="Standup (remote)"
        )

        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 2, 1, 0)
        )

        assert _titles_by_start(occurrences) == [
            (_dt(2024, 1, 1), "Standup"),
            (_dt(2024, 1, 8), "Standup"),
            (_dt(2024, 1, 22), "Standup (remote)"),
            (_dt(2024, 1, 29), "Standup"),
        ]

    def test_occurrences_overlapping_range_start_are_included(
        self, calendar_service, household, standup
    ):
        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 8, 9, 15), _dt(2024, 1, 9, 0)
        )

        assert _titles_by_start(occurrences) == [(_dt(2024, 1, 8), "Standup")]

    def test_occurrences_are_scoped_to_household(
        self, calendar_service, household, standup, other_household_event
    ):
        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 1, 8, 0)
        )

        assert {o.event_id for o in occurrences} == {standup.id}

    def test_occurrences_include_external_events(
        self, calendar_service, household, standup, other_member
    ):
        subscription = ExternalCalendarFactory.create_subscription(
            household, other_member, name="Work", color="#00ff00"
        )
        ExternalCalendarFactory.create_external_event(
            subscription,
            start_time=_dt(2024, 1, 1, 8),
            end_time=_dt(2024, 1, 1, 12),
            title="Offsite",
        )
        inactive = ExternalCalendarFactory.create_subscription(
            household, other_member, name="Old", is_active=False
        )
        ExternalCalendarFactory.create_external_event(
            inactive, start_time=_dt(2024, 1, 1, 8), end_time=_dt(2024, 1, 1, 9)
        )

        without_external = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 1, 2, 0)
        )
        with_external = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 1, 2, 0), include_external=True
        )

        assert len(without_external) == 1
        assert [(o.source_kind, o.title) for o in with_external] == [
            (OccurrenceSourceKind.EXTERNAL, "Offsite"),
            (OccurrenceSourceKind.HOUSEHOLD, "Standup"),
        ]
        assert with_external[0].owner_user_id == other_member.id
        assert with_external[0].color == "#00ff00"

    def test_occurrences_filtered_by_user(
        self, calendar_service, household, standup, other_member
    ):
        CalendarEventFactory.create_event(
            household,
            title="Football",
            start_time=_dt(2024, 1, 3, 18),
            end_time=_dt(2024, 1, 3, 19),
            aware=[other_member],
        )

        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 1, 8, 0), user_ids=[other_member.id]
        )

        assert [o.title for o in occurrences] == ["Football"]

    def test_range_limits(self, calendar_service, household):
        with pytest.raises(InvalidTimeRangeError):
            calendar_service.get_occurrences(household.id, _dt(2024, 1, 2), _dt(2024, 1, 1))

        with pytest.raises(InvalidTimeRangeError):
            calendar_service.get_occurrences(household.id, _dt(2024, 1, 1), _dt(2026, 1, 1))

    def test_upcoming_occurrences(self, calendar_service, household, standup):
        occurrences = calendar_service.get_upcoming_occurrences(
            household.id, days=11, now=_dt(2024, 1, 5, 0)
        )

        assert [o.start for o in occurrences] == [_dt(2024, 1, 8), _dt(2024, 1, 15)]


@pytest.mark.django_db
class TestUpdateAndDeleteEvent:
    def test_this_and_future_update_splits_series(self, calendar_service, household, user, standup):
        CalendarEventFactory.create_exception(
            standup, _dt(2024, 1, 8), override_title="Standup (late)", override_start_time=_dt(2024, 1, 8, 10)
        )
        CalendarEventFactory.create_exception(standup, _dt(2024, 1, 29), is_deleted=True)

        result = calendar_service.update_event(
            household.id,
            standup.id,
            EditScope.THIS_AND_FUTURE,
            _dt(2024, 1, 22),
            CalendarEventPatchData(title="Standup v2"),
        )

        assert result.updated_event_ids == [standup.id]
        assert len(result.created_event_ids) == 1
        standup.refresh_from_db()
        assert standup.recurrence_end_date == _dt(2024, 1, 15)
        assert list(
            CalendarEventException.objects.filter(event=standup).values_list(
                "original_start_time", flat=True
            )
        ) == [_dt(2024, 1, 8)]

        continuation = CalendarEvent.objects.filter_by_household(household.id).get(
            id=result.created_event_ids[0]
        )
        assert continuation.title == "Standup v2"
        assert continuation.start_time == _dt(2024, 1, 22)
        assert continuation.recurrence_rule == "FREQ=WEEKLY"
        assert list(continuation.members.values_list("user_id", flat=True)) == [user.id]

        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 2, 1, 0)
        )
        assert _titles_by_start(occurrences) == [
            (_dt(2024, 1, 1), "Standup"),
            (_dt(2024, 1, 8, 10), "Standup (late)"),
            (_dt(2024, 1, 15), "Standup"),
            (_dt(2024, 1, 22), "Standup v2"),
            (_dt(2024, 1, 29), "Standup v2"),
        ]

    def test_this_and_future_update_moving_start_keeps_duration(
        self, calendar_service, household, standup
    ):
        result = calendar_service.update_event(
            household.id,
            standup.id,
            EditScope.THIS_AND_FUTURE,
            _dt(2024, 1, 22),
            CalendarEventPatchData(start_time=_dt(2024, 1, 22, 9, 15)),
        )

        continuation = CalendarEvent.objects.filter_by_household(household.id).get(
            id=result.created_event_ids[0]
        )
        assert continuation.start_time == _dt(2024, 1, 22, 9, 15)
        assert continuation.end_time == _dt(2024, 1, 22, 9, 45)

    def test_this_and_future_update_past_recurrence_end_keeps_series(
        self, calendar_service, household, standup
    ):
        with pytest.raises(InvalidTimeRangeError):
            calendar_service.update_event(
                household.id,
                standup.id,
                EditScope.THIS_AND_FUTURE,
                _dt(2024, 1, 1),
                CalendarEventPatchData(start_time=_dt(2024, 3, 4)),
            )

        standup.refresh_from_db()
        assert standup.start_time == _dt(2024, 1, 1)
        assert CalendarEvent.objects.filter_by_household(household.id).count() == 1

    def test_this_occurrence_update_upserts_exception(self, calendar_service, household, standup):
        for title in ("First try", "Second try"):
            calendar_service.update_event(
                household.id,
                standup.id,
                EditScope.THIS_OCCURRENCE,
                _dt(2024, 1, 8),
                CalendarEventPatchData(title=title),
            )

        exception = CalendarEventException.objects.get(event=standup)
        assert exception.original_start_time == _dt(2024, 1, 8)
        assert exception.override_title == "Second try"
        assert not exception.is_deleted

    def test_entire_series_update_replaces_members(
        self, calendar_service, household, user, other_member, standup
    ):
        calendar_service.update_event(
            household.id,
            standup.id,
            EditScope.ENTIRE_SERIES,
            None,
            CalendarEventPatchData(
                location="Kitchen",
                members=[
                    EventMemberInputData(
                        user_id=other_member.id, participation_type=ParticipationType.AWARE
                    )
                ],
            ),
        )

        standup.refresh_from_db()
        assert standup.location == "Kitchen"
        assert list(standup.members.values_list("user_id", "participation_type")) == [
            (other_member.id, ParticipationType.AWARE)
        ]

    def test_this_occurrence_on_single_event_is_rejected(self, calendar_service, household, user):
        event = CalendarEventFactory.create_event(
            household,
            title="Dentist",
            start_time=_dt(2024, 1, 3, 15),
            end_time=_dt(2024, 1, 3, 16),
            involved=[user],
        )

        with pytest.raises(InvalidScopeError):
            calendar_service.delete_event(
                household.id, event.id, EditScope.THIS_OCCURRENCE, _dt(2024, 1, 3, 15)
            )

        assert CalendarEvent.objects.filter_by_household(household.id).filter(id=event.id).exists()

    def test_this_occurrence_delete(self, calendar_service, household, standup):
        calendar_service.delete_event(
            household.id, standup.id, EditScope.THIS_OCCURRENCE, _dt(2024, 1, 15)
        )

        exception = CalendarEventException.objects.get(event=standup)
        assert exception.is_deleted
        occurrences = calendar_service.get_occurrences(
            household.id, _dt(2024, 1, 1, 0), _dt(2024, 2, 1, 0)
        )
        assert [o.start for o in occurrences] == [
            _dt(2024, 1, 1),
            _dt(2024, 1, 8),
            _dt(2024, 1, 22),
            _dt(2024, 1, 29),
        ]

    @pytest.mark.parametrize(
        "scope,occurrence_start",
        [(EditScope.ENTIRE_SERIES, None), (EditScope.THIS_AND_FUTURE, _dt(2024, 1, 1))],
    )
    def test_delete_whole_series(
        self, calendar_service, household, standup, scope, occurrence_start
    ):
        CalendarEventFactory.create_exception(standup, _dt(2024, 1, 8), is_deleted=True)

        result = calendar_service.delete_event(household.id, standup.id, scope, occurrence_start)

        assert result.deleted_event_ids == [standup.id]
        assert not CalendarEvent.objects.filter_by_household(household.id).exists()
        assert not CalendarEventException.objects.exists()
        assert not CalendarEventMember.objects.exists()

    def test_mutating_other_household_event_is_not_found(
        self, calendar_service, household, other_household_event
    ):
        with pytest.raises(EntityNotFoundError):
            calendar_service.delete_event(
                household.id, other_household_event.id, EditScope.ENTIRE_SERIES
            )

        with pytest.raises(EntityNotFoundError):
            calendar_service.get_event(household.id, other_household_event.id)


@pytest.mark.django_db
class TestAvailability:
    @pytest.fixture
    def busy_monday(self, household, user, other_member):
        CalendarEventFactory.create_event(
            household,
            title="A busy",
            start_time=_dt(2024, 1, 1, 9),
            end_time=_dt(2024, 1, 1, 10),
            involved=[user],
            aware=[other_member],
        )
        CalendarEventFactory.create_event(
            household,
            title="B busy",
            start_time=_dt(2024, 1, 1, 9, 30),
            end_time=_dt(2024, 1, 1, 10, 30),
            involved=[other_member],
        )

    def test_free_busy(self, calendar_service, household, user, other_member, busy_monday):
        subscription = ExternalCalendarFactory.create_subscription(household, other_member)
        ExternalCalendarFactory.create_external_event(
            subscription, start_time=_dt(2024, 1, 1, 13), end_time=_dt(2024, 1, 1, 14), title="Gym"
        )

        free_busy = calendar_service.get_free_busy(
            household.id, [user.id, other_member.id], _dt(2024, 1, 1, 0), _dt(2024, 1, 2, 0)
        )

        assert [(f.user_id, f.display_name) for f in free_busy] == [
            (user.id, "Alex Doe"),
            (other_member.id, "Sam Doe"),
        ]
        assert [(i.start, i.end) for i in free_busy[0].busy] == [
            (_dt(2024, 1, 1, 9), _dt(2024, 1, 1, 10))
        ]
        assert [(i.start, i.source) for i in free_busy[1].busy] == [
            (_dt(2024, 1, 1, 9, 30), OccurrenceSourceKind.HOUSEHOLD),
            (_dt(2024, 1, 1, 13), OccurrenceSourceKind.EXTERNAL),
        ]

    def test_free_busy_validation(self, calendar_service, household, other_household_event):
        with pytest.raises(EmptyUserListError):
            calendar_service.get_free_busy(household.id, [], _dt(2024, 1, 1), _dt(2024, 1, 2))

        outsider_id = other_household_event.members.get().user_id
        with pytest.raises(EntityNotFoundError):
            calendar_service.get_free_busy(
                household.id, [outsider_id], _dt(2024, 1, 1), _dt(2024, 1, 2)
            )

    def test_find_available_slots(
        self, calendar_service, household, user, other_member, busy_monday
    ):
        slots = calendar_service.find_available_slots(
            household.id,
            [user.id, other_member.id],
            30,
            _dt(2024, 1, 1, 9),
            _dt(2024, 1, 1, 11),
        )

        assert slots == [AvailableSlot(start=_dt(2024, 1, 1, 10, 30), end=_dt(2024, 1, 1, 11))]

    def test_find_available_slots_validation(self, calendar_service, household, user):
        with pytest.raises(InvalidDurationError):
            calendar_service.find_available_slots(
                household.id, [user.id], 0, _dt(2024, 1, 1, 9), _dt(2024, 1, 1, 11)
            )

        with pytest.raises(InvalidTimeRangeError):
            calendar_service.find_available_slots(
                household.id, [user.id], 30, _dt(2024, 1, 1), _dt(2024, 3, 1)
            )


@pytest.mark.django_db
def test_get_due_reminders(calendar_service, household, user, other_member):
    CalendarEventFactory.create_event(
        household,
        title="School run",
        start_time=_dt(2024, 1, 1, 8),
        end_time=_dt(2024, 1, 1, 8, 30),
        recurrence_rule="FREQ=DAILY",
        reminder_minutes_before=15,
        involved=[user],
        aware=[other_member],
    )
    CalendarEventFactory.create_event(
        household,
        title="No reminder",
        start_time=_dt(2024, 1, 3, 8),
        end_time=_dt(2024, 1, 3, 9),
        involved=[user],
    )

    reminders = calendar_service.get_due_reminders(household.id, now=_dt(2024, 1, 3, 7, 50))

    assert [(r.title, r.start, r.user_ids) for r in reminders] == [
        ("School run", _dt(2024, 1, 3, 8), [user.id])
    ]
