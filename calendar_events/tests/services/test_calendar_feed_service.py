import datetime

import pytest
from icalendar import Calendar

from calendar_events.factories import CalendarEventFactory, CalendarFeedTokenFactory
from calendar_events.models import CalendarFeedToken
from calendar_events.services.calendar_feed_service import (
    CalendarFeedService,
    build_feed_calendar,
)
from calendar_events.services.calendar_repository import CalendarEventRepository
from calendar_events.services.calendar_service import CalendarService
from calendar_events.services.dataclasses import CalendarOccurrence
from households.models import HouseholdMembership


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def calendar_feed_service():
    repository = CalendarEventRepository()
    return CalendarFeedService(
        calendar_service=CalendarService(calendar_event_repository=repository),
        calendar_event_repository=repository,
    )


@pytest.fixture
def standup(household, user):
    return CalendarEventFactory.create_event(
        household,
        title="Standup",
        start_time=_dt(2024, 1, 1),
        end_time=_dt(2024, 1, 1, 9, 30),
        recurrence_rule="FREQ=WEEKLY",
        recurrence_end_date=_dt(2024, 2, 1, 0),
        reminder_minutes_before=10,
        involved=[user],
    )


@pytest.fixture
def feed_token(household, user):
    return CalendarFeedTokenFactory.create_token(household, user, label="Phone")


def _vevents(feed: bytes):
    return Calendar.from_ical(feed).walk("VEVENT")


@pytest.mark.django_db
class TestCalendarFeedService:
    def test_create_token(self, calendar_feed_service, household, user):
        feed_token = calendar_feed_service.create_token(household.id, user.id, label="Laptop")

        assert feed_token.household_id == household.id
        assert feed_token.user_id == user.id
        assert feed_token.label == "Laptop"
        assert len(feed_token.token) >= 32
        assert not feed_token.is_revoked

    def test_tokens_are_unique(self, calendar_feed_service, household, user):
        first = calendar_feed_service.create_token(household.id, user.id)
        second = calendar_feed_service.create_token(household.id, user.id)

        assert first.token != second.token

    def test_revoke_token(self, calendar_feed_service, household, feed_token):
        calendar_feed_service.revoke_token(feed_token)

        feed_token.refresh_from_db()
        assert feed_token.is_revoked
        assert calendar_feed_service.get_active_token(feed_token.token) is None

    def test_generate_feed_expands_member_occurrences(
        self, calendar_feed_service, household, user, other_member, standup, feed_token
    ):
        CalendarEventFactory.create_exception(
            standup, _dt(2024, 1, 15), is_deleted=True
        )
        CalendarEventFactory.create_exception(
            standup, _dt(2024, 1, 22), override_title="Standup (remote)"
        )
        CalendarEventFactory.create_event(
            household,
            title="Sam's gym",
            start_time=_dt(2024, 1, 9, 18),
            end_time=_dt(2024, 1, 9, 19),
            involved=[other_member],
        )

        feed = calendar_feed_service.generate_feed(feed_token.token, now=_dt(2024, 1, 10))

        vevents = _vevents(feed)
        assert [str(vevent["SUMMARY"]) for vevent in vevents] == [
            "Standup",
            "Standup",
            "Standup (remote)",
            "Standup",
        ]
        assert [vevent.decoded("DTSTART") for vevent in vevents] == [
            _dt(2024, 1, 1),
            _dt(2024, 1, 8),
            _dt(2024, 1, 22),
            _dt(2024, 1, 29),
        ]
        assert vevents[0].decoded("DTEND") == _dt(2024, 1, 1, 9, 30)
        assert str(vevents[1]["UID"]) == f"{standup.id}-20240108T090000Z@household-api"
        assert len({str(vevent["UID"]) for vevent in vevents}) == 4

    def test_generate_feed_adds_reminder_alarm(self, calendar_feed_service, standup, feed_token):
        feed = calendar_feed_service.generate_feed(feed_token.token, now=_dt(2024, 1, 10))

        alarms = _vevents(feed)[0].walk("VALARM")
        assert len(alarms) == 1
        assert str(alarms[0]["ACTION"]) == "DISPLAY"
        assert alarms[0].decoded("TRIGGER") == -datetime.timedelta(minutes=10)

    def test_generate_feed_window(self, calendar_feed_service, standup, feed_token):
        feed = calendar_feed_service.generate_feed(feed_token.token, now=_dt(2024, 6, 1))

        assert _vevents(feed) == []

    @pytest.mark.parametrize("token", ["unknown", ""])
    def test_generate_feed_unknown_token(self, calendar_feed_service, feed_token, token):
        assert calendar_feed_service.generate_feed(token) is None

    def test_generate_feed_revoked_token(self, calendar_feed_service, household, user):
        feed_token = CalendarFeedTokenFactory.create_token(household, user, is_revoked=True)

        assert calendar_feed_service.generate_feed(feed_token.token) is None

    def test_generate_feed_after_user_left_household(
        self, calendar_feed_service, user, feed_token
    ):
        HouseholdMembership.objects.filter(user=user).delete()

        assert calendar_feed_service.generate_feed(feed_token.token) is None
        assert CalendarFeedToken.original_manager.filter(id=feed_token.id).exists()


def test_build_feed_calendar_all_day_occurrence():
    occurrence = CalendarOccurrence(
        event_id=7,
        original_start=_dt(2024, 3, 2, 0),
        start=_dt(2024, 3, 2, 0),
        end=_dt(2024, 3, 2, 0) + datetime.timedelta(hours=23, minutes=59),
        title="Spring cleaning",
        location="Home",
        is_all_day=True,
    )

    calendar = build_feed_calendar([occurrence], {}, now=_dt(2024, 3, 1))

    (vevent,) = calendar.walk("VEVENT")
    assert vevent.decoded("DTSTART") == datetime.date(2024, 3, 2)
    assert vevent.decoded("DTEND") == datetime.date(2024, 3, 3)
    assert str(vevent["LOCATION"]) == "Home"
    assert vevent.walk("VALARM") == []
    assert str(calendar["PRODID"]) == "-//Household Calendar//household-api//EN"
