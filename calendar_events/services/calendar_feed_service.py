import datetime
import logging
import secrets
from collections.abc import Iterable, Mapping
from typing import Annotated

from django.conf import settings
from django.utils import timezone

from dependency_injector.wiring import Provide, inject
from icalendar import Alarm, Calendar, Event

from calendar_events.models import CalendarFeedToken
from calendar_events.recurrence import as_utc
from calendar_events.services.calendar_repository import CalendarEventRepository
from calendar_events.services.calendar_service import CalendarService
from calendar_events.services.dataclasses import CalendarOccurrence
from households.permissions import get_user_household_id


logger = logging.getLogger(__name__)

FEED_PRODUCT_ID = "-//Household Calendar//household-api//EN"
FEED_CALENDAR_NAME = "Household calendar"
FEED_UID_DOMAIN = "household-api"


def _occurrence_uid(occurrence: CalendarOccurrence) -> str:
    return f"{occurrence.event_id}-{occurrence.original_start:%Y%m%dT%H%M%SZ}@{FEED_UID_DOMAIN}"


def build_feed_calendar(
    occurrences: Iterable[CalendarOccurrence],
    reminder_minutes_by_event: Mapping[int, int],
    now: datetime.datetime,
) -> Calendar:
    """
    Build an iCalendar with one VEVENT per occurrence. Series are exported already expanded,
    so overrides and cancelled occurrences need no RRULE or EXDATE on the client side.
    """
    calendar = Calendar()
    calendar.add("prodid", FEED_PRODUCT_ID)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("x-wr-calname", FEED_CALENDAR_NAME)
    calendar.add("x-wr-timezone", "UTC")

    for occurrence in occurrences:
        vevent = Event()
        vevent.add("uid", _occurrence_uid(occurrence))
        vevent.add("dtstamp", now)
        vevent.add("summary", occurrence.title)
        if occurrence.description:
            vevent.add("description", occurrence.description)
        if occurrence.location:
            vevent.add("location", occurrence.location)

        if occurrence.is_all_day:
            start_date = occurrence.start.date()
            # DTEND of an all-day event is exclusive
            end_date = max(occurrence.end.date(), start_date + datetime.timedelta(days=1))
            vevent.add("dtstart", start_date)
            vevent.add("dtend", end_date)
        else:
            vevent.add("dtstart", occurrence.start)
            vevent.add("dtend", occurrence.end)

        reminder_minutes = reminder_minutes_by_event.get(occurrence.event_id)
        if reminder_minutes:
            alarm = Alarm()
            alarm.add("action", "DISPLAY")
            alarm.add("description", occurrence.title)
            alarm.add("trigger", -datetime.timedelta(minutes=reminder_minutes))
            vevent.add_component(alarm)

        calendar.add_component(vevent)

    return calendar


class CalendarFeedService:
    """
    Per-user feed tokens and the ICS feed they unlock. The feed covers the occurrences the
    user is a member of, from CALENDAR_FEED_PAST_DAYS ago to CALENDAR_FEED_FUTURE_DAYS ahead.
    """

    @inject
    def __init__(
        self,
        calendar_service: Annotated["CalendarService | None", Provide["calendar_service"]] = None,
        calendar_event_repository: Annotated[
            "CalendarEventRepository | None", Provide["calendar_event_repository"]
        ] = None,
    ) -> None:
        self.calendar_service = calendar_service
        self.calendar_event_repository = calendar_event_repository

    def _check_dependencies(self):
        if not self.calendar_service or not self.calendar_event_repository:
            raise ValueError(
                "calendar_service and calendar_event_repository must be defined, please "
                "configure your DI container correctly"
            )

    def create_token(self, household_id: int, user_id: int, label: str = "") -> CalendarFeedToken:
        feed_token = CalendarFeedToken.objects.create(
            household_id=household_id,
            user_id=user_id,
            label=label,
            token=secrets.token_urlsafe(32),
        )
        logger.info("Created calendar feed token %s for user %s", feed_token.id, user_id)
        return feed_token

    def revoke_token(self, feed_token: CalendarFeedToken) -> CalendarFeedToken:
        if not feed_token.is_revoked:
            feed_token.is_revoked = True
            feed_token.save(update_fields=["is_revoked", "modified"])
            logger.info("Revoked calendar feed token %s", feed_token.id)
        return feed_token

    def get_active_token(self, token: str) -> CalendarFeedToken | None:
        """
        The token record for ``token`` if it is not revoked and its user still belongs to the
        token's household.
        """
        # the household is only known once the token is found
        feed_token = (
            CalendarFeedToken.original_manager.select_related("user")
            .filter(token=token, is_revoked=False)
            .first()
        )
        if feed_token is None:
            return None
        if get_user_household_id(feed_token.user) != feed_token.household_id:
            return None
        return feed_token

    def generate_feed(self, token: str, now: datetime.datetime | None = None) -> bytes | None:
        """
        Serialized ICS feed for ``token``, or None when the token is unknown or revoked.
        """
        self._check_dependencies()

        feed_token = self.get_active_token(token)
        if feed_token is None:
            logger.warning("Calendar feed requested with an invalid or revoked token")
            return None

        now = as_utc(now or timezone.now()).replace(microsecond=0)
        occurrences = self.calendar_service.get_occurrences(
            feed_token.household_id,
            now - datetime.timedelta(days=settings.CALENDAR_FEED_PAST_DAYS),
            now + datetime.timedelta(days=settings.CALENDAR_FEED_FUTURE_DAYS),
            user_ids=[feed_token.user_id],
        )
        reminder_minutes_by_event = self.calendar_event_repository.get_reminder_minutes_by_event(
            feed_token.household_id, {occurrence.event_id for occurrence in occurrences}
        )
        logger.debug(
            "Serving %s occurrence(s) in calendar feed of user %s",
            len(occurrences),
            feed_token.user_id,
        )
        return build_feed_calendar(occurrences, reminder_minutes_by_event, now).to_ical()
