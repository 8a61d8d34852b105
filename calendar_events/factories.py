import datetime
import secrets

from model_bakery import baker

from .constants import ParticipationType
from .models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


class CalendarEventFactory:
    @staticmethod
    def create_event(
        household,
        title: str,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        recurrence_rule: str = "",
        involved=(),
        aware=(),
        **kwargs,
    ) -> CalendarEvent:
        """
        Create a calendar event with its members.

        Args:
            household: Household instance
            title: Event title
            start_time: Event start time
            end_time: Event end time
            recurrence_rule: RRULE string, empty for single events
            involved: users that are busy during the event
            aware: users that only need to know about it
            **kwargs: Additional CalendarEvent fields

        Returns:
            CalendarEvent instance
        """
        event = CalendarEvent.objects.create(
            household=household,
            title=title,
            start_time=start_time,
            end_time=end_time,
            recurrence_rule=recurrence_rule,
            **kwargs,
        )
        for user in involved:
            CalendarEventMember.objects.create(
                event=event, user=user, participation_type=ParticipationType.INVOLVED
            )
        for user in aware:
            CalendarEventMember.objects.create(
                event=event, user=user, participation_type=ParticipationType.AWARE
            )
        return event

    @staticmethod
    def create_exception(
        event: CalendarEvent, original_start_time: datetime.datetime, **kwargs
    ) -> CalendarEventException:
        return CalendarEventException.objects.create(
            event=event, original_start_time=original_start_time, **kwargs
        )


class ExternalCalendarFactory:
    @staticmethod
    def create_subscription(household, user, **kwargs) -> ExternalCalendarSubscription:
        return baker.make(
            ExternalCalendarSubscription,
            household=household,
            user=user,
            ics_url=kwargs.pop("ics_url", "https://example.com/calendar.ics"),
            **kwargs,
        )

    @staticmethod
    def create_external_event(
        subscription: ExternalCalendarSubscription,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        **kwargs,
    ) -> ExternalCalendarEvent:
        return baker.make(
            ExternalCalendarEvent,
            subscription=subscription,
            start_time=start_time,
            end_time=end_time,
            **kwargs,
        )


class CalendarFeedTokenFactory:
    @staticmethod
    def create_token(household, user, **kwargs) -> CalendarFeedToken:
        return baker.make(
            CalendarFeedToken,
            household=household,
            user=user,
            token=kwargs.pop("token", None) or secrets.token_urlsafe(32),
            **kwargs,
        )
