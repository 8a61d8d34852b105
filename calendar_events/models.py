from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator, URLValidator
from django.db import models

from calendar_events.constants import (
    COLOR_MAX_LENGTH,
    FEED_LABEL_MAX_LENGTH,
    FEED_TOKEN_MAX_LENGTH,
    ICS_URL_MAX_LENGTH,
    ICS_URL_SCHEMES,
    LOCATION_MAX_LENGTH,
    RECURRENCE_RULE_MAX_LENGTH,
    REMINDER_MINUTES_MAX,
    REMINDER_MINUTES_MIN,
    SYNC_INTERVAL_MINUTES_MAX,
    SYNC_INTERVAL_MINUTES_MIN,
    TITLE_MAX_LENGTH,
    ExternalCalendarSyncStatus,
    ParticipationType,
)
from calendar_events.exceptions import InvalidRecurrenceRuleError
from calendar_events.recurrence import RecurrenceRule
from common.models import BaseModel
from households.models import HouseholdModel


if TYPE_CHECKING:
    from django_stubs_ext.db.models.manager import RelatedManager


class CalendarEvent(HouseholdModel):
    """
    Represents an event on the household calendar. When `recurrence_rule` is set the event
    is the definition of a whole series of occurrences.
    """

    title = models.CharField(max_length=TITLE_MAX_LENGTH)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=LOCATION_MAX_LENGTH, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    is_all_day = models.BooleanField(default=False)

    recurrence_rule = models.CharField(
        max_length=RECURRENCE_RULE_MAX_LENGTH,
        blank=True,
        help_text="RRULE string, e.g. 'FREQ=WEEKLY;BYDAY=MO,WE'. Empty for single events.",
    )
    recurrence_end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="No occurrence starts after this instant. An occurrence starting on it is kept.",
    )
    reminder_minutes_before = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[
            MinValueValidator(REMINDER_MINUTES_MIN),
            MaxValueValidator(REMINDER_MINUTES_MAX),
        ],
    )
    color = models.CharField(max_length=COLOR_MAX_LENGTH, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_calendar_events",
    )

    members: "RelatedManager[CalendarEventMember]"
    exceptions: "RelatedManager[CalendarEventException]"

    def __str__(self):
        return f"{self.title} ({self.start_time} - {self.end_time})"

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def duration(self):
        return self.end_time - self.start_time

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError("End time must be after start time.")

        if self.recurrence_rule:
            try:
                RecurrenceRule.parse(self.recurrence_rule)
            except InvalidRecurrenceRuleError as e:
                raise ValidationError({"recurrence_rule": str(e)}) from e

        if (
            self.recurrence_end_date
            and self.start_time
            and self.recurrence_end_date < self.start_time
        ):
            raise ValidationError("Recurrence end date cannot be before the start time.")


class CalendarEventMember(BaseModel):
    """
    A household user taking part in an event. Only `involved` members are busy during it.
    """

    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_event_memberships",
    )
    participation_type = models.CharField(
        max_length=20,
        choices=ParticipationType,
        default=ParticipationType.INVOLVED,
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_calendar_event_member"),
        ]

    def __str__(self):
        return f"{self.user} ({self.participation_type}) in {self.event}"


class CalendarEventException(BaseModel):
    """
    Cancels or overrides one occurrence of a recurring event, keyed by the start time the
    series generates for it.
    """

    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name="exceptions")
    original_start_time = models.DateTimeField(
        help_text="The generated start time of the occurrence being excepted"
    )
    is_deleted = models.BooleanField(
        default=False, help_text="True if this occurrence is cancelled, False if it's modified"
    )
    override_title = models.CharField(max_length=TITLE_MAX_LENGTH, null=True, blank=True)
    override_description = models.TextField(null=True, blank=True)
    override_location = models.CharField(max_length=LOCATION_MAX_LENGTH, null=True, blank=True)
    override_start_time = models.DateTimeField(null=True, blank=True)
    override_end_time = models.DateTimeField(null=True, blank=True)
    override_is_all_day = models.BooleanField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["event", "original_start_time"],
                name="unique_calendar_event_exception",
            ),
        ]

    def __str__(self):
        status = "cancelled" if self.is_deleted else "modified"
        return f"Exception for {self.event_id} on {self.original_start_time} ({status})"


class ExternalCalendarSubscription(HouseholdModel):
    """
    An ICS feed a household member subscribed to. Its events are synced elsewhere and are
    read here as busy time for that member.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="external_calendar_subscriptions",
    )
    name = models.CharField(max_length=255)
    ics_url = models.CharField(
        max_length=ICS_URL_MAX_LENGTH,
        validators=[URLValidator(schemes=ICS_URL_SCHEMES)],
        help_text="http, https or webcal URL of the ICS feed.",
    )
    color = models.CharField(max_length=COLOR_MAX_LENGTH, blank=True)
    sync_interval_minutes = models.PositiveIntegerField(
        default=60,
        validators=[
            MinValueValidator(SYNC_INTERVAL_MINUTES_MIN),
            MaxValueValidator(SYNC_INTERVAL_MINUTES_MAX),
        ],
    )
    last_synced_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(
        max_length=20,
        choices=ExternalCalendarSyncStatus,
        default=ExternalCalendarSyncStatus.NOT_STARTED,
    )
    is_active = models.BooleanField(default=True)

    events: "RelatedManager[ExternalCalendarEvent]"

    def __str__(self):
        return self.name


class ExternalCalendarEvent(BaseModel):
    """
    An event read from an external calendar subscription. Always counts as busy.
    """

    subscription = models.ForeignKey(
        ExternalCalendarSubscription, on_delete=models.CASCADE, related_name="events"
    )
    external_uid = models.CharField(max_length=1024)
    title = models.CharField(max_length=TITLE_MAX_LENGTH, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    is_all_day = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "external_uid"],
                name="unique_external_calendar_event_uid",
            ),
        ]

    def __str__(self):
        return f"{self.title} ({self.start_time} - {self.end_time})"


class CalendarFeedToken(HouseholdModel):
    """
    Secret token that lets calendar clients read a member's events as a public ICS feed.
    Revoked tokens stop serving the feed but are kept until deleted.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_feed_tokens",
    )
    token = models.CharField(max_length=FEED_TOKEN_MAX_LENGTH, unique=True)
    label = models.CharField(max_length=FEED_LABEL_MAX_LENGTH, blank=True)
    is_revoked = models.BooleanField(default=False)

    def __str__(self):
        return self.label or f"Feed token {self.id} of {self.user}"
