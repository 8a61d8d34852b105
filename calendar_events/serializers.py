import datetime
from typing import TYPE_CHECKING, Annotated

from django.conf import settings
from django.urls import reverse

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from calendar_events.constants import (
    COLOR_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    LOCATION_MAX_LENGTH,
    RECURRENCE_RULE_MAX_LENGTH,
    REMINDER_MINUTES_MAX,
    REMINDER_MINUTES_MIN,
    SLOT_DURATION_MINUTES_MAX,
    TITLE_MAX_LENGTH,
    EditScope,
    OccurrenceSourceKind,
    ParticipationType,
)
from calendar_events.exceptions import CalendarEventsError, InvalidRecurrenceRuleError
from calendar_events.models import (
    CalendarEvent,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarSubscription,
)
from calendar_events.recurrence import RecurrenceRule
from calendar_events.services.dataclasses import (
    CalendarEventInputData,
    CalendarEventPatchData,
    EventMemberInputData,
)
from households.permissions import get_user_household_id


if TYPE_CHECKING:
    from calendar_events.services.calendar_feed_service import CalendarFeedService
    from calendar_events.services.calendar_service import CalendarService


def _validate_rrule_string(value: str) -> str:
    if not value:
        return value
    try:
        RecurrenceRule.parse(value)
    except InvalidRecurrenceRuleError as e:
        raise serializers.ValidationError(str(e)) from e
    return value


class CalendarEventMemberSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(read_only=True)
    display_name = serializers.CharField(source="user.display_name", read_only=True)

    class Meta:
        model = CalendarEventMember
        fields = (
            "id",
            "user_id",
            "display_name",
            "participation_type",
        )
        read_only_fields = fields


class CalendarEventSerializer(serializers.ModelSerializer):
    members = CalendarEventMemberSerializer(many=True, read_only=True)
    is_recurring = serializers.BooleanField(read_only=True)
    created_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = CalendarEvent
        fields = (
            "id",
            "title",
            "description",
            "location",
            "start_time",
            "end_time",
            "is_all_day",
            "recurrence_rule",
            "recurrence_end_date",
            "reminder_minutes_before",
            "color",
            "is_recurring",
            "created_by_id",
            "members",
            "created",
            "modified",
        )
        read_only_fields = fields


class EventMemberInputSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)
    participation_type = serializers.ChoiceField(
        choices=ParticipationType.choices, default=ParticipationType.INVOLVED
    )


class CalendarEventCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=TITLE_MAX_LENGTH)
    description = serializers.CharField(
        max_length=DESCRIPTION_MAX_LENGTH, required=False, allow_blank=True, default=""
    )
    location = serializers.CharField(
        max_length=LOCATION_MAX_LENGTH, required=False, allow_blank=True, default=""
    )
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    is_all_day = serializers.BooleanField(required=False, default=False)
    recurrence_rule = serializers.CharField(
        max_length=RECURRENCE_RULE_MAX_LENGTH,
        required=False,
        allow_blank=True,
        default="",
        help_text="RRULE string, e.g. 'FREQ=WEEKLY;BYDAY=MO,WE'",
    )
    recurrence_end_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    reminder_minutes_before = serializers.IntegerField(
        min_value=REMINDER_MINUTES_MIN,
        max_value=REMINDER_MINUTES_MAX,
        required=False,
        allow_null=True,
        default=None,
    )
    color = serializers.CharField(
        max_length=COLOR_MAX_LENGTH, required=False, allow_blank=True, default=""
    )
    members = EventMemberInputSerializer(many=True, allow_empty=False)

    @inject
    def __init__(
        self,
        *args,
        calendar_service: Annotated["CalendarService | None", Provide["calendar_service"]] = None,
        **kwargs,
    ):
        self.calendar_service = calendar_service
        super().__init__(*args, **kwargs)

    def validate_recurrence_rule(self, recurrence_rule):
        return _validate_rrule_string(recurrence_rule)

    def validate(self, attrs):
        if attrs["end_time"] <= attrs["start_time"]:
            raise serializers.ValidationError("End time must be after start time.")

        recurrence_end_date = attrs.get("recurrence_end_date")
        if recurrence_end_date and recurrence_end_date <= attrs["start_time"]:
            raise serializers.ValidationError("Recurrence end date must be after start time.")

        return attrs

    def create(self, validated_data):
        if not self.calendar_service:
            raise ValueError(
                "calendar_service is not defined, please configure your DI container correctly"
            )

        user = self.context["request"].user
        household_id = get_user_household_id(user)
        try:
            event = self.calendar_service.create_event(
                household_id=household_id,
                created_by_id=user.id,
                event_input=CalendarEventInputData(
                    title=validated_data["title"],
                    description=validated_data["description"],
                    location=validated_data["location"],
                    start_time=validated_data["start_time"],
                    end_time=validated_data["end_time"],
                    is_all_day=validated_data["is_all_day"],
                    recurrence_rule=validated_data["recurrence_rule"] or None,
                    recurrence_end_date=validated_data["recurrence_end_date"],
                    reminder_minutes_before=validated_data["reminder_minutes_before"],
                    color=validated_data["color"],
                    members=[
                        EventMemberInputData(
                            user_id=member["user_id"],
                            participation_type=member["participation_type"],
                        )
                        for member in validated_data["members"]
                    ],
                ),
            )
        except CalendarEventsError as e:
            raise serializers.ValidationError({"non_field_errors": [str(e)]}) from e

        return CalendarEvent.objects.filter_by_household(household_id).get(id=event.id)


class CalendarEventPatchSerializer(serializers.Serializer):
    """
    Partial update of an event. `scope` decides whether the entire series, one occurrence
    or an occurrence and the ones after it are changed.
    """

    scope = serializers.ChoiceField(choices=EditScope.choices, default=EditScope.ENTIRE_SERIES)
    occurrence_start = serializers.DateTimeField(
        required=False,
        allow_null=True,
        default=None,
        help_text="Generated start of the target occurrence. Required unless scope is "
        "entire_series.",
    )
    title = serializers.CharField(max_length=TITLE_MAX_LENGTH, required=False)
    description = serializers.CharField(
        max_length=DESCRIPTION_MAX_LENGTH, required=False, allow_blank=True
    )
    location = serializers.CharField(
        max_length=LOCATION_MAX_LENGTH, required=False, allow_blank=True
    )
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    is_all_day = serializers.BooleanField(required=False)
    recurrence_rule = serializers.CharField(max_length=RECURRENCE_RULE_MAX_LENGTH, required=False)
    recurrence_end_date = serializers.DateTimeField(required=False)
    reminder_minutes_before = serializers.IntegerField(
        min_value=REMINDER_MINUTES_MIN, max_value=REMINDER_MINUTES_MAX, required=False
    )
    color = serializers.CharField(max_length=COLOR_MAX_LENGTH, required=False, allow_blank=True)
    members = EventMemberInputSerializer(many=True, required=False, allow_empty=False)

    def validate_recurrence_rule(self, recurrence_rule):
        return _validate_rrule_string(recurrence_rule)

    def validate(self, attrs):
        if attrs["scope"] != EditScope.ENTIRE_SERIES and not attrs.get("occurrence_start"):
            raise serializers.ValidationError(
                {"occurrence_start": "This field is required for the selected scope."}
            )

        start_time, end_time = attrs.get("start_time"), attrs.get("end_time")
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError("End time must be after start time.")

        return attrs

    def to_patch_data(self) -> CalendarEventPatchData:
        data = self.validated_data
        members = data.get("members")
        return CalendarEventPatchData(
            title=data.get("title"),
            description=data.get("description"),
            location=data.get("location"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            is_all_day=data.get("is_all_day"),
            recurrence_rule=data.get("recurrence_rule"),
            recurrence_end_date=data.get("recurrence_end_date"),
            reminder_minutes_before=data.get("reminder_minutes_before"),
            color=data.get("color"),
            members=(
                [
                    EventMemberInputData(
                        user_id=member["user_id"],
                        participation_type=member["participation_type"],
                    )
                    for member in members
                ]
                if members is not None
                else None
            ),
        )


class CalendarEventDeleteQuerySerializer(serializers.Serializer):
    scope = serializers.ChoiceField(choices=EditScope.choices, default=EditScope.ENTIRE_SERIES)
    occurrence_start = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if attrs["scope"] != EditScope.ENTIRE_SERIES and not attrs.get("occurrence_start"):
            raise serializers.ValidationError(
                {"occurrence_start": "This field is required for the selected scope."}
            )
        return attrs


class MutationResultSerializer(serializers.Serializer):
    updated_event_ids = serializers.ListField(child=serializers.IntegerField())
    created_event_ids = serializers.ListField(child=serializers.IntegerField())
    deleted_event_ids = serializers.ListField(child=serializers.IntegerField())


class TimeRangeSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()

    max_range_days_setting = "CALENDAR_MAX_QUERY_RANGE_DAYS"

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError("End must be after start.")

        max_days = getattr(settings, self.max_range_days_setting)
        if attrs["end"] - attrs["start"] > datetime.timedelta(days=max_days):
            raise serializers.ValidationError(f"Time range cannot exceed {max_days} days.")

        return attrs


class OccurrenceQuerySerializer(TimeRangeSerializer):
    include_external = serializers.BooleanField(required=False, default=False)
    user_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False, allow_empty=False
    )


class UpcomingOccurrenceQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(min_value=1, max_value=90, required=False)
    user_id = serializers.IntegerField(min_value=1, required=False)


class OccurrenceMemberSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    participation_type = serializers.ChoiceField(choices=ParticipationType.choices)


class CalendarOccurrenceSerializer(serializers.Serializer):
    event_id = serializers.IntegerField()
    original_start = serializers.DateTimeField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    title = serializers.CharField()
    description = serializers.CharField()
    location = serializers.CharField()
    is_all_day = serializers.BooleanField()
    color = serializers.CharField()
    source_kind = serializers.ChoiceField(choices=OccurrenceSourceKind.choices)
    is_recurring = serializers.BooleanField()
    is_exception = serializers.BooleanField()
    members = OccurrenceMemberSerializer(many=True)
    owner_user_id = serializers.IntegerField(allow_null=True)
    subscription_id = serializers.IntegerField(allow_null=True)


class FreeBusyRequestSerializer(TimeRangeSerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class FreeBusyIntervalSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    source = serializers.ChoiceField(choices=OccurrenceSourceKind.choices)
    event_id = serializers.IntegerField()
    title = serializers.CharField()


class UserFreeBusySerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    display_name = serializers.CharField()
    busy = FreeBusyIntervalSerializer(many=True)


class FindSlotsRequestSerializer(TimeRangeSerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    duration_minutes = serializers.IntegerField(min_value=1, max_value=SLOT_DURATION_MINUTES_MAX)
    preferred_start_hour = serializers.IntegerField(
        min_value=0, max_value=23, required=False, allow_null=True, default=None
    )
    preferred_end_hour = serializers.IntegerField(
        min_value=0, max_value=23, required=False, allow_null=True, default=None
    )
    max_results = serializers.IntegerField(min_value=1, required=False)

    max_range_days_setting = "CALENDAR_SLOT_SEARCH_MAX_RANGE_DAYS"

    def validate_max_results(self, max_results):
        if max_results > settings.CALENDAR_SLOT_SEARCH_MAX_RESULTS:
            raise serializers.ValidationError(
                f"Ensure this value is less than or equal to "
                f"{settings.CALENDAR_SLOT_SEARCH_MAX_RESULTS}."
            )
        return max_results

    def validate(self, attrs):
        attrs = super().validate(attrs)

        start_hour = attrs.get("preferred_start_hour")
        end_hour = attrs.get("preferred_end_hour")
        if start_hour is not None and end_hour is not None and end_hour <= start_hour:
            raise serializers.ValidationError(
                "Preferred end hour must be after preferred start hour."
            )

        return attrs


class AvailableSlotSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class ExternalCalendarSubscriptionSerializer(serializers.ModelSerializer):
    """
    ICS subscriptions of the requesting user. Sync state is maintained by the sync job and is
    read-only here.
    """

    user_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ExternalCalendarSubscription
        fields = (
            "id",
            "user_id",
            "name",
            "ics_url",
            "color",
            "sync_interval_minutes",
            "is_active",
            "last_synced_at",
            "last_sync_status",
            "created",
            "modified",
        )
        read_only_fields = (
            "id",
            "user_id",
            "last_synced_at",
            "last_sync_status",
            "created",
            "modified",
        )
        extra_kwargs = {
            "ics_url": {"help_text": "http, https or webcal URL of the ICS feed"},
        }

    def validate_name(self, name):
        if not name.strip():
            raise serializers.ValidationError("Name cannot be blank.")
        return name.strip()


class CalendarFeedTokenSerializer(serializers.ModelSerializer):
    feed_url = serializers.SerializerMethodField()

    class Meta:
        model = CalendarFeedToken
        fields = (
            "id",
            "label",
            "token",
            "is_revoked",
            "feed_url",
            "created",
        )
        read_only_fields = (
            "id",
            "token",
            "is_revoked",
            "feed_url",
            "created",
        )

    @inject
    def __init__(
        self,
        *args,
        calendar_feed_service: Annotated[
            "CalendarFeedService | None", Provide["calendar_feed_service"]
        ] = None,
        **kwargs,
    ):
        self.calendar_feed_service = calendar_feed_service
        super().__init__(*args, **kwargs)

    def get_feed_url(self, obj) -> str:
        path = reverse("calendar-feed", kwargs={"token": obj.token})
        request = self.context.get("request")
        return request.build_absolute_uri(path) if request else path

    def create(self, validated_data):
        if not self.calendar_feed_service:
            raise ValueError(
                "calendar_feed_service is not defined, please configure your DI container "
                "correctly"
            )

        user = self.context["request"].user
        return self.calendar_feed_service.create_token(
            household_id=get_user_household_id(user),
            user_id=user.id,
            label=validated_data.get("label", ""),
        )
