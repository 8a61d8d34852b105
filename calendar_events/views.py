import logging
from typing import Annotated, NoReturn

from dependency_injector.wiring import Provide, inject
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from calendar_events.constants import EditScope
from calendar_events.exceptions import CalendarEventsError, EntityNotFoundError
from calendar_events.filtersets import CalendarEventFilterSet
from calendar_events.models import CalendarEvent, CalendarFeedToken, ExternalCalendarSubscription
from calendar_events.renderers import ICalendarRenderer
from calendar_events.serializers import (
    AvailableSlotSerializer,
    CalendarEventCreateSerializer,
    CalendarEventDeleteQuerySerializer,
    CalendarEventPatchSerializer,
    CalendarEventSerializer,
    CalendarFeedTokenSerializer,
    CalendarOccurrenceSerializer,
    ExternalCalendarSubscriptionSerializer,
    FindSlotsRequestSerializer,
    FreeBusyRequestSerializer,
    MutationResultSerializer,
    OccurrenceQuerySerializer,
    UpcomingOccurrenceQuerySerializer,
    UserFreeBusySerializer,
)
from calendar_events.services.calendar_feed_service import CalendarFeedService
from calendar_events.services.calendar_service import CalendarService
from common.utils.view_utils import CreateAndReadHouseholdModelViewSet
from households.permissions import HouseholdMemberPermission, get_user_household_id


logger = logging.getLogger(__name__)


def _raise_api_error(error: CalendarEventsError) -> NoReturn:
    if isinstance(error, EntityNotFoundError):
        raise NotFound(str(error)) from error
    raise ValidationError({"non_field_errors": [str(error)]}) from error


class CalendarEventViewSet(CreateAndReadHouseholdModelViewSet):
    """
    ViewSet for managing household calendar events and reading their occurrences.
    """

    filterset_class = CalendarEventFilterSet
    permission_classes = (HouseholdMemberPermission,)
    queryset = CalendarEvent.objects.all()
    serializer_class = CalendarEventSerializer
    create_serializer_class = CalendarEventCreateSerializer

    @property
    def household_id(self) -> int | None:
        return get_user_household_id(self.request.user)

    def get_queryset(self):
        """
        Filter events by the household of the authenticated user.
        """
        return (
            super()
            .get_queryset()
            .filter_by_user_household(self.request.user)
            .select_related("created_by")
            .prefetch_related("members__user")
            .order_by("start_time", "id")
        )

    @extend_schema(
        summary="Create calendar event",
        request=CalendarEventCreateSerializer,
        responses={201: CalendarEventSerializer},
    )
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @extend_schema(
        summary="Update calendar event",
        description="Update the entire series, one occurrence, or an occurrence and the ones "
        "after it.",
        request=CalendarEventPatchSerializer,
        responses={200: MutationResultSerializer},
    )
    @inject
    def partial_update(
        self,
        request,
        *args,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
        **kwargs,
    ):
        instance = self.get_object()
        serializer = CalendarEventPatchSerializer(
            data=request.data, context=self.get_serializer_context()
        )
        serializer.is_valid(raise_exception=True)

        try:
            result = calendar_service.update_event(
                household_id=self.household_id,
                event_id=instance.id,
                scope=serializer.validated_data["scope"],
                occurrence_start=serializer.validated_data["occurrence_start"],
                patch=serializer.to_patch_data(),
            )
        except CalendarEventsError as e:
            _raise_api_error(e)

        return Response(MutationResultSerializer(result).data)

    @extend_schema(
        summary="Delete calendar event",
        description="Delete the entire series, one occurrence, or an occurrence and the ones "
        "after it.",
        parameters=[
            OpenApiParameter(
                name="scope",
                type=str,
                enum=EditScope.values,
                location=OpenApiParameter.QUERY,
                description="Defaults to entire_series",
                required=False,
            ),
            OpenApiParameter(
                name="occurrence_start",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Generated start of the target occurrence in ISO format",
                required=False,
            ),
        ],
        responses={204: None},
    )
    @inject
    def destroy(
        self,
        request,
        *args,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
        **kwargs,
    ):
        instance = self.get_object()
        serializer = CalendarEventDeleteQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        try:
            calendar_service.delete_event(
                household_id=self.household_id,
                event_id=instance.id,
                scope=serializer.validated_data["scope"],
                occurrence_start=serializer.validated_data["occurrence_start"],
            )
        except CalendarEventsError as e:
            _raise_api_error(e)

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="List occurrences",
        description="Occurrences of household events overlapping a time range, with "
        "exceptions applied and optionally merged with external calendar events.",
        parameters=[OccurrenceQuerySerializer],
        responses={200: CalendarOccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=False,
        url_path="occurrences",
        url_name="occurrences",
    )
    @inject
    def occurrences(
        self,
        request,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
    ):
        serializer = OccurrenceQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        try:
            occurrences = calendar_service.get_occurrences(
                household_id=self.household_id,
                start=serializer.validated_data["start"],
                end=serializer.validated_data["end"],
                user_ids=serializer.validated_data.get("user_ids"),
                include_external=serializer.validated_data["include_external"],
            )
        except CalendarEventsError as e:
            _raise_api_error(e)

        return Response(CalendarOccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        summary="List upcoming occurrences",
        parameters=[UpcomingOccurrenceQuerySerializer],
        responses={200: CalendarOccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=False,
        url_path="upcoming",
        url_name="upcoming",
    )
    @inject
    def upcoming(
        self,
        request,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
    ):
        serializer = UpcomingOccurrenceQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        occurrences = calendar_service.get_upcoming_occurrences(
            household_id=self.household_id,
            days=serializer.validated_data.get("days"),
            user_id=serializer.validated_data.get("user_id"),
        )
        return Response(CalendarOccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        summary="Get free/busy",
        description="Busy intervals of each user in a time range.",
        request=FreeBusyRequestSerializer,
        responses={200: UserFreeBusySerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="free-busy",
        url_name="free-busy",
    )
    @inject
    def free_busy(
        self,
        request,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
    ):
        serializer = FreeBusyRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            free_busy = calendar_service.get_free_busy(
                household_id=self.household_id,
                user_ids=serializer.validated_data["user_ids"],
                start=serializer.validated_data["start"],
                end=serializer.validated_data["end"],
            )
        except EntityNotFoundError as e:
            raise ValidationError({"user_ids": [str(e)]}) from e
        except CalendarEventsError as e:
            _raise_api_error(e)

        return Response(UserFreeBusySerializer(free_busy, many=True).data)

    @extend_schema(
        summary="Find available slots",
        description="Slots of the requested duration where every user is free.",
        request=FindSlotsRequestSerializer,
        responses={200: AvailableSlotSerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="find-slots",
        url_name="find-slots",
    )
    @inject
    def find_slots(
        self,
        request,
        calendar_service: Annotated[CalendarService, Provide["calendar_service"]],
    ):
        serializer = FindSlotsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            slots = calendar_service.find_available_slots(
                household_id=self.household_id,
                user_ids=serializer.validated_data["user_ids"],
                duration_minutes=serializer.validated_data["duration_minutes"],
                start=serializer.validated_data["start"],
                end=serializer.validated_data["end"],
                preferred_start_hour=serializer.validated_data["preferred_start_hour"],
                preferred_end_hour=serializer.validated_data["preferred_end_hour"],
                max_results=serializer.validated_data.get("max_results"),
            )
        except EntityNotFoundError as e:
            raise ValidationError({"user_ids": [str(e)]}) from e
        except CalendarEventsError as e:
            _raise_api_error(e)

        return Response(AvailableSlotSerializer(slots, many=True).data)


class ExternalCalendarSubscriptionViewSet(
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    CreateAndReadHouseholdModelViewSet,
):
    """
    ICS calendars the authenticated user subscribed to. Deleting a subscription deletes the
    events imported from it.
    """

    http_method_names = ("get", "post", "patch", "delete", "head", "options")
    permission_classes = (HouseholdMemberPermission,)
    queryset = ExternalCalendarSubscription.objects.all()
    serializer_class = ExternalCalendarSubscriptionSerializer

    def get_queryset(self):
        return (
            super()
            .get_queryset()
            .filter_by_user_household(self.request.user)
            .filter(user=self.request.user)
            .order_by("name", "id")
        )

    def perform_create(self, serializer):
        serializer.save(
            household_id=get_user_household_id(self.request.user), user=self.request.user
        )

    def perform_destroy(self, instance):
        subscription_id = instance.id
        instance.delete()
        logger.info(
            "Deleted external calendar subscription %s of user %s",
            subscription_id,
            self.request.user.id,
        )


class CalendarFeedTokenViewSet(mixins.DestroyModelMixin, CreateAndReadHouseholdModelViewSet):
    """
    Tokens of the authenticated user for the public ICS feed of their events.
    """

    permission_classes = (HouseholdMemberPermission,)
    queryset = CalendarFeedToken.objects.all()
    serializer_class = CalendarFeedTokenSerializer

    def get_queryset(self):
        return (
            super()
            .get_queryset()
            .filter_by_user_household(self.request.user)
            .filter(user=self.request.user)
            .order_by("-created", "-id")
        )

    @extend_schema(
        summary="Revoke feed token",
        description="A revoked token stops serving the feed. Revoking twice is a no-op.",
        request=None,
        responses={200: CalendarFeedTokenSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="revoke",
        url_name="revoke",
    )
    @inject
    def revoke(
        self,
        request,
        *args,
        calendar_feed_service: Annotated[CalendarFeedService, Provide["calendar_feed_service"]],
        **kwargs,
    ):
        feed_token = calendar_feed_service.revoke_token(self.get_object())
        return Response(self.get_serializer(feed_token).data)


class CalendarFeedView(APIView):
    """
    Public ICS feed of one user's events, authenticated by the secret token in the URL so
    calendar clients can subscribe to it.
    """

    authentication_classes = ()
    permission_classes = (AllowAny,)
    renderer_classes = (ICalendarRenderer,)

    @extend_schema(
        summary="Get ICS feed",
        responses={(200, ICalendarRenderer.media_type): OpenApiTypes.STR, 404: None},
    )
    @inject
    def get(
        self,
        request,
        token: str,
        calendar_feed_service: Annotated[CalendarFeedService, Provide["calendar_feed_service"]],
    ):
        feed = calendar_feed_service.generate_feed(token)
        if feed is None:
            raise NotFound()
        return Response(feed, headers={"Content-Disposition": 'inline; filename="calendar.ics"'})
