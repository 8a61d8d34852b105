import datetime
import logging
from collections.abc import Callable, Iterable, Sequence

from django.db import transaction
from django.db.models import Q

from calendar_events.constants import ParticipationType
from calendar_events.exceptions import EntityNotFoundError
from calendar_events.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    ExternalCalendarEvent,
)
from calendar_events.recurrence import RecurrenceRule
from calendar_events.services.dataclasses import (
    CalendarEventData,
    EventExceptionData,
    EventMemberData,
    ExternalEventData,
    MutationPlan,
    MutationResult,
)
from users.models import User


logger = logging.getLogger(__name__)

MutationPlanner = Callable[[CalendarEventData, list[EventExceptionData]], MutationPlan]


class CalendarEventRepository:
    """
    Reads household calendar records into in-memory dataclasses and writes mutation plans.
    Every query is scoped to one household.
    """

    def _serialize_event(self, event: CalendarEvent) -> CalendarEventData:
        return CalendarEventData(
            id=event.id,
            household_id=event.household_id,
            title=event.title,
            description=event.description,
            location=event.location,
            start_time=event.start_time,
            end_time=event.end_time,
            is_all_day=event.is_all_day,
            recurrence_rule=(
                RecurrenceRule.parse(event.recurrence_rule) if event.recurrence_rule else None
            ),
            recurrence_end_date=event.recurrence_end_date,
            reminder_minutes_before=event.reminder_minutes_before,
            color=event.color,
            created_by_id=event.created_by_id,
            members=[
                EventMemberData(user_id=member.user_id, participation_type=member.participation_type)
                for member in event.members.all()
            ],
            created=event.created,
            modified=event.modified,
        )

    def _serialize_exception(self, exception: CalendarEventException) -> EventExceptionData:
        return EventExceptionData(
            id=exception.id,
            original_start_time=exception.original_start_time,
            is_deleted=exception.is_deleted,
            override_title=exception.override_title,
            override_description=exception.override_description,
            override_location=exception.override_location,
            override_start_time=exception.override_start_time,
            override_end_time=exception.override_end_time,
            override_is_all_day=exception.override_is_all_day,
        )

    def get_event_model(self, household_id: int, event_id: int) -> CalendarEvent:
        try:
            return (
                CalendarEvent.objects.filter_by_household(household_id)
                .prefetch_related("members")
                .get(id=event_id)
            )
        except CalendarEvent.DoesNotExist as e:
            raise EntityNotFoundError() from e

    def get_event(self, household_id: int, event_id: int) -> CalendarEventData:
        return self._serialize_event(self.get_event_model(household_id, event_id))

    def list_events_in_range(
        self,
        household_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
        user_ids: Sequence[int] | None = None,
        involved_only: bool = False,
    ) -> list[CalendarEventData]:
        """
        Events that may have an occurrence overlapping ``[start, end)``. Recurring events are
        returned whenever their series starts before ``end``; expansion narrows them down.
        """
        queryset = CalendarEvent.objects.filter_by_household(household_id).filter(
            Q(recurrence_rule="", end_time__gt=start) | ~Q(recurrence_rule=""),
            start_time__lt=end,
        )
        if user_ids is not None:
            member_filter = Q(members__user_id__in=user_ids)
            if involved_only:
                member_filter &= Q(members__participation_type=ParticipationType.INVOLVED)
            queryset = queryset.filter(member_filter).distinct()

        return [
            self._serialize_event(event)
            for event in queryset.prefetch_related("members").order_by("start_time", "id")
        ]

    def list_events_with_reminders(
        self, household_id: int, now: datetime.datetime
    ) -> list[CalendarEventData]:
        queryset = (
            CalendarEvent.objects.filter_by_household(household_id)
            .filter(
                Q(recurrence_rule="", start_time__gt=now)
                | (
                    ~Q(recurrence_rule="")
                    & (Q(recurrence_end_date__isnull=True) | Q(recurrence_end_date__gt=now))
                ),
                reminder_minutes_before__isnull=False,
                members__participation_type=ParticipationType.INVOLVED,
            )
            .distinct()
        )
        return [
            self._serialize_event(event)
            for event in queryset.prefetch_related("members").order_by("start_time", "id")
        ]

    def get_reminder_minutes_by_event(
        self, household_id: int, event_ids: Iterable[int]
    ) -> dict[int, int]:
        """Reminder offsets of the given events, for the ones that have one."""
        return dict(
            CalendarEvent.objects.filter_by_household(household_id)
            .filter(id__in=list(event_ids), reminder_minutes_before__isnull=False)
            .values_list("id", "reminder_minutes_before")
        )

    def get_exceptions_by_event(
        self, event_ids: Iterable[int]
    ) -> dict[int, list[EventExceptionData]]:
        exceptions_by_event: dict[int, list[EventExceptionData]] = {}
        for exception in CalendarEventException.objects.filter(event_id__in=list(event_ids)):
            exceptions_by_event.setdefault(exception.event_id, []).append(
                self._serialize_exception(exception)
            )
        return exceptions_by_event

    def list_external_events_in_range(
        self,
        household_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
        user_ids: Sequence[int] | None = None,
    ) -> list[ExternalEventData]:
        """External events of active subscriptions overlapping ``[start, end)``."""
        queryset = ExternalCalendarEvent.objects.filter(
            subscription__household_id=household_id,
            subscription__is_active=True,
            start_time__lt=end,
            end_time__gt=start,
        ).select_related("subscription")
        if user_ids is not None:
            queryset = queryset.filter(subscription__user_id__in=user_ids)

        return [
            ExternalEventData(
                id=external_event.id,
                subscription_id=external_event.subscription_id,
                user_id=external_event.subscription.user_id,
                external_uid=external_event.external_uid,
                title=external_event.title,
                start_time=external_event.start_time,
                end_time=external_event.end_time,
                is_all_day=external_event.is_all_day,
                color=external_event.subscription.color,
            )
            for external_event in queryset.order_by("start_time", "id")
        ]

    def get_user_display_names(self, household_id: int, user_ids: Iterable[int]) -> dict[int, str]:
        """Display names of the given users that belong to the household."""
        return {
            user.id: user.display_name
            for user in User.objects.filter(
                id__in=list(user_ids), household_membership__household_id=household_id
            )
        }

    def _write_event_fields(self, event: CalendarEvent, event_data: CalendarEventData) -> None:
        event.title = event_data.title
        event.description = event_data.description
        event.location = event_data.location
        event.start_time = event_data.start_time
        event.end_time = event_data.end_time
        event.is_all_day = event_data.is_all_day
        event.recurrence_rule = (
            event_data.recurrence_rule.to_rrule_string() if event_data.recurrence_rule else ""
        )
        event.recurrence_end_date = event_data.recurrence_end_date
        event.reminder_minutes_before = event_data.reminder_minutes_before
        event.color = event_data.color

    def _replace_members(self, event: CalendarEvent, members: Iterable[EventMemberData]) -> None:
        members = list(members)
        event.members.exclude(user_id__in=[member.user_id for member in members]).delete()
        for member in members:
            CalendarEventMember.objects.update_or_create(
                event=event,
                user_id=member.user_id,
                defaults={"participation_type": member.participation_type},
            )

    def _insert_event(self, event_data: CalendarEventData) -> CalendarEvent:
        event = CalendarEvent(
            household_id=event_data.household_id,
            created_by_id=event_data.created_by_id,
        )
        self._write_event_fields(event, event_data)
        event.save()
        CalendarEventMember.objects.bulk_create(
            [
                CalendarEventMember(
                    event=event,
                    user_id=member.user_id,
                    participation_type=member.participation_type,
                )
                for member in event_data.members
            ]
        )
        return event

    @transaction.atomic
    def create_event(self, event_data: CalendarEventData) -> CalendarEventData:
        event = self._insert_event(event_data)
        return self.get_event(event.household_id, event.id)

    def apply_mutation(
        self, household_id: int, event_id: int, planner: MutationPlanner
    ) -> MutationResult:
        """
        Lock the event row, build the mutation plan from its current state and write it.
        Either every write of the plan succeeds or none does.
        """
        with transaction.atomic():
            try:
                event = (
                    CalendarEvent.objects.filter_by_household(household_id)
                    .select_for_update()
                    .get(id=event_id)
                )
            except CalendarEvent.DoesNotExist as e:
                raise EntityNotFoundError() from e

            exceptions = [self._serialize_exception(e) for e in event.exceptions.all()]
            plan = planner(self._serialize_event(event), exceptions)
            return self._apply_plan(event, plan)

    def _apply_plan(self, event: CalendarEvent, plan: MutationPlan) -> MutationResult:
        result = MutationResult()

        if plan.delete_event:
            event_id = event.id
            event.delete()
            result.deleted_event_ids.append(event_id)
        else:
            if plan.discard_exceptions_from is not None:
                discarded, _ = event.exceptions.filter(
                    original_start_time__gte=plan.discard_exceptions_from
                ).delete()
                if discarded:
                    logger.info(
                        "Discarded %s exception(s) of calendar event %s from %s",
                        discarded,
                        event.id,
                        plan.discard_exceptions_from,
                    )

            if plan.upsert_exception is not None:
                exception = plan.upsert_exception
                CalendarEventException.objects.update_or_create(
                    event=event,
                    original_start_time=exception.original_start_time,
                    defaults={
                        "is_deleted": exception.is_deleted,
                        "override_title": exception.override_title,
                        "override_description": exception.override_description,
                        "override_location": exception.override_location,
                        "override_start_time": exception.override_start_time,
                        "override_end_time": exception.override_end_time,
                        "override_is_all_day": exception.override_is_all_day,
                    },
                )

            if plan.updated_event is not None:
                self._write_event_fields(event, plan.updated_event)
                event.save()
                if plan.replace_members:
                    self._replace_members(event, plan.updated_event.members)
                result.updated_event_ids.append(event.id)

        if plan.created_event is not None:
            created = self._insert_event(plan.created_event)
            result.created_event_ids.append(created.id)

        return result
