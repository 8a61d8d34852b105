import dataclasses
import datetime
import logging
from collections.abc import Sequence
from typing import Annotated

from django.conf import settings
from django.utils import timezone

from dependency_injector.wiring import Provide, inject

from calendar_events.constants import ParticipationType
from calendar_events.exceptions import (
    EmptyUserListError,
    EntityNotFoundError,
    InvalidDurationError,
    InvalidTimeRangeError,
)
from calendar_events.recurrence import RecurrenceRule, as_utc, expand_occurrence_starts
from calendar_events.services.availability import compute_free_busy
from calendar_events.services.calendar_repository import CalendarEventRepository
from calendar_events.services.dataclasses import (
    AvailableSlot,
    CalendarEventData,
    CalendarEventInputData,
    CalendarEventPatchData,
    CalendarOccurrence,
    EventMemberData,
    EventReminderData,
    MutationResult,
    UserFreeBusyData,
)
from calendar_events.services.occurrence_resolver import (
    external_event_occurrences,
    index_exceptions,
    merge_occurrences,
    resolve_occurrences,
)
from calendar_events.services.reminders import evaluate_due_reminders
from calendar_events.services.scope_mutations import build_members, plan_delete, plan_update
from calendar_events.services.slot_finder import find_available_slots


logger = logging.getLogger(__name__)


def _truncate(value: datetime.datetime | None) -> datetime.datetime | None:
    # stored starts must match the starts the recurrence expansion generates
    if value is None:
        return None
    return as_utc(value).replace(microsecond=0)


class CalendarService:
    """
    Household calendar operations: reading occurrences, scoped edits and deletes, free/busy,
    slot search and reminders. Every method works inside a single household.
    """

    @inject
    def __init__(
        self,
        calendar_event_repository: Annotated[
            "CalendarEventRepository | None", Provide["calendar_event_repository"]
        ] = None,
    ) -> None:
        self.calendar_event_repository = calendar_event_repository

    @property
    def repository(self) -> CalendarEventRepository:
        if not self.calendar_event_repository:
            raise ValueError(
                "calendar_event_repository is not defined, please configure your DI container "
                "correctly"
            )
        return self.calendar_event_repository

    def _check_range(
        self, start: datetime.datetime, end: datetime.datetime, max_days: int
    ) -> tuple[datetime.datetime, datetime.datetime]:
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise InvalidTimeRangeError()
        if end - start > datetime.timedelta(days=max_days):
            raise InvalidTimeRangeError(f"Time range cannot exceed {max_days} days.")
        return start, end

    def _check_household_users(self, household_id: int, user_ids: Sequence[int]) -> dict[int, str]:
        display_names = self.repository.get_user_display_names(household_id, user_ids)
        missing = sorted(set(user_ids) - set(display_names))
        if missing:
            raise EntityNotFoundError(
                f"Users not found in household: {', '.join(map(str, missing))}."
            )
        return display_names

    def get_event(self, household_id: int, event_id: int) -> CalendarEventData:
        return self.repository.get_event(household_id, event_id)

    def get_occurrences(
        self,
        household_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
        user_ids: Sequence[int] | None = None,
        include_external: bool = False,
    ) -> list[CalendarOccurrence]:
        """
        Occurrences overlapping ``[start, end)``, household events and, optionally, the
        external events of active subscriptions. ``user_ids`` keeps only events with one of
        those users as a member.
        """
        start, end = self._check_range(start, end, settings.CALENDAR_MAX_QUERY_RANGE_DAYS)

        events = self.repository.list_events_in_range(household_id, start, end, user_ids=user_ids)
        exceptions_by_event = self.repository.get_exceptions_by_event(e.id for e in events)

        household_occurrences: list[CalendarOccurrence] = []
        for event in events:
            starts = expand_occurrence_starts(event, start - event.duration, end)
            for occurrence in resolve_occurrences(
                starts, event, index_exceptions(exceptions_by_event.get(event.id, ()))
            ):
                if occurrence.start < end and (
                    occurrence.end > start or occurrence.start >= start
                ):
                    household_occurrences.append(occurrence)

        external_occurrences: list[CalendarOccurrence] = []
        if include_external:
            external_occurrences = external_event_occurrences(
                self.repository.list_external_events_in_range(
                    household_id, start, end, user_ids=user_ids
                )
            )

        return merge_occurrences(household_occurrences, external_occurrences)

    def get_upcoming_occurrences(
        self,
        household_id: int,
        days: int | None = None,
        user_id: int | None = None,
        now: datetime.datetime | None = None,
    ) -> list[CalendarOccurrence]:
        now = as_utc(now or timezone.now())
        days = days or settings.CALENDAR_UPCOMING_DEFAULT_DAYS
        return self.get_occurrences(
            household_id,
            now,
            now + datetime.timedelta(days=days),
            user_ids=[user_id] if user_id is not None else None,
            include_external=True,
        )

    def create_event(
        self, household_id: int, created_by_id: int | None, event_input: CalendarEventInputData
    ) -> CalendarEventData:
        """
        Create an event. The creator is added as an involved member unless listed already.

        :raises InvalidTimeRangeError: the event does not end after it starts, or the
            recurrence end date is before the start.
        :raises InvalidRecurrenceRuleError: the recurrence rule can't be parsed.
        :raises EntityNotFoundError: a member is not part of the household.
        """
        start_time, end_time = _truncate(event_input.start_time), _truncate(event_input.end_time)
        if end_time <= start_time:
            raise InvalidTimeRangeError()

        recurrence_rule = (
            RecurrenceRule.parse(event_input.recurrence_rule)
            if event_input.recurrence_rule
            else None
        )
        recurrence_end_date = _truncate(event_input.recurrence_end_date)
        if recurrence_end_date is not None and recurrence_end_date <= start_time:
            raise InvalidTimeRangeError("Recurrence end date must be after start time.")

        members = build_members(event_input.members)
        if created_by_id is not None and created_by_id not in {m.user_id for m in members}:
            members.append(
                EventMemberData(user_id=created_by_id, participation_type=ParticipationType.INVOLVED)
            )
        self._check_household_users(household_id, [m.user_id for m in members])

        event = self.repository.create_event(
            CalendarEventData(
                id=None,
                household_id=household_id,
                title=event_input.title,
                description=event_input.description,
                location=event_input.location,
                start_time=start_time,
                end_time=end_time,
                is_all_day=event_input.is_all_day,
                recurrence_rule=recurrence_rule,
                recurrence_end_date=recurrence_end_date,
                reminder_minutes_before=event_input.reminder_minutes_before,
                color=event_input.color,
                created_by_id=created_by_id,
                members=members,
            )
        )
        logger.info("Created calendar event %s in household %s", event.id, household_id)
        return event

    def update_event(
        self,
        household_id: int,
        event_id: int,
        scope: str,
        occurrence_start: datetime.datetime | None,
        patch: CalendarEventPatchData,
    ) -> MutationResult:
        """
        Edit an event, one of its occurrences, or an occurrence and the ones after it.
        All writes happen in one transaction.
        """
        patch = dataclasses.replace(
            patch,
            start_time=_truncate(patch.start_time),
            end_time=_truncate(patch.end_time),
            recurrence_end_date=_truncate(patch.recurrence_end_date),
        )
        if patch.members is not None:
            self._check_household_users(household_id, [m.user_id for m in patch.members])

        result = self.repository.apply_mutation(
            household_id,
            event_id,
            lambda event, exceptions: plan_update(
                event, exceptions, scope, occurrence_start, patch
            ),
        )
        logger.info(
            "Updated calendar event %s with scope %s: updated=%s created=%s deleted=%s",
            event_id,
            scope,
            result.updated_event_ids,
            result.created_event_ids,
            result.deleted_event_ids,
        )
        return result

    def delete_event(
        self,
        household_id: int,
        event_id: int,
        scope: str,
        occurrence_start: datetime.datetime | None = None,
    ) -> MutationResult:
        result = self.repository.apply_mutation(
            household_id,
            event_id,
            lambda event, exceptions: plan_delete(event, exceptions, scope, occurrence_start),
        )
        logger.info(
            "Deleted calendar event %s with scope %s: updated=%s deleted=%s",
            event_id,
            scope,
            result.updated_event_ids,
            result.deleted_event_ids,
        )
        return result

    def get_free_busy(
        self,
        household_id: int,
        user_ids: Sequence[int],
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[UserFreeBusyData]:
        """
        Busy intervals per user in ``[start, end)``, in the order the users were given.
        """
        if not user_ids:
            raise EmptyUserListError()
        start, end = self._check_range(start, end, settings.CALENDAR_MAX_QUERY_RANGE_DAYS)
        user_ids = list(dict.fromkeys(user_ids))
        display_names = self._check_household_users(household_id, user_ids)

        events = self.repository.list_events_in_range(
            household_id, start, end, user_ids=user_ids, involved_only=True
        )
        intervals = compute_free_busy(
            user_ids,
            start,
            end,
            events,
            self.repository.get_exceptions_by_event(e.id for e in events),
            self.repository.list_external_events_in_range(
                household_id, start, end, user_ids=user_ids
            ),
        )

        free_busy = {
            user_id: UserFreeBusyData(user_id=user_id, display_name=display_names[user_id])
            for user_id in user_ids
        }
        for interval in intervals:
            free_busy[interval.user_id].busy.append(interval)
        return list(free_busy.values())

    def find_available_slots(
        self,
        household_id: int,
        user_ids: Sequence[int],
        duration_minutes: int,
        start: datetime.datetime,
        end: datetime.datetime,
        preferred_start_hour: int | None = None,
        preferred_end_hour: int | None = None,
        max_results: int | None = None,
    ) -> list[AvailableSlot]:
        """
        Slots of ``duration_minutes`` in ``[start, end)`` where every user is free.
        """
        if not user_ids:
            raise EmptyUserListError()
        if duration_minutes <= 0:
            raise InvalidDurationError()
        start, end = self._check_range(start, end, settings.CALENDAR_SLOT_SEARCH_MAX_RANGE_DAYS)

        busy = [
            interval
            for user_free_busy in self.get_free_busy(household_id, user_ids, start, end)
            for interval in user_free_busy.busy
        ]
        return find_available_slots(
            user_ids,
            duration_minutes,
            start,
            end,
            busy,
            preferred_start_hour=preferred_start_hour,
            preferred_end_hour=preferred_end_hour,
            max_results=max_results or settings.CALENDAR_SLOT_SEARCH_DEFAULT_MAX_RESULTS,
        )

    def get_due_reminders(
        self, household_id: int, now: datetime.datetime | None = None
    ) -> list[EventReminderData]:
        now = as_utc(now or timezone.now())
        events = self.repository.list_events_with_reminders(household_id, now)
        reminders = evaluate_due_reminders(
            events, self.repository.get_exceptions_by_event(e.id for e in events), now
        )
        if reminders:
            logger.info("Found %s due reminder(s) in household %s", len(reminders), household_id)
        return reminders
