import datetime
from dataclasses import dataclass
from dataclasses import field as dataclass_field

from calendar_events.constants import OccurrenceSourceKind, ParticipationType
from calendar_events.recurrence import RecurrenceRule


@dataclass
class EventMemberData:
    user_id: int
    participation_type: str = ParticipationType.INVOLVED

    @property
    def is_involved(self) -> bool:
        return self.participation_type == ParticipationType.INVOLVED


@dataclass
class CalendarEventData:
    """In-memory event definition. `recurrence_rule` is parsed once when loaded."""

    id: int | None  # noqa: A003
    household_id: int
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    recurrence_rule: RecurrenceRule | None = None
    recurrence_end_date: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    color: str = ""
    created_by_id: int | None = None
    members: list[EventMemberData] = dataclass_field(default_factory=list)
    created: datetime.datetime | None = None
    modified: datetime.datetime | None = None

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_time - self.start_time

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None

    def involved_user_ids(self) -> list[int]:
        return [member.user_id for member in self.members if member.is_involved]


@dataclass
class EventExceptionData:
    original_start_time: datetime.datetime
    is_deleted: bool = False
    override_title: str | None = None
    override_description: str | None = None
    override_location: str | None = None
    override_start_time: datetime.datetime | None = None
    override_end_time: datetime.datetime | None = None
    override_is_all_day: bool | None = None
    id: int | None = None  # noqa: A003


@dataclass
class ExternalEventData:
    id: int  # noqa: A003
    subscription_id: int
    user_id: int
    external_uid: str
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    is_all_day: bool = False
    color: str = ""


@dataclass
class CalendarOccurrence:
    """
    One concrete occurrence after exceptions were applied. `event_id` is the external event
    id for external occurrences.
    """

    event_id: int
    original_start: datetime.datetime
    start: datetime.datetime
    end: datetime.datetime
    title: str
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    color: str = ""
    source_kind: str = OccurrenceSourceKind.HOUSEHOLD
    is_recurring: bool = False
    is_exception: bool = False
    members: list[EventMemberData] = dataclass_field(default_factory=list)
    owner_user_id: int | None = None
    subscription_id: int | None = None


@dataclass
class FreeBusyInterval:
    user_id: int
    start: datetime.datetime
    end: datetime.datetime
    source: str
    event_id: int
    title: str = ""


@dataclass
class UserFreeBusyData:
    user_id: int
    display_name: str
    busy: list[FreeBusyInterval] = dataclass_field(default_factory=list)


@dataclass
class AvailableSlot:
    start: datetime.datetime
    end: datetime.datetime


@dataclass
class EventMemberInputData:
    user_id: int
    participation_type: str = ParticipationType.INVOLVED


@dataclass
class CalendarEventInputData:
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    recurrence_rule: str | None = None  # RRULE string
    recurrence_end_date: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    color: str = ""
    members: list[EventMemberInputData] = dataclass_field(default_factory=list)


@dataclass
class CalendarEventPatchData:
    """
    Requested changes to an event. `None` leaves a field unchanged. On a single occurrence
    only title, description, location, start, end and all-day can be changed.
    """

    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    is_all_day: bool | None = None
    recurrence_rule: str | None = None  # RRULE string
    recurrence_end_date: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    color: str | None = None
    members: list[EventMemberInputData] | None = None

    def has_series_only_changes(self) -> bool:
        return any(
            value is not None
            for value in (
                self.recurrence_rule,
                self.recurrence_end_date,
                self.reminder_minutes_before,
                self.color,
                self.members,
            )
        )


@dataclass
class MutationPlan:
    """
    Writes a scoped edit or delete needs, applied atomically by the repository.

    `updated_event` is saved over the original event (members included when
    `replace_members` is set), `created_event` is inserted as a new series and
    `delete_event` removes the original with its exceptions and members.
    """

    event_id: int
    updated_event: CalendarEventData | None = None
    replace_members: bool = False
    created_event: CalendarEventData | None = None
    upsert_exception: EventExceptionData | None = None
    discard_exceptions_from: datetime.datetime | None = None
    delete_event: bool = False


@dataclass
class MutationResult:
    updated_event_ids: list[int] = dataclass_field(default_factory=list)
    created_event_ids: list[int] = dataclass_field(default_factory=list)
    deleted_event_ids: list[int] = dataclass_field(default_factory=list)


@dataclass
class EventReminderData:
    event_id: int
    occurrence_start: datetime.datetime
    start: datetime.datetime
    title: str
    reminder_minutes_before: int
    user_ids: list[int] = dataclass_field(default_factory=list)
