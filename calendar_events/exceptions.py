class CalendarEventsError(Exception):
    """Base exception for household calendar errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


class InvalidRecurrenceRuleError(CalendarEventsError):
    default_message = "Invalid recurrence rule."


class InvalidScopeError(CalendarEventsError):
    default_message = "Only the entire series can be changed on a non-recurring event."


class OccurrenceNotFoundError(CalendarEventsError):
    default_message = "The given start time is not an occurrence of this event."


class InvalidDurationError(CalendarEventsError):
    default_message = "Duration must be greater than 0 minutes."


class EmptyUserListError(CalendarEventsError):
    default_message = "At least one user is required."


class InvalidTimeRangeError(CalendarEventsError):
    default_message = "End time must be after start time."


class EntityNotFoundError(CalendarEventsError):
    default_message = "Calendar event not found."
