from django.db.models import TextChoices


class ParticipationType(TextChoices):
    INVOLVED = "involved", "Involved"
    AWARE = "aware", "Aware"


class EditScope(TextChoices):
    ENTIRE_SERIES = "entire_series", "Entire Series"
    THIS_OCCURRENCE = "this_occurrence", "This Occurrence"
    THIS_AND_FUTURE = "this_and_future", "This and Future Occurrences"


class OccurrenceSourceKind(TextChoices):
    HOUSEHOLD = "household", "Household Event"
    EXTERNAL = "external", "External Calendar Event"


class ExternalCalendarSyncStatus(TextChoices):
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    IN_PROGRESS = "in_progress", "In Progress"
    NOT_STARTED = "not_started", "Not Started"


class RecurrenceFrequency(TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    YEARLY = "YEARLY", "Yearly"


class RecurrenceWeekday(TextChoices):
    MONDAY = "MO", "Monday"
    TUESDAY = "TU", "Tuesday"
    WEDNESDAY = "WE", "Wednesday"
    THURSDAY = "TH", "Thursday"
    FRIDAY = "FR", "Friday"
    SATURDAY = "SA", "Saturday"
    SUNDAY = "SU", "Sunday"


RECURRENCE_RULE_MAX_LENGTH = 500
TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 5000
LOCATION_MAX_LENGTH = 500
COLOR_MAX_LENGTH = 50
REMINDER_MINUTES_MIN = 1
REMINDER_MINUTES_MAX = 10080  # one week
SLOT_DURATION_MINUTES_MAX = 1440
ICS_URL_MAX_LENGTH = 2048
ICS_URL_SCHEMES = ("http", "https", "webcal")
SYNC_INTERVAL_MINUTES_MIN = 15
SYNC_INTERVAL_MINUTES_MAX = 1440
FEED_TOKEN_MAX_LENGTH = 128
FEED_LABEL_MAX_LENGTH = 255
