"""Recurrence rules and occurrence expansion.

A ``RecurrenceRule`` is parsed once from its RRULE text and kept as a structured
value. Expansion goes through ``dateutil.rrule`` and is always bounded by the
window the caller asks for.

Series semantics:
- The event's own start is the first occurrence even when it does not match the
  rule's BYDAY/BYMONTHDAY filters. It counts towards COUNT.
- ``recurrence_end_date`` is an inclusive bound on occurrence starts.
"""

import dataclasses
import datetime
import re
from typing import Protocol

from dateutil import rrule as dateutil_rrule

from calendar_events.constants import (
    RECURRENCE_RULE_MAX_LENGTH,
    RecurrenceFrequency,
    RecurrenceWeekday,
)
from calendar_events.exceptions import InvalidRecurrenceRuleError


_FREQUENCIES = {
    RecurrenceFrequency.DAILY: dateutil_rrule.DAILY,
    RecurrenceFrequency.WEEKLY: dateutil_rrule.WEEKLY,
    RecurrenceFrequency.MONTHLY: dateutil_rrule.MONTHLY,
    RecurrenceFrequency.YEARLY: dateutil_rrule.YEARLY,
}
_WEEKDAYS = {
    RecurrenceWeekday.MONDAY: dateutil_rrule.MO,
    RecurrenceWeekday.TUESDAY: dateutil_rrule.TU,
    RecurrenceWeekday.WEDNESDAY: dateutil_rrule.WE,
    RecurrenceWeekday.THURSDAY: dateutil_rrule.TH,
    RecurrenceWeekday.FRIDAY: dateutil_rrule.FR,
    RecurrenceWeekday.SATURDAY: dateutil_rrule.SA,
    RecurrenceWeekday.SUNDAY: dateutil_rrule.SU,
}
_BY_DAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")
_MONTH_LENGTHS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
_UNTIL_DATE_FORMAT = "%Y%m%d"
_UNTIL_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def _parse_positive_int(key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise InvalidRecurrenceRuleError(f"{key} must be an integer.") from e
    if number < 1:
        raise InvalidRecurrenceRuleError(f"{key} must be at least 1.")
    return number


def _parse_int_list(key: str, value: str, lower: int, upper: int) -> tuple[int, ...]:
    numbers = []
    for item in value.split(","):
        try:
            number = int(item.strip())
        except ValueError as e:
            raise InvalidRecurrenceRuleError(
                f"{key} must be integers separated by commas."
            ) from e
        if number == 0 or abs(number) < lower or abs(number) > upper:
            raise InvalidRecurrenceRuleError(f"Invalid {key} value: {number}.")
        numbers.append(number)
    return tuple(numbers)


def _parse_until(value: str) -> tuple[datetime.datetime, bool]:
    try:
        if len(value) == 8:
            day = datetime.datetime.strptime(value, _UNTIL_DATE_FORMAT).date()
            # a bare date includes the whole UTC day
            return datetime.datetime.combine(day, datetime.time.max, tzinfo=datetime.UTC), True
        until = datetime.datetime.strptime(value, _UNTIL_DATETIME_FORMAT)
    except ValueError as e:
        raise InvalidRecurrenceRuleError(
            "UNTIL must be formatted as YYYYMMDD or YYYYMMDDTHHMMSSZ."
        ) from e
    return until.replace(tzinfo=datetime.UTC), False


def _parse_by_day(value: str, frequency: str) -> tuple[str, ...]:
    days = []
    for item in value.split(","):
        item = item.strip()
        match = _BY_DAY_RE.match(item)
        if not match:
            raise InvalidRecurrenceRuleError(
                f"Invalid BYDAY value: {item}. Valid weekdays are MO, TU, WE, TH, FR, SA, SU."
            )
        ordinal = match.group(1)
        if ordinal is not None:
            if frequency not in (RecurrenceFrequency.MONTHLY, RecurrenceFrequency.YEARLY):
                raise InvalidRecurrenceRuleError(
                    "BYDAY ordinals are only allowed on MONTHLY and YEARLY rules."
                )
            limit = 5 if frequency == RecurrenceFrequency.MONTHLY else 53
            if int(ordinal) == 0 or abs(int(ordinal)) > limit:
                raise InvalidRecurrenceRuleError(f"Invalid BYDAY ordinal: {item}.")
            item = f"{int(ordinal)}{match.group(2)}"
        days.append(item)
    return tuple(days)


def _parse_weekday(value: str) -> str:
    if value not in RecurrenceWeekday.values:
        raise InvalidRecurrenceRuleError(f"Invalid WKST value: {value}.")
    return value


@dataclasses.dataclass(frozen=True)
class RecurrenceRule:
    """
    Structured RRULE value. Supports FREQ, INTERVAL, COUNT, UNTIL, BYDAY, BYMONTHDAY,
    BYMONTH and WKST.
    """

    frequency: str
    interval: int = 1
    count: int | None = None
    until: datetime.datetime | None = None
    until_is_date: bool = False
    by_weekday: tuple[str, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    week_start: str = RecurrenceWeekday.MONDAY

    def __str__(self):
        return self.to_rrule_string()

    @classmethod
    def parse(cls, rrule_string: str) -> "RecurrenceRule":
        """
        Parse an RRULE string. Raises ``InvalidRecurrenceRuleError`` for anything outside
        the supported subset.
        """
        if not rrule_string or not rrule_string.strip():
            raise InvalidRecurrenceRuleError("Recurrence rule cannot be empty.")
        if len(rrule_string) > RECURRENCE_RULE_MAX_LENGTH:
            raise InvalidRecurrenceRuleError(
                f"Recurrence rule cannot exceed {RECURRENCE_RULE_MAX_LENGTH} characters."
            )

        rrule_string = rrule_string.strip()
        if rrule_string.upper().startswith("RRULE:"):
            rrule_string = rrule_string[6:]  # Remove RRULE: prefix

        values: dict[str, str] = {}
        for part in rrule_string.split(";"):
            if not part.strip():
                continue
            if "=" not in part:
                raise InvalidRecurrenceRuleError(f"Malformed recurrence rule part: {part}.")
            key, value = part.split("=", 1)
            key, value = key.strip().upper(), value.strip().upper()
            if key in values:
                raise InvalidRecurrenceRuleError(f"{key} cannot be specified more than once.")
            if not value:
                raise InvalidRecurrenceRuleError(f"{key} must have a value.")
            values[key] = value

        frequency = values.pop("FREQ", None)
        if frequency is None:
            raise InvalidRecurrenceRuleError("FREQ is required.")
        if frequency not in RecurrenceFrequency.values:
            raise InvalidRecurrenceRuleError(
                f"Unsupported FREQ: {frequency}. Valid options are DAILY, WEEKLY, MONTHLY, YEARLY."
            )

        rule_data: dict = {"frequency": frequency}
        for key, value in values.items():
            if key == "INTERVAL":
                rule_data["interval"] = _parse_positive_int(key, value)
            elif key == "COUNT":
                rule_data["count"] = _parse_positive_int(key, value)
            elif key == "UNTIL":
                rule_data["until"], rule_data["until_is_date"] = _parse_until(value)
            elif key == "BYDAY":
                rule_data["by_weekday"] = _parse_by_day(value, frequency)
            elif key == "BYMONTHDAY":
                rule_data["by_month_day"] = _parse_int_list(key, value, 1, 31)
            elif key == "BYMONTH":
                rule_data["by_month"] = _parse_int_list(key, value, 1, 12)
                if any(month < 0 for month in rule_data["by_month"]):
                    raise InvalidRecurrenceRuleError("BYMONTH must be between 1 and 12.")
            elif key == "WKST":
                rule_data["week_start"] = _parse_weekday(value)
            else:
                raise InvalidRecurrenceRuleError(f"Unsupported recurrence rule part: {key}.")

        if "count" in rule_data and "until" in rule_data:
            raise InvalidRecurrenceRuleError(
                "Cannot specify both 'COUNT' and 'UNTIL' in a recurrence rule."
            )

        rule = cls(**rule_data)
        rule._check_can_produce_occurrences()
        return rule

    def _check_can_produce_occurrences(self):
        if not self.by_month_day:
            return
        months = self.by_month or tuple(range(1, 13))
        if not any(
            abs(day) <= _MONTH_LENGTHS[month - 1] for month in months for day in self.by_month_day
        ):
            raise InvalidRecurrenceRuleError("Recurrence rule never produces an occurrence.")

    def to_rrule_string(self) -> str:
        """
        Convert the recurrence rule to an RRULE string following RFC 5545.
        """
        parts = [f"FREQ={self.frequency}"]

        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")

        if self.count:
            parts.append(f"COUNT={self.count}")

        if self.until:
            until_format = _UNTIL_DATE_FORMAT if self.until_is_date else _UNTIL_DATETIME_FORMAT
            parts.append(f"UNTIL={self.until.strftime(until_format)}")

        if self.by_weekday:
            parts.append(f"BYDAY={','.join(self.by_weekday)}")

        if self.by_month_day:
            parts.append(f"BYMONTHDAY={','.join(map(str, self.by_month_day))}")

        if self.by_month:
            parts.append(f"BYMONTH={','.join(map(str, self.by_month))}")

        if self.week_start != RecurrenceWeekday.MONDAY:
            parts.append(f"WKST={self.week_start}")

        return ";".join(parts)

    def with_count(self, count: int | None) -> "RecurrenceRule":
        return dataclasses.replace(self, count=count)

    def _dateutil_weekdays(self):
        weekdays = []
        for day in self.by_weekday:
            match = _BY_DAY_RE.match(day)
            weekday = _WEEKDAYS[match.group(2)]
            weekdays.append(weekday(int(match.group(1))) if match.group(1) else weekday)
        return weekdays

    def build_rrule(
        self, dtstart: datetime.datetime, count: int | None = None
    ) -> dateutil_rrule.rrule:
        """
        Build the ``dateutil`` rule anchored at ``dtstart``. ``count`` overrides the rule's COUNT.
        """
        return dateutil_rrule.rrule(
            _FREQUENCIES[self.frequency],
            dtstart=dtstart,
            interval=self.interval,
            wkst=_WEEKDAYS[self.week_start],
            count=count if count is not None else self.count,
            until=self.until,
            byweekday=self._dateutil_weekdays() or None,
            bymonthday=self.by_month_day or None,
            bymonth=self.by_month or None,
        )


class RecurringEvent(Protocol):
    start_time: datetime.datetime
    end_time: datetime.datetime
    recurrence_rule: RecurrenceRule | None
    recurrence_end_date: datetime.datetime | None


def build_occurrence_set(event: RecurringEvent) -> dateutil_rrule.rrulebase | None:
    """
    Return the unbounded ``dateutil`` occurrence set of a recurring event, or ``None`` when
    the event does not recur. ``recurrence_end_date`` is not applied here.
    """
    rule = event.recurrence_rule
    if rule is None:
        return None

    dtstart = as_utc(event.start_time).replace(microsecond=0)
    series = rule.build_rrule(dtstart)
    if series.after(dtstart, inc=True) == dtstart:
        return series

    # The start does not match the rule, so it is added on its own and takes one COUNT slot.
    occurrence_set = dateutil_rrule.rruleset()
    occurrence_set.rdate(dtstart)
    if rule.count is None:
        occurrence_set.rrule(series)
    elif rule.count > 1:
        occurrence_set.rrule(rule.build_rrule(dtstart, count=rule.count - 1))
    return occurrence_set


def _end_date(event: RecurringEvent) -> datetime.datetime | None:
    if event.recurrence_end_date is None:
        return None
    return as_utc(event.recurrence_end_date)


def expand_occurrence_starts(
    event: RecurringEvent,
    window_start: datetime.datetime,
    window_end: datetime.datetime,
) -> list[datetime.datetime]:
    """
    Return the ascending, de-duplicated occurrence starts of ``event`` inside
    ``[window_start, window_end)``.
    """
    window_start = as_utc(window_start)
    window_end = as_utc(window_end)
    if window_end <= window_start:
        return []

    end_date = _end_date(event)
    occurrence_set = build_occurrence_set(event)
    if occurrence_set is None:
        candidates = [as_utc(event.start_time)]
    else:
        upper_bound = window_end if end_date is None else min(window_end, end_date)
        candidates = occurrence_set.between(window_start, upper_bound, inc=True)

    return sorted(
        {
            start
            for start in candidates
            if window_start <= start < window_end and (end_date is None or start <= end_date)
        }
    )


def is_occurrence_start(event: RecurringEvent, instant: datetime.datetime) -> bool:
    """Return True if ``instant`` is a start the event's series generates."""
    instant = as_utc(instant)
    end_date = _end_date(event)
    if end_date is not None and instant > end_date:
        return False

    occurrence_set = build_occurrence_set(event)
    if occurrence_set is None:
        return instant == as_utc(event.start_time)
    return occurrence_set.before(instant, inc=True) == instant


def previous_occurrence_start(
    event: RecurringEvent, instant: datetime.datetime
) -> datetime.datetime | None:
    """Return the last occurrence start strictly before ``instant``, if any."""
    instant = as_utc(instant)
    end_date = _end_date(event)
    if end_date is not None and end_date < instant:
        # the bound is inclusive, so the latest candidate is the one at or before it
        instant = end_date + datetime.timedelta(microseconds=1)

    occurrence_set = build_occurrence_set(event)
    if occurrence_set is None:
        start = as_utc(event.start_time)
        return start if start < instant else None
    return occurrence_set.before(instant, inc=False)


def next_occurrence_start(
    event: RecurringEvent, instant: datetime.datetime
) -> datetime.datetime | None:
    """Return the first occurrence start at or after ``instant``, if any."""
    instant = as_utc(instant)
    end_date = _end_date(event)

    occurrence_set = build_occurrence_set(event)
    if occurrence_set is None:
        start = as_utc(event.start_time)
        following = start if start >= instant else None
    else:
        following = occurrence_set.after(instant, inc=True)

    if following is not None and end_date is not None and following > end_date:
        return None
    return following
