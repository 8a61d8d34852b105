"""Recurrence utilities: splitting series and validating occurrence starts.

Used by the scope mutation planner when an edit or delete applies to one
occurrence onwards.
"""

import datetime

from django.conf import settings

from calendar_events.exceptions import OccurrenceNotFoundError
from calendar_events.recurrence import (
    RecurrenceRule,
    RecurringEvent,
    as_utc,
    build_occurrence_set,
    is_occurrence_start,
    previous_occurrence_start,
)


class RecurrenceRuleSplitter:
    """Helpers to split a recurring series in two at one of its occurrences."""

    @staticmethod
    def count_occurrences_before(event: RecurringEvent, split_date: datetime.datetime) -> int:
        """Number of series occurrences strictly before ``split_date``, the start included."""
        occurrence_set = build_occurrence_set(event)
        if occurrence_set is None:
            return 1 if as_utc(event.start_time) < as_utc(split_date) else 0

        split_date = as_utc(split_date)
        used = 0
        for occ in occurrence_set:
            if occ >= split_date:
                break
            used += 1
        return used

    @staticmethod
    def create_continuation_rule(
        event: RecurringEvent, new_start_date: datetime.datetime
    ) -> RecurrenceRule | None:
        """Create the rule of a series continuing the event from ``new_start_date``.

        If the original rule had a COUNT the method computes the remaining
        count. Returns ``None`` if there are no remaining occurrences.
        """
        rule = event.recurrence_rule
        if not rule:
            return None

        new_start_date = as_utc(new_start_date)

        if rule.count:
            used = RecurrenceRuleSplitter.count_occurrences_before(event, new_start_date)
            remaining = rule.count - used
            if remaining <= 0:
                return None
            return rule.with_count(remaining)

        # If the UNTIL boundary is before the new start the continuation would produce nothing.
        if rule.until and rule.until < new_start_date:
            return None

        return rule

    @staticmethod
    def split_at_date(
        event: RecurringEvent, split_date: datetime.datetime
    ) -> tuple[datetime.datetime | None, RecurrenceRule | None]:
        """Split the event's series at ``split_date`` into (cap, continuation rule).

        ``cap`` is the last occurrence start before ``split_date``, to be used as the
        original's inclusive ``recurrence_end_date``. It is ``None`` when ``split_date`` is
        the first occurrence. ``continuation`` generates occurrences from ``split_date``
        forwards (may be ``None`` if nothing remains).
        """
        cap = previous_occurrence_start(event, split_date)
        continuation_rule = RecurrenceRuleSplitter.create_continuation_rule(event, split_date)
        return cap, continuation_rule


class OccurrenceValidator:
    """Helpers to validate modification dates against a recurrence."""

    @staticmethod
    def is_within_series_bounds(event: RecurringEvent, target_date: datetime.datetime) -> bool:
        """
        Return False when ``target_date`` falls after the series' UNTIL, after its
        ``recurrence_end_date`` or beyond the furthest editable horizon from its start.
        Checked before walking the occurrence set, which is unbounded otherwise.
        """
        target_date = as_utc(target_date)
        start = as_utc(event.start_time)
        if target_date < start:
            return False

        horizon = datetime.timedelta(days=settings.CALENDAR_MAX_OCCURRENCE_HORIZON_DAYS)
        if target_date - start > horizon:
            return False

        rule = event.recurrence_rule
        if rule is not None and rule.until is not None and target_date > rule.until:
            return False
        if event.recurrence_end_date is not None and target_date > as_utc(
            event.recurrence_end_date
        ):
            return False
        return True

    @staticmethod
    def validate_modification_date(
        event: RecurringEvent, target_date: datetime.datetime
    ) -> datetime.datetime:
        """Return ``target_date`` in UTC, raising if it is not an occurrence of ``event``."""
        target_date = as_utc(target_date)
        if not OccurrenceValidator.is_within_series_bounds(
            event, target_date
        ) or not is_occurrence_start(event, target_date):
            raise OccurrenceNotFoundError(
                f"{target_date.isoformat()} is not an occurrence of this event."
            )
        return target_date
