from django_filters import rest_framework as filters

from calendar_events.models import CalendarEvent


class CalendarEventFilterSet(filters.FilterSet):
    """
    FilterSet for CalendarEvent model. Filters apply to event definitions, not to
    expanded occurrences.
    """

    start_time_range = filters.DateTimeFromToRangeFilter(
        field_name="start_time",
        label="Start time range",
    )
    title = filters.CharFilter(
        field_name="title",
        lookup_expr="icontains",
        label="Filter by partial title match",
    )
    is_recurring = filters.BooleanFilter(
        method="filter_is_recurring",
        label="Only recurring (true) or only single (false) events",
    )
    member = filters.NumberFilter(
        field_name="members__user_id",
        distinct=True,
        label="Filter by member user ID",
    )

    class Meta:
        model = CalendarEvent
        fields = (
            "start_time_range",
            "title",
            "is_recurring",
            "member",
        )

    def filter_is_recurring(self, queryset, name, value):
        if value:
            return queryset.exclude(recurrence_rule="")
        return queryset.filter(recurrence_rule="")
