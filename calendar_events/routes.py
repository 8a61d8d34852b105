from common.types import RouteDict

from .views import (
    CalendarEventViewSet,
    CalendarFeedTokenViewSet,
    ExternalCalendarSubscriptionViewSet,
)


routes: list[RouteDict] = [
    {
        "regex": r"calendar-events",
        "viewset": CalendarEventViewSet,
        "basename": "CalendarEvents",
    },
    {
        "regex": r"external-calendar-subscriptions",
        "viewset": ExternalCalendarSubscriptionViewSet,
        "basename": "ExternalCalendarSubscriptions",
    },
    {
        "regex": r"calendar-feed-tokens",
        "viewset": CalendarFeedTokenViewSet,
        "basename": "CalendarFeedTokens",
    },
]
