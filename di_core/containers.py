from dependency_injector import containers, providers

from calendar_events.services.calendar_feed_service import CalendarFeedService
from calendar_events.services.calendar_repository import CalendarEventRepository
from calendar_events.services.calendar_service import CalendarService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    calendar_event_repository = providers.Factory(
        CalendarEventRepository,
    )

    calendar_service = providers.Factory(
        CalendarService,
        calendar_event_repository=calendar_event_repository,
    )

    calendar_feed_service = providers.Factory(
        CalendarFeedService,
        calendar_service=calendar_service,
        calendar_event_repository=calendar_event_repository,
    )


container: AppContainer | None = None  # set during app startup
