from fastapi import BackgroundTasks

from offerwheel_api.core.settings import settings
from offerwheel_api.db.session import async_session
from offerwheel_api.services.notifications import NotificationDispatcher, NotificationRequest


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dispatcher with its own sessions; it runs after the request session closes."""

    return NotificationDispatcher(async_session)


def schedule_notification(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    request: NotificationRequest | None,
) -> bool:
    if request is None or not settings.notification_dispatch_enabled:
        return False
    background_tasks.add_task(dispatcher.dispatch, request)
    return True
