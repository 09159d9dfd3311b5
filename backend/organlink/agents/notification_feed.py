from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Union

from loguru import logger

from ..api.admin import AdminApi
from ..api.errors import OrganLinkError
from ..api.hospital import HospitalApi
from ..api.organization import OrganizationApi
from ..config import settings
from ..models.notification import Notification
from ..models.user import SessionUser
from ..session import Session
from ..utils.dates import compact_age
from ..utils.logging import log_api_error

FeedListener = Callable[["NotificationFeed"], Union[Awaitable[None], None]]


class NotificationFeed:
    """Fixed-interval polling of one portal's notifications.

    The feed runs while its session has a user: ``bind`` starts it on sign-in
    and stops it on sign-out. Stopping cancels the polling task and waits for
    it, so no refresh lands after teardown.
    """

    name = "notifications"

    def __init__(self, session: Session, interval: float | None = None) -> None:
        self.session = session
        self.interval = settings.poll_interval_s if interval is None else interval
        self.notifications: List[Notification] = []
        self.loading = False
        self._task: asyncio.Task | None = None
        self._listeners: List[FeedListener] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self.notifications if not notification.is_read)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: FeedListener) -> None:
        self._listeners.append(listener)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(self)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("{} listener failed", self.name)

    async def _load(self) -> List[Notification]:
        raise NotImplementedError

    async def refresh(self) -> None:
        if not self.session.is_authenticated:
            return
        self.loading = True
        try:
            notifications = await self._load()
        except OrganLinkError as exc:
            log_api_error(f"{self.name}.refresh", exc)
            return
        finally:
            self.loading = False
        self.notifications = notifications
        await self._notify()

    async def _poll(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        logger.debug("Starting {} polling every {}s", self.name, self.interval)
        self._task = asyncio.create_task(self._poll(), name=f"{self.name}-poll")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("{} polling ended with an error", self.name)
        logger.debug("Stopped {} polling", self.name)

    def bind(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.session.subscribe(self._on_session_change)
        if self.session.is_authenticated:
            self.start()

    async def _on_session_change(self, user: SessionUser | None) -> None:
        if user is not None:
            self.start()
            return
        await self.stop()
        self.notifications = []

    async def aclose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.stop()

    def _mark_local(self, notification_id: str) -> None:
        self.notifications = [
            n.model_copy(update={"is_read": True}) if n.notification_id == notification_id else n
            for n in self.notifications
        ]


class HospitalNotificationFeed(NotificationFeed):
    name = "hospital-notifications"

    def __init__(self, session: Session, interval: float | None = None) -> None:
        super().__init__(session, interval)
        self.api = HospitalApi(session.client)

    async def _load(self) -> List[Notification]:
        return await self.api.notifications()

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            await self.api.mark_notification_read(notification_id)
        except OrganLinkError as exc:
            log_api_error("mark_as_read", exc)
            return False
        self._mark_local(notification_id)
        return True

    async def mark_all_as_read(self) -> bool:
        try:
            await self.api.mark_all_notifications_read()
        except OrganLinkError as exc:
            log_api_error("mark_all_as_read", exc)
            return False
        self.notifications = [n.model_copy(update={"is_read": True}) for n in self.notifications]
        return True

    async def delete(self, notification_id: str) -> bool:
        try:
            await self.api.delete_notification(notification_id)
        except OrganLinkError as exc:
            log_api_error("delete_notification", exc)
            return False
        self.notifications = [n for n in self.notifications if n.notification_id != notification_id]
        return True


class OrganizationNotificationFeed(NotificationFeed):
    name = "organization-notifications"

    def __init__(self, session: Session, interval: float | None = None) -> None:
        super().__init__(session, interval)
        self.api = OrganizationApi(session.client)

    async def _load(self) -> List[Notification]:
        return await self.api.policy_notifications()

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            await self.api.mark_notification_read(notification_id)
        except OrganLinkError as exc:
            log_api_error("mark_as_read", exc)
            return False
        self._mark_local(notification_id)
        return True

    @staticmethod
    def target_path(notification: Notification) -> str | None:
        """Policy notifications open the vote page of the related proposal."""
        if notification.related_type and notification.related_id:
            return f"/organization/policies/vote/{notification.related_id}"
        return None


ACTIVITY_TYPES: Dict[str, str] = {
    "hospital_registered": "success",
    "policy_created": "info",
    "system_alert": "warning",
}

READ_IDS_KEY = "admin_read_notifications"


class AdminNotification(Notification):
    time: str = ""


class AdminActivityFeed(NotificationFeed):
    """System events from the admin dashboard; read state is kept locally."""

    name = "admin-activity"

    def __init__(self, session: Session, interval: float | None = None, limit: int | None = None) -> None:
        super().__init__(session, interval)
        self.api = AdminApi(session.client)
        self.limit = limit or settings.admin_feed_limit

    def _read_ids(self) -> List[str]:
        return [str(value) for value in self.session.store.get(READ_IDS_KEY, [])]

    def _save_read_ids(self, ids: List[str]) -> None:
        self.session.store.set(READ_IDS_KEY, ids)

    def _to_notification(self, index: int, activity: Dict[str, Any], read_ids: List[str]) -> AdminNotification:
        # Activities carry no id of their own; position in the feed is used.
        notification_id = str(index + 1)
        message = activity.get("description") or activity.get("message") or ""
        return AdminNotification(
            notification_id=notification_id,
            type=ACTIVITY_TYPES.get(activity.get("type", ""), "info"),
            title=activity.get("title") or "System Event",
            message=message,
            created_at=activity.get("timestamp"),
            time=compact_age(activity.get("timestamp")),
            is_read=notification_id in read_ids,
        )

    async def _load(self) -> List[Notification]:
        activities = await self.api.recent_activities()
        read_ids = self._read_ids()
        notifications = [
            self._to_notification(index, activity, read_ids) for index, activity in enumerate(activities)
        ]
        return notifications[: self.limit]

    async def mark_as_read(self, notification_id: str) -> bool:
        read_ids = self._read_ids()
        if notification_id not in read_ids:
            read_ids.append(notification_id)
            self._save_read_ids(read_ids)
        self._mark_local(notification_id)
        return True

    async def mark_all_as_read(self) -> bool:
        read_ids = self._read_ids()
        for notification in self.notifications:
            if notification.notification_id and notification.notification_id not in read_ids:
                read_ids.append(notification.notification_id)
        self._save_read_ids(read_ids)
        self.notifications = [n.model_copy(update={"is_read": True}) for n in self.notifications]
        return True

    async def delete(self, notification_id: str) -> bool:
        self.notifications = [n for n in self.notifications if n.notification_id != notification_id]
        return True
