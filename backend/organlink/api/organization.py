from __future__ import annotations

from typing import List

from ..models.notification import Notification
from .client import ApiClient
from .hospital import parse_items

PREFIX = "/api/organization"


class OrganizationApi:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def policy_notifications(self) -> List[Notification]:
        data = await self.client.get(f"{PREFIX}/policies/notifications", action="Notifications fetch")
        return parse_items(Notification, data.get("notifications"), "policy notification")

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.client.post(f"{PREFIX}/policies/notifications/{notification_id}/read", action="Mark read")
