from __future__ import annotations

from typing import Any, Dict, List

from .client import ApiClient

PREFIX = "/api/admin"


class AdminApi:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def recent_activities(self) -> List[Dict[str, Any]]:
        data = await self.client.get(f"{PREFIX}/dashboard/stats", action="Dashboard fetch")
        activities = data.get("recentActivities") or []
        return [activity for activity in activities if isinstance(activity, dict)]
