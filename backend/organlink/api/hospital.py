from __future__ import annotations

from typing import Any, Dict, Iterable, List, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from ..models.matching import (
    IncomingMatch,
    MatchRequest,
    MatchResults,
    RespondPayload,
    SendRequestPayload,
)
from ..models.notification import Notification
from ..models.patient import Patient
from .client import ApiClient
from .errors import ApplicationError

ModelT = TypeVar("ModelT", bound=BaseModel)

PREFIX = "/api/hospital"


def parse_items(model: Type[ModelT], items: Iterable[Any] | None, context: str) -> List[ModelT]:
    parsed: List[ModelT] = []
    for item in items or []:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed {} entry: {}", context, exc.errors()[:1])
    return parsed


class HospitalApi:
    """Endpoints of the hospital portal used by matching and notifications."""

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def list_patients(self) -> List[Patient]:
        data = await self.client.get(f"{PREFIX}/patients", action="Patients fetch")
        return parse_items(Patient, data.get("patients"), "patient")

    async def enhanced_matches(self, patient_id: str) -> MatchResults:
        data = await self.client.post(
            f"{PREFIX}/matching/enhanced-matches",
            json={"patient_id": patient_id},
            action="Search",
        )
        try:
            return MatchResults.model_validate(data)
        except ValidationError as exc:
            logger.warning("Enhanced matches payload rejected: {}", exc.errors()[:1])
            raise ApplicationError(
                "Search returned an invalid payload", data if isinstance(data, dict) else None
            ) from exc

    async def send_request(self, payload: SendRequestPayload) -> Dict[str, Any]:
        return await self.client.post(
            f"{PREFIX}/matching/send-request",
            json=payload.model_dump(),
            action="Request",
        )

    async def respond(self, request_id: str, payload: RespondPayload) -> Dict[str, Any]:
        return await self.client.post(
            f"{PREFIX}/matching/requests/{request_id}/respond",
            json=payload.model_dump(mode="json"),
            action="Response",
        )

    async def outgoing_requests(self) -> List[MatchRequest]:
        data = await self.client.get(f"{PREFIX}/matching/outgoing-requests", action="Outgoing fetch")
        return parse_items(MatchRequest, data.get("outgoing_requests"), "outgoing request")

    async def received_requests(self) -> List[MatchRequest]:
        data = await self.client.get(f"{PREFIX}/matching/received-requests", action="Received fetch")
        return parse_items(MatchRequest, data.get("received_requests"), "received request")

    async def incoming_matches(self) -> List[IncomingMatch]:
        data = await self.client.get(f"{PREFIX}/matching/incoming-matches", action="Incoming fetch")
        return parse_items(IncomingMatch, data.get("incoming_matches"), "incoming match")

    async def mark_received_viewed(self) -> None:
        await self.client.post(f"{PREFIX}/matching/mark-received-viewed", action="Mark viewed")

    async def notifications(self) -> List[Notification]:
        data = await self.client.get(f"{PREFIX}/notifications", action="Notifications fetch")
        return parse_items(Notification, data.get("notifications"), "notification")

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.client.patch(f"{PREFIX}/notifications/{notification_id}/read", action="Mark read")

    async def mark_all_notifications_read(self) -> None:
        await self.client.put(f"{PREFIX}/notifications/mark-all-read", action="Mark all read")

    async def delete_notification(self, notification_id: str) -> None:
        await self.client.delete(f"{PREFIX}/notifications/{notification_id}", action="Delete")
