from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Dict, List, Set
from urllib.parse import parse_qsl, urlencode

from loguru import logger

from ..api.errors import ApplicationError, OrganLinkError
from ..api.hospital import HospitalApi
from ..config import settings
from ..models.matching import (
    IncomingMatch,
    MatchCandidate,
    MatchRequest,
    MatchResults,
    RequestStatus,
    RespondPayload,
    SendRequestPayload,
)
from ..models.patient import Patient
from ..utils.logging import log_api_error
from ..utils.toasts import ToastChannel


class Tab(str, Enum):
    SEARCH = "search"
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    RECEIVED = "received"

    @classmethod
    def parse(cls, value: object) -> "Tab":
        try:
            return cls(value)
        except ValueError:
            return cls.SEARCH


_DECISIONS: Dict[str, RequestStatus] = {
    "accept": RequestStatus.ACCEPTED,
    "accepted": RequestStatus.ACCEPTED,
    "reject": RequestStatus.REJECTED,
    "rejected": RequestStatus.REJECTED,
    "decline": RequestStatus.REJECTED,
}

_RESPONSE_NOTES = {
    RequestStatus.ACCEPTED: "Request accepted by donor hospital",
    RequestStatus.REJECTED: "Request declined by donor hospital",
}

_RESPONSE_TOASTS = {
    RequestStatus.ACCEPTED: "Request accepted! Patient and donor statuses have been updated to 'Matched'.",
    RequestStatus.REJECTED: "Request declined. Patient is now available for other matches.",
}

_KEEP = object()

Navigator = Callable[[str], None]


def parse_decision(decision: RequestStatus | str) -> RequestStatus:
    if isinstance(decision, RequestStatus):
        status = decision
    else:
        status = _DECISIONS.get(str(decision).lower())
        if status is None:
            raise ValueError(f"Unknown response decision: {decision!r}")
    if not RequestStatus.PENDING.can_transition(status):
        raise ValueError(f"A pending request cannot move to {status.value}")
    return status


def default_request_notes(patient: Patient) -> str:
    return (
        f"Request for {patient.organ_needed} for {patient.urgency_level.lower()} "
        f"priority patient {patient.full_name}"
    )


class MatchingWorkflow:
    """Client-side driver for the AI matching page of the hospital portal.

    The server owns scoring and every request state; this object keeps a
    read projection of four lists (waiting patients, incoming, outgoing and
    received requests) and refreshes them after each mutation. Per-action
    in-flight markers stand in for disabled buttons.
    """

    def __init__(
        self,
        api: HospitalApi,
        toasts: ToastChannel | None = None,
        *,
        on_navigate: Navigator | None = None,
        display_limit: int | None = None,
    ) -> None:
        self.api = api
        self.toasts = toasts or ToastChannel()
        self.on_navigate = on_navigate
        self.display_limit = display_limit or settings.match_display_limit

        self.patients: List[Patient] = []
        self.selected_patient: Patient | None = None
        self.results: MatchResults | None = None
        self.searching = False

        self.incoming: List[IncomingMatch] = []
        self.outgoing: List[MatchRequest] = []
        self.received: List[MatchRequest] = []

        self.active_tab = Tab.SEARCH
        self.focused_request_id: str | None = None
        self.query_string = ""

        self.responding_request_id: str | None = None
        self._requesting: Set[str] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Derived view state
    # ------------------------------------------------------------------
    @property
    def matches(self) -> List[MatchCandidate]:
        return self.results.matches if self.results else []

    @property
    def visible_matches(self) -> List[MatchCandidate]:
        return self.results.top(self.display_limit) if self.results else []

    @property
    def matches_caption(self) -> str | None:
        return self.results.caption(self.display_limit) if self.results else None

    @property
    def policy_applied(self) -> bool:
        return bool(self.results and self.results.policy_applied)

    @property
    def policy_title(self) -> str | None:
        return self.results.policy_title if self.results else None

    @property
    def unread_incoming_count(self) -> int:
        return sum(1 for item in self.incoming if not item.is_read)

    @property
    def pending_outgoing_count(self) -> int:
        return sum(1 for request in self.outgoing if request.status == RequestStatus.PENDING.value)

    @property
    def unviewed_received_count(self) -> int:
        return sum(1 for request in self.received if request.is_viewed is False)

    @property
    def focused_item(self) -> IncomingMatch | None:
        if not self.focused_request_id:
            return None
        for item in self.incoming:
            if item.request_id == self.focused_request_id:
                return item
        return None

    def is_requesting(self, donor_id: str) -> bool:
        return donor_id in self._requesting

    def is_responding(self, request_id: str | None) -> bool:
        return request_id is not None and request_id == self.responding_request_id

    # ------------------------------------------------------------------
    # Query string mirroring
    # ------------------------------------------------------------------
    def apply_query(self, query_string: str) -> None:
        """Adopt view state from a deep link such as ``?tab=incoming&request=r1``."""
        self.query_string = query_string.lstrip("?")
        params = dict(parse_qsl(self.query_string))
        self.active_tab = Tab.parse(params.get("tab"))
        self.focused_request_id = params.get("request") or None

    def _update_query(self, tab: Tab | None = None, request: object = _KEEP) -> None:
        params = dict(parse_qsl(self.query_string, keep_blank_values=True))
        if tab is not None:
            params["tab"] = tab.value
        if request is not _KEEP:
            if request:
                params["request"] = str(request)
            else:
                params.pop("request", None)
        updated = urlencode(params)
        if updated == self.query_string:
            return
        self.query_string = updated
        if self.on_navigate is not None:
            self.on_navigate(updated)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    async def load(self) -> None:
        await asyncio.gather(
            self.fetch_patients(),
            self.fetch_incoming(),
            self.fetch_outgoing(),
            self.fetch_received(),
        )

    async def fetch_patients(self) -> None:
        try:
            patients = await self.api.list_patients()
        except OrganLinkError as exc:
            log_api_error("fetch_patients", exc)
            return
        if self._closed:
            return
        self.patients = [patient for patient in patients if patient.is_waiting]

    async def fetch_incoming(self) -> None:
        try:
            incoming = await self.api.incoming_matches()
        except OrganLinkError as exc:
            log_api_error("fetch_incoming", exc)
            return
        if self._closed:
            return
        self.incoming = incoming
        if self.focused_request_id and not any(
            item.request_id == self.focused_request_id for item in incoming
        ):
            self.focused_request_id = None
            self._update_query(request=None)

    async def fetch_outgoing(self) -> None:
        try:
            outgoing = await self.api.outgoing_requests()
        except OrganLinkError as exc:
            log_api_error("fetch_outgoing", exc)
            return
        if not self._closed:
            self.outgoing = outgoing

    async def fetch_received(self) -> None:
        try:
            received = await self.api.received_requests()
        except OrganLinkError as exc:
            log_api_error("fetch_received", exc)
            return
        if not self._closed:
            self.received = received

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def search_matches(self, patient: Patient) -> MatchResults | None:
        if not patient.is_waiting:
            raise ValueError(f"Patient {patient.patient_id} is not waiting for a match")

        self.searching = True
        self.selected_patient = patient
        self.results = None
        try:
            results = await self.api.enhanced_matches(patient.patient_id)
        except ApplicationError as exc:
            self.toasts.error(exc.payload.get("error") or "Failed to search matches")
            return None
        except OrganLinkError as exc:
            log_api_error("search_matches", exc)
            self.toasts.error("Failed to search matches")
            return None
        finally:
            self.searching = False

        self.results = results
        total = results.total_matches or len(results.matches)
        if total == 0:
            self.toasts.warning("No matches found for this patient")
        else:
            suffix = " with Policy Applied" if results.policy_applied else ""
            self.toasts.success(f"Found {total} potential matches using Enhanced AI Algorithm{suffix}!")
        logger.info(
            "Match search for {} returned {} candidates (policy: {})",
            patient.patient_id,
            total,
            results.policy_title or "default weights",
        )
        return results

    async def send_request(
        self,
        candidate: MatchCandidate,
        patient: Patient | None = None,
        notes: str | None = None,
    ) -> bool:
        patient = patient or self.selected_patient
        if patient is None:
            raise ValueError("Select a patient before requesting a match")

        donor_id = candidate.donor_id
        self._requesting.add(donor_id)
        try:
            data = await self.api.send_request(
                SendRequestPayload(
                    patient_id=patient.patient_id,
                    donor_id=donor_id,
                    donor_hospital_id=candidate.hospital_id,
                    notes=notes if notes is not None else default_request_notes(patient),
                )
            )
            self.toasts.success(
                data.get("message")
                or "Match request sent successfully! Patient status updated to 'In Progress'."
            )
            await self.fetch_patients()
            await self.fetch_outgoing()
            await self.fetch_received()
            self._update_query(tab=Tab.OUTGOING)
            self.active_tab = Tab.OUTGOING
            return True
        except ApplicationError as exc:
            self.toasts.error(exc.payload.get("error") or "Failed to send request")
        except OrganLinkError as exc:
            log_api_error("send_request", exc)
            self.toasts.error(exc.message or "Failed to send request")
        finally:
            self._requesting.discard(donor_id)
        return False

    async def respond(self, item: IncomingMatch, decision: RequestStatus | str) -> bool:
        status = parse_decision(decision)
        request_id = item.request_id
        if not request_id:
            self.toasts.error("Unable to identify the match request")
            return False

        self.responding_request_id = request_id
        try:
            await self.api.respond(
                request_id,
                RespondPayload(status=status, response_notes=_RESPONSE_NOTES[status]),
            )
            self.toasts.success(_RESPONSE_TOASTS[status])

            if item.notification_id:
                try:
                    await self.api.mark_notification_read(item.notification_id)
                except OrganLinkError as exc:
                    log_api_error("mark_notification_read", exc)

            self._update_query(request=None)
            self.focused_request_id = None
            await self.fetch_incoming()
            await self.fetch_received()
            await self.fetch_outgoing()
            return True
        except ApplicationError as exc:
            self.toasts.error(exc.payload.get("error") or "Failed to respond")
        except OrganLinkError as exc:
            log_api_error("respond", exc)
            self.toasts.error(exc.message or "Failed to respond to match")
        finally:
            self.responding_request_id = None
        return False

    async def switch_tab(self, tab: Tab | str) -> None:
        """Activate a tab; incoming and received carry a read-receipt side effect."""
        tab = Tab.parse(tab)
        self.active_tab = tab
        if tab is not Tab.INCOMING:
            self.focused_request_id = None
        self._update_query(tab=tab, request=self.focused_request_id if tab is Tab.INCOMING else None)

        if tab is Tab.INCOMING and self.incoming:
            for item in [item for item in self.incoming if not item.is_read]:
                if not item.notification_id:
                    continue
                try:
                    await self.api.mark_notification_read(item.notification_id)
                except OrganLinkError as exc:
                    log_api_error("mark_notification_read", exc)
            await self.fetch_incoming()

        if tab is Tab.RECEIVED:
            try:
                await self.api.mark_received_viewed()
            except OrganLinkError as exc:
                log_api_error("mark_received_viewed", exc)
                return
            await self.fetch_received()

    def close(self) -> None:
        """Stop applying fetch results; in-flight calls finish but are discarded."""
        self._closed = True
