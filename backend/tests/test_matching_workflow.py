"""End-to-end matching flows against the in-process sandbox API.

Run with:  python -m pytest backend/tests/test_matching_workflow.py -v
"""

import asyncio

import httpx
import pytest

from organlink.agents.matching_workflow import MatchingWorkflow, Tab, parse_decision
from organlink.api.client import ApiClient
from organlink.api.errors import HttpStatusError, NetworkError
from organlink.api.hospital import HospitalApi
from organlink.models.matching import IncomingMatch, MatchCandidate, RequestStatus
from organlink.models.patient import Patient
from organlink.models.user import Portal
from organlink.utils.toasts import ToastChannel


async def _workflow(make_session, hospital_id):
    session = await make_session(Portal.HOSPITAL, hospital_id)
    navigations = []
    workflow = MatchingWorkflow(HospitalApi(session.client), ToastChannel(), on_navigate=navigations.append)
    await workflow.load()
    return workflow, navigations


def _patient(workflow, patient_id):
    return next(p for p in workflow.patients if p.patient_id == patient_id)


async def _send(workflow, patient_id="PAT-001", donor_id="DON-102"):
    patient = _patient(workflow, patient_id)
    results = await workflow.search_matches(patient)
    candidate = next(c for c in results.matches if c.donor_id == donor_id)
    assert await workflow.send_request(candidate, patient)
    return candidate


# ── Search ─────────────────────────────────────────────────────────────
async def test_only_waiting_patients_are_offered(make_session):
    workflow, _ = await _workflow(make_session, "HOSP-001")
    assert {p.patient_id for p in workflow.patients} == {"PAT-001", "PAT-002"}


async def test_search_reports_policy_and_ranks_candidates(make_session):
    workflow, _ = await _workflow(make_session, "HOSP-001")
    results = await workflow.search_matches(_patient(workflow, "PAT-001"))

    assert results.total_matches == 3
    assert workflow.policy_applied
    assert workflow.policy_title == "Critical Kidney Priority"
    scores = [c.match_score for c in workflow.visible_matches]
    assert scores == sorted(scores, reverse=True)
    assert workflow.matches_caption is None
    assert workflow.toasts.last.type == "success"
    assert workflow.toasts.last.title == (
        "Found 3 potential matches using Enhanced AI Algorithm with Policy Applied!"
    )
    assert not workflow.searching


async def test_search_without_policy(make_session):
    workflow, _ = await _workflow(make_session, "HOSP-001")
    await workflow.search_matches(_patient(workflow, "PAT-002"))
    assert not workflow.policy_applied
    assert [c.donor_id for c in workflow.matches] == ["DON-103"]
    assert workflow.toasts.last.title == "Found 1 potential matches using Enhanced AI Algorithm!"


async def test_search_with_no_candidates_warns(make_session, store):
    store.add_patient(
        "HOSP-001",
        patient_id="PAT-009",
        full_name="Lone Patient",
        blood_type="AB+",
        organ_needed="Pancreas",
        urgency_level="Low",
    )
    workflow, _ = await _workflow(make_session, "HOSP-001")
    await workflow.search_matches(_patient(workflow, "PAT-009"))
    assert workflow.matches == []
    assert workflow.toasts.last.type == "warning"
    assert workflow.toasts.last.title == "No matches found for this patient"


async def test_search_rejects_patients_not_waiting(make_session):
    workflow, _ = await _workflow(make_session, "HOSP-001")
    matched = Patient(patient_id="PAT-003", full_name="Kiran Das", blood_type="B+", organ_needed="Heart", status="Matched")
    with pytest.raises(ValueError):
        await workflow.search_matches(matched)


# ── Sending requests ───────────────────────────────────────────────────
async def test_send_request_moves_to_outgoing(make_session):
    workflow, navigations = await _workflow(make_session, "HOSP-001")
    await _send(workflow)

    assert workflow.toasts.last.title == "Match request sent successfully"
    assert workflow.active_tab is Tab.OUTGOING
    assert navigations[-1] == "tab=outgoing"
    assert "PAT-001" not in {p.patient_id for p in workflow.patients}
    assert [r.status for r in workflow.outgoing] == ["pending"]
    assert workflow.pending_outgoing_count == 1
    assert not workflow.is_requesting("DON-102")


async def test_send_request_failure_reports_server_error(make_session):
    workflow, _ = await _workflow(make_session, "HOSP-001")
    patient = _patient(workflow, "PAT-001")
    await _send(workflow)

    sent_again = await workflow.send_request(MatchCandidate(donor_id="DON-101", hospital_id="HOSP-002"), patient)
    assert not sent_again
    assert workflow.toasts.last.type == "error"
    assert workflow.toasts.last.title == "Patient is not available for matching"
    assert not workflow.is_requesting("DON-101")


class _GatedApi:
    def __init__(self, fail: bool) -> None:
        self.fail = fail
        self.release = asyncio.Event()

    async def send_request(self, payload):
        await self.release.wait()
        if self.fail:
            raise HttpStatusError("Request failed with status 500", status_code=500)
        return {"success": True}

    async def list_patients(self):
        return []

    async def outgoing_requests(self):
        return []

    async def received_requests(self):
        return []


@pytest.mark.parametrize("fail", [False, True])
async def test_only_the_requested_donor_is_disabled_while_in_flight(fail):
    api = _GatedApi(fail)
    workflow = MatchingWorkflow(api, ToastChannel())
    patient = Patient(patient_id="P1", full_name="Asha", blood_type="A+", organ_needed="Kidney", urgency_level="High")

    task = asyncio.create_task(workflow.send_request(MatchCandidate(donor_id="DON-A"), patient))
    await asyncio.sleep(0)
    assert workflow.is_requesting("DON-A")
    assert not workflow.is_requesting("DON-B")

    api.release.set()
    assert await task is (not fail)
    assert not workflow.is_requesting("DON-A")
    if fail:
        assert workflow.toasts.last.title == "Request failed with status 500"


def test_default_notes_describe_the_patient():
    from organlink.agents.matching_workflow import default_request_notes

    patient = Patient(patient_id="P1", full_name="Asha Verma", blood_type="A+", organ_needed="Kidney", urgency_level="Critical")
    assert default_request_notes(patient) == "Request for Kidney for critical priority patient Asha Verma"


# ── Responding ─────────────────────────────────────────────────────────
async def test_accepting_marks_notification_read_and_refreshes(make_session):
    requester, _ = await _workflow(make_session, "HOSP-001")
    await _send(requester)

    donor_side, navigations = await _workflow(make_session, "HOSP-002")
    donor_side.apply_query("tab=incoming&request=REQ-0001")
    assert donor_side.unread_incoming_count == 1
    item = donor_side.focused_item
    assert item is not None and item.organ == "Kidney"

    assert await donor_side.respond(item, "accept")
    assert donor_side.toasts.last.type == "success"
    assert donor_side.focused_request_id is None
    assert "request" not in donor_side.query_string
    assert navigations[-1] == "tab=incoming"
    assert donor_side.unread_incoming_count == 0
    assert [r.status for r in donor_side.received] == ["accepted"]
    assert donor_side.responding_request_id is None

    await requester.fetch_outgoing()
    assert requester.outgoing[0].status == "accepted"
    assert requester.outgoing[0].response_notes == "Request accepted by donor hospital"


async def test_declining_returns_patient_to_waiting(make_session):
    requester, _ = await _workflow(make_session, "HOSP-001")
    await _send(requester)
    donor_side, _ = await _workflow(make_session, "HOSP-002")

    assert await donor_side.respond(donor_side.incoming[0], RequestStatus.REJECTED)
    await requester.fetch_patients()
    assert "PAT-001" in {p.patient_id for p in requester.patients}


async def test_responding_twice_surfaces_server_error(make_session):
    requester, _ = await _workflow(make_session, "HOSP-001")
    await _send(requester)
    donor_side, _ = await _workflow(make_session, "HOSP-002")
    item = donor_side.incoming[0]

    assert await donor_side.respond(item, "accept")
    assert not await donor_side.respond(item, "reject")
    assert donor_side.toasts.last.title == "Request has already been accepted"
    assert donor_side.responding_request_id is None


async def test_unidentifiable_request_is_not_sent():
    workflow = MatchingWorkflow(api=None, toasts=ToastChannel())
    assert not await workflow.respond(IncomingMatch(), "accept")
    assert workflow.toasts.last.title == "Unable to identify the match request"


class _FlakyReadApi:
    def __init__(self) -> None:
        self.responded = []

    async def respond(self, request_id, payload):
        self.responded.append((request_id, payload.status))
        return {"success": True}

    async def mark_notification_read(self, notification_id):
        raise NetworkError("Network error occurred")

    async def incoming_matches(self):
        return []

    async def received_requests(self):
        return []

    async def outgoing_requests(self):
        return []


async def test_failed_read_receipt_does_not_undo_accept():
    api = _FlakyReadApi()
    workflow = MatchingWorkflow(api, ToastChannel())
    item = IncomingMatch(notification_id="N-1", related_id="REQ-9")

    assert await workflow.respond(item, "accept")
    assert api.responded == [("REQ-9", RequestStatus.ACCEPTED)]
    assert workflow.toasts.last.type == "success"


@pytest.mark.parametrize("decision", ["completed", "pending", "maybe"])
def test_only_accept_or_reject_are_valid_responses(decision):
    with pytest.raises(ValueError):
        parse_decision(decision)


# ── Tabs ───────────────────────────────────────────────────────────────
async def test_opening_received_marks_everything_viewed(make_session):
    requester, _ = await _workflow(make_session, "HOSP-001")
    await _send(requester)
    await _send(requester, "PAT-002", "DON-103")

    donor_side, _ = await _workflow(make_session, "HOSP-002")
    assert [r.is_viewed for r in donor_side.received] == [False]
    await donor_side.switch_tab("received")
    assert [r.is_viewed for r in donor_side.received] == [True]
    assert donor_side.unviewed_received_count == 0
    assert donor_side.query_string == "tab=received"


async def test_opening_incoming_marks_items_read(make_session):
    requester, _ = await _workflow(make_session, "HOSP-001")
    await _send(requester)
    donor_side, _ = await _workflow(make_session, "HOSP-002")

    await donor_side.switch_tab(Tab.INCOMING)
    assert donor_side.active_tab is Tab.INCOMING
    assert donor_side.unread_incoming_count == 0


async def test_missing_focused_request_is_cleared(make_session):
    workflow, navigations = await _workflow(make_session, "HOSP-002")
    workflow.apply_query("?tab=incoming&request=REQ-404")
    assert workflow.focused_request_id == "REQ-404"

    await workflow.fetch_incoming()
    assert workflow.focused_request_id is None
    assert navigations == ["tab=incoming"]


def test_unknown_tab_falls_back_to_search():
    workflow = MatchingWorkflow(api=None)
    workflow.apply_query("tab=archive")
    assert workflow.active_tab is Tab.SEARCH


async def test_switching_away_from_incoming_drops_request_parameter():
    navigations = []
    workflow = MatchingWorkflow(api=None, on_navigate=navigations.append)
    workflow.apply_query("tab=incoming&request=REQ-1")
    await workflow.switch_tab("outgoing")
    assert navigations == ["tab=outgoing"]
    assert workflow.focused_request_id is None


# ── Loosely typed search payloads ──────────────────────────────────────
def _search_api(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    return HospitalApi(ApiClient("http://api.test", transport=httpx.MockTransport(handler)))


_WAITING = Patient(patient_id="P1", full_name="Asha", blood_type="A+", organ_needed="Kidney")


async def test_null_fields_in_search_results_are_tolerated():
    api = _search_api(
        {
            "success": True,
            "matches": [{"donor_id": "D1", "match_score": 90, "distance_score": None, "organs_available": None}],
            "total_matches": None,
            "policy_applied": None,
        }
    )
    workflow = MatchingWorkflow(api, ToastChannel())
    results = await workflow.search_matches(_WAITING)

    assert results.matches[0].distance_score == 0.0
    assert not workflow.policy_applied
    assert workflow.toasts.last.title == "Found 1 potential matches using Enhanced AI Algorithm!"
    await api.client.aclose()


async def test_unusable_search_payload_ends_in_error_toast():
    api = _search_api({"success": True, "matches": [{"donor_name": "no id"}]})
    workflow = MatchingWorkflow(api, ToastChannel())

    assert await workflow.search_matches(_WAITING) is None
    assert workflow.toasts.last.type == "error"
    assert workflow.toasts.last.title == "Failed to search matches"
    assert not workflow.searching
    await api.client.aclose()
