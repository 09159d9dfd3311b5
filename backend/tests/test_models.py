"""Model parsing: notification metadata, request id fallbacks, ranking and state transitions."""

import pytest

from organlink.models.donor import Donor
from organlink.models.matching import IncomingMatch, MatchResults, RequestStatus
from organlink.models.notification import Notification, parse_metadata
from organlink.models.patient import Patient
from organlink.models.user import Portal, SessionUser


# ── Metadata parsing ────────────────────────────────────────────────────
@pytest.mark.parametrize("raw", ["{not json", "   ", "", "[1, 2, 3]", "42", None, 17])
def test_parse_metadata_falls_back_to_none(raw):
    assert parse_metadata(raw) is None


def test_parse_metadata_decodes_json_objects():
    assert parse_metadata('{"request_id": "REQ-1"}') == {"request_id": "REQ-1"}
    assert parse_metadata({"already": "parsed"}) == {"already": "parsed"}


def test_malformed_metadata_never_raises_on_notification():
    notification = Notification.model_validate(
        {"notification_id": "N-1", "type": "match_request", "metadata": '{"request_id": '}
    )
    assert notification.metadata is None


# ── Request id resolution ──────────────────────────────────────────────
@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"metadata": {"request_id": "A", "requestId": "B"}, "related_id": "C", "notification_id": "D", "id": "E"}, "A"),
        ({"metadata": '{"requestId": "B"}', "related_id": "C", "notification_id": "D", "id": "E"}, "B"),
        ({"metadata": "broken{", "related_id": "C", "notification_id": "D", "id": "E"}, "C"),
        ({"notification_id": "D", "id": "E"}, "D"),
        ({"id": 77}, "77"),
        ({}, None),
    ],
)
def test_request_id_fallback_chain(payload, expected):
    assert IncomingMatch.model_validate(payload).request_id == expected


def test_incoming_match_display_fallbacks():
    item = IncomingMatch.model_validate(
        {
            "notification_id": "N-1",
            "metadata": {
                "bloodType": "O-",
                "urgency": "Critical",
                "createdAt": "2024-05-01T10:00:00Z",
                "matches": [
                    {"donor_id": "D1", "organs_available": ["Kidney"], "match_score": 88},
                    "not a candidate",
                    {"no_donor_id": True},
                ],
            },
        }
    )
    assert item.organ == "Kidney"
    assert item.blood == "O-"
    assert item.urgency == "Critical"
    assert item.created == "2024-05-01T10:00:00Z"
    assert [c.donor_id for c in item.embedded_matches] == ["D1"]


def test_incoming_match_defaults_without_metadata():
    item = IncomingMatch.model_validate({"notification_id": "N-1"})
    assert item.organ == "Not specified"
    assert item.blood == "Not specified"
    assert item.urgency == "Medium"
    assert item.embedded_matches == []


# ── Match results ──────────────────────────────────────────────────────
def test_matches_are_ranked_by_score_descending():
    results = MatchResults.model_validate(
        {"matches": [{"donor_id": "a", "match_score": 92}, {"donor_id": "b", "match_score": 55}, {"donor_id": "c", "match_score": 81}]}
    )
    assert [c.match_score for c in results.ranked()] == [92, 81, 55]
    assert results.caption() is None


def test_only_top_five_are_shown_with_caption():
    scores = [40, 95, 61, 77, 88, 52, 99]
    results = MatchResults.model_validate(
        {"matches": [{"donor_id": f"d{i}", "match_score": s} for i, s in enumerate(scores)], "total_matches": 7}
    )
    assert [c.match_score for c in results.top(5)] == [99, 95, 88, 77, 61]
    assert results.caption(5) == "Showing top 5 of 7 matches"


# ── Patients, statuses, users ──────────────────────────────────────────
@pytest.mark.parametrize(
    "status, waiting",
    [(None, True), ("", True), ("Waiting", True), ("In Progress", False), ("Matched", False), ("Completed", False)],
)
def test_patient_waiting_status(status, waiting):
    patient = Patient.model_validate(
        {"patient_id": "P1", "full_name": "A", "blood_type": "A+", "organ_needed": "Kidney", "status": status}
    )
    assert patient.is_waiting is waiting


def test_request_status_transitions():
    assert RequestStatus.PENDING.can_transition(RequestStatus.ACCEPTED)
    assert RequestStatus.PENDING.can_transition(RequestStatus.REJECTED)
    assert RequestStatus.ACCEPTED.can_transition(RequestStatus.COMPLETED)
    assert not RequestStatus.REJECTED.can_transition(RequestStatus.ACCEPTED)
    assert not RequestStatus.PENDING.can_transition(RequestStatus.COMPLETED)
    assert RequestStatus.parse("Accepted") is RequestStatus.ACCEPTED
    assert RequestStatus.parse("archived") is None


def test_session_user_from_verify_payloads():
    hospital = SessionUser.from_verify(
        Portal.HOSPITAL, {"hospital": {"hospital_id": "H1", "hospital_name": "City General"}}
    )
    assert (hospital.id, hospital.name) == ("H1", "City General")
    admin = SessionUser.from_verify(Portal.ADMIN, {"admin": {"admin_id": "root", "name": "Root"}})
    assert admin.portal is Portal.ADMIN
    with pytest.raises(ValueError):
        SessionUser.from_verify(Portal.ORGANIZATION, {"success": True})


def test_portal_storage_keys():
    assert [p.token_key for p in Portal] == ["hospital_token", "organization_token", "admin_token"]
    assert Portal.ORGANIZATION.api_prefix == "/api/organization"


def test_donor_eligibility():
    donor = Donor(donor_id="D1", full_name="Vikram Singh", blood_type="O+", status="Available")
    assert not donor.is_eligible
    assert donor.model_copy(update={"signature_verified": True}).is_eligible
    assert not donor.model_copy(update={"signature_verified": True, "status": "Matched"}).is_eligible


@pytest.mark.parametrize(
    "raw, expected",
    [("false", False), ("0", False), ("", False), ("true", True), ("1", True), (1, True), (0, False), (None, False)],
)
def test_read_flag_parsing(raw, expected):
    assert Notification(is_read=raw).is_read is expected
