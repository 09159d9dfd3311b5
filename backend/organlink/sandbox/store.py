from __future__ import annotations

import itertools
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from loguru import logger

from ..models.donor import Donor
from ..models.user import Portal
from ..utils.security import create_access_token
from .scoring import blood_compatible, score_candidate


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SandboxError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class SandboxStore:
    """In-memory documents behind the sandbox API, keyed the way the API keys them."""

    def __init__(self) -> None:
        self.hospitals: Dict[str, Dict[str, Any]] = {}
        self.organizations: Dict[str, Dict[str, Any]] = {}
        self.admins: Dict[str, Dict[str, Any]] = {}
        self.patients: Dict[str, Dict[str, Any]] = {}
        self.donors: Dict[str, Dict[str, Any]] = {}
        self.requests: Dict[str, Dict[str, Any]] = {}
        self.notifications: Dict[str, Dict[str, Any]] = {}
        self.policy_notifications: Dict[str, Dict[str, Any]] = {}
        self.policies: List[Dict[str, Any]] = []
        self.activities: List[Dict[str, Any]] = []
        self._request_seq = itertools.count(1)
        self._notification_seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def accounts(self, portal: Portal) -> Dict[str, Dict[str, Any]]:
        return {
            Portal.HOSPITAL: self.hospitals,
            Portal.ORGANIZATION: self.organizations,
            Portal.ADMIN: self.admins,
        }[portal]

    def issue_token(self, portal: Portal, account_id: str) -> str:
        if account_id not in self.accounts(portal):
            raise KeyError(f"Unknown {portal.value} account {account_id}")
        return create_access_token(account_id, portal.value)

    def add_hospital(self, hospital_id: str, name: str, city: str, state: str) -> Dict[str, Any]:
        hospital = {
            "hospital_id": hospital_id,
            "hospital_name": name,
            "city": city,
            "state": state,
            "email": f"{hospital_id.lower()}@organlink.test",
            "is_active": True,
        }
        self.hospitals[hospital_id] = hospital
        return hospital

    def add_patient(self, hospital_id: str, **fields: Any) -> Dict[str, Any]:
        patient = {"status": "Waiting", "hospital_id": hospital_id, **fields}
        self.patients[patient["patient_id"]] = patient
        return patient

    def add_donor(self, hospital_id: str, **fields: Any) -> Dict[str, Any]:
        donor = {"status": "Available", "signature_verified": True, "hospital_id": hospital_id, **fields}
        donor["organs_to_donate"] = sorted(set(donor.get("organs_to_donate", [])))
        self.donors[donor["donor_id"]] = donor
        return donor

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def notify(self, hospital_id: str, type: str, title: str, message: str, **fields: Any) -> Dict[str, Any]:
        notification_id = f"N-{next(self._notification_seq):04d}"
        notification = {
            "notification_id": notification_id,
            "hospital_id": hospital_id,
            "type": type,
            "title": title,
            "message": message,
            "is_read": False,
            "created_at": utcnow(),
            **fields,
        }
        self.notifications[notification_id] = notification
        return notification

    def hospital_notifications(self, hospital_id: str) -> List[Dict[str, Any]]:
        return [n for n in self.notifications.values() if n["hospital_id"] == hospital_id]

    def owned_notification(self, hospital_id: str, notification_id: str) -> Dict[str, Any]:
        notification = self.notifications.get(notification_id)
        if not notification or notification["hospital_id"] != hospital_id:
            raise SandboxError(404, "Notification not found")
        return notification

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------
    def active_policy(self, organ: str) -> Dict[str, Any] | None:
        for policy in self.policies:
            if policy.get("status") == "active" and policy.get("organ_type", "").lower() == organ.lower():
                return policy
        return None

    def enhanced_matches(self, hospital_id: str, patient_id: str) -> Dict[str, Any]:
        patient = self.patients.get(patient_id)
        if not patient or patient["hospital_id"] != hospital_id:
            raise SandboxError(404, "Patient not found")
        policy = self.active_policy(patient["organ_needed"])
        patient_hospital = self.hospitals[hospital_id]
        matches = []
        for donor in self.donors.values():
            if donor["hospital_id"] == hospital_id or not Donor.model_validate(donor).is_eligible:
                continue
            if patient["organ_needed"] not in donor.get("organs_to_donate", []):
                continue
            if not blood_compatible(patient.get("blood_type"), donor.get("blood_type")):
                continue
            matches.append(
                score_candidate(
                    patient,
                    donor,
                    patient_hospital,
                    self.hospitals[donor["hospital_id"]],
                    weights=policy.get("weights") if policy else None,
                )
            )
        matches.sort(key=lambda match: match["match_score"], reverse=True)
        logger.debug("Sandbox matched {} donors for {}", len(matches), patient_id)
        return {
            "success": True,
            "matches": matches,
            "total_matches": len(matches),
            "policy_applied": policy is not None,
            "policy_title": policy.get("title") if policy else None,
        }

    def _request_view(self, request: Dict[str, Any]) -> Dict[str, Any]:
        patient = self.patients.get(request["patient_id"], {})
        donor = self.donors.get(request["donor_id"], {})
        return {
            **request,
            "patient_name": patient.get("full_name"),
            "donor_name": donor.get("full_name"),
            "organ_needed": patient.get("organ_needed"),
            "blood_type": patient.get("blood_type"),
            "urgency_level": patient.get("urgency_level"),
            "requesting_hospital_name": self.hospitals[request["requesting_hospital_id"]]["hospital_name"],
            "donor_hospital_name": self.hospitals[request["donor_hospital_id"]]["hospital_name"],
        }

    def send_request(self, hospital_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        patient = self.patients.get(str(body.get("patient_id")))
        if not patient or patient["hospital_id"] != hospital_id:
            raise SandboxError(404, "Patient not found")
        donor = self.donors.get(str(body.get("donor_id")))
        if not donor:
            raise SandboxError(404, "Donor not found")
        if patient.get("status") not in (None, "Waiting"):
            raise SandboxError(400, "Patient is not available for matching")
        for existing in self.requests.values():
            if (
                existing["patient_id"] == patient["patient_id"]
                and existing["donor_id"] == donor["donor_id"]
                and existing["status"] == "pending"
            ):
                raise SandboxError(400, "A pending request already exists for this donor")

        request_id = f"REQ-{next(self._request_seq):04d}"
        now = utcnow()
        request = {
            "request_id": request_id,
            "patient_id": patient["patient_id"],
            "donor_id": donor["donor_id"],
            "requesting_hospital_id": hospital_id,
            "donor_hospital_id": donor["hospital_id"],
            "status": "pending",
            "notes": body.get("notes") or "",
            "response_notes": None,
            "is_viewed": False,
            "created_at": now,
            "updated_at": now,
        }
        self.requests[request_id] = request
        patient["status"] = "In Progress"

        requester = self.hospitals[hospital_id]
        self.notify(
            donor["hospital_id"],
            type="match_request",
            title="New Organ Match Request",
            message=(
                f"{requester['hospital_name']} requests {patient['organ_needed']} "
                f"for patient {patient['full_name']}"
            ),
            related_id=request_id,
            patient_id=patient["patient_id"],
            requesting_hospital_name=requester["hospital_name"],
            metadata=json.dumps(
                {
                    "request_id": request_id,
                    "patient_name": patient["full_name"],
                    "organ_type": patient["organ_needed"],
                    "blood_type": patient["blood_type"],
                    "urgency_level": patient.get("urgency_level"),
                    "matches": [
                        score_candidate(patient, donor, requester, self.hospitals[donor["hospital_id"]])
                    ],
                }
            ),
        )
        return {"success": True, "message": "Match request sent successfully", "request_id": request_id}

    def respond(self, hospital_id: str, request_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        request = self.requests.get(request_id)
        if not request:
            raise SandboxError(404, "Match request not found")
        if request["donor_hospital_id"] != hospital_id:
            raise SandboxError(403, "Not authorised to respond to this request")
        if request["status"] != "pending":
            raise SandboxError(400, f"Request has already been {request['status']}")
        status = body.get("status")
        if status not in ("accepted", "rejected"):
            raise SandboxError(400, "Status must be accepted or rejected")

        request["status"] = status
        request["response_notes"] = body.get("response_notes")
        request["updated_at"] = utcnow()
        patient = self.patients[request["patient_id"]]
        donor = self.donors[request["donor_id"]]
        if status == "accepted":
            patient["status"] = "Matched"
            donor["status"] = "Matched"
        else:
            patient["status"] = "Waiting"

        responder = self.hospitals[hospital_id]
        self.notify(
            request["requesting_hospital_id"],
            type="match_response",
            title=f"Match Request {status.capitalize()}",
            message=f"{responder['hospital_name']} {status} the request for {patient['full_name']}",
            related_id=request_id,
            metadata={"request_id": request_id, "status": status},
        )
        return {"success": True, "message": f"Request {status}"}

    def outgoing(self, hospital_id: str) -> List[Dict[str, Any]]:
        return [
            self._request_view(request)
            for request in self.requests.values()
            if request["requesting_hospital_id"] == hospital_id
        ]

    def received(self, hospital_id: str) -> List[Dict[str, Any]]:
        return [
            self._request_view(request)
            for request in self.requests.values()
            if request["donor_hospital_id"] == hospital_id
        ]

    def incoming(self, hospital_id: str) -> List[Dict[str, Any]]:
        items = []
        for notification in self.hospital_notifications(hospital_id):
            if notification["type"] != "match_request":
                continue
            items.append({"id": notification["notification_id"], **notification})
        return items

    def mark_received_viewed(self, hospital_id: str) -> int:
        updated = 0
        for request in self.requests.values():
            if request["donor_hospital_id"] == hospital_id and not request["is_viewed"]:
                request["is_viewed"] = True
                updated += 1
        return updated


def seeded_store() -> SandboxStore:
    """Two hospitals in different cities, a handful of patients and donors."""
    store = SandboxStore()
    store.add_hospital("HOSP-001", "City General Hospital", "Mumbai", "Maharashtra")
    store.add_hospital("HOSP-002", "Lakeside Medical Centre", "Pune", "Maharashtra")
    store.add_hospital("HOSP-003", "Northern Care Institute", "Delhi", "Delhi")
    store.organizations["ORG-001"] = {
        "organization_id": "ORG-001",
        "organization_name": "National Transplant Network",
        "email": "policy@organlink.test",
    }
    store.admins["admin"] = {"admin_id": "admin", "name": "System Administrator", "email": "admin@organlink.test"}

    store.add_patient(
        "HOSP-001",
        patient_id="PAT-001",
        full_name="Asha Verma",
        age=46,
        gender="Female",
        blood_type="A+",
        organ_needed="Kidney",
        urgency_level="Critical",
    )
    store.add_patient(
        "HOSP-001",
        patient_id="PAT-002",
        full_name="Rohan Mehta",
        age=58,
        gender="Male",
        blood_type="O-",
        organ_needed="Liver",
        urgency_level="High",
    )
    store.add_patient(
        "HOSP-001",
        patient_id="PAT-003",
        full_name="Kiran Das",
        age=33,
        gender="Male",
        blood_type="B+",
        organ_needed="Heart",
        urgency_level="Medium",
        status="Matched",
    )
    store.add_donor(
        "HOSP-002",
        donor_id="DON-101",
        full_name="Vikram Singh",
        age=39,
        blood_type="O+",
        organs_to_donate=["Kidney", "Liver"],
        blockchain_hash="0x9f2c",
    )
    store.add_donor(
        "HOSP-002",
        donor_id="DON-102",
        full_name="Meera Iyer",
        age=61,
        blood_type="A+",
        organs_to_donate=["Kidney"],
        blockchain_hash="0x41ab",
    )
    store.add_donor(
        "HOSP-003",
        donor_id="DON-103",
        full_name="Sanjay Kapoor",
        age=44,
        blood_type="O-",
        organs_to_donate=["Kidney", "Liver", "Heart"],
        blockchain_hash="0x77de",
    )
    store.add_donor(
        "HOSP-001",
        donor_id="DON-104",
        full_name="Nisha Rao",
        age=29,
        blood_type="A-",
        organs_to_donate=["Kidney"],
    )
    store.policies.append(
        {
            "policy_id": "POL-001",
            "title": "Critical Kidney Priority",
            "organ_type": "Kidney",
            "status": "active",
            "weights": {"compatibility": 0.4, "distance": 0.15, "urgency": 0.35, "medical_risk": 0.1},
        }
    )
    store.policy_notifications["PN-001"] = {
        "notification_id": "PN-001",
        "title": "New Policy Proposal",
        "message": "Critical Kidney Priority is open for voting",
        "related_type": "policy_proposal",
        "related_id": "POL-001",
        "is_read": False,
        "created_at": utcnow(),
    }
    store.activities.extend(
        [
            {
                "type": "hospital_registered",
                "title": "Hospital Registered",
                "description": "Northern Care Institute joined the network",
                "timestamp": utcnow(),
            },
            {
                "type": "policy_created",
                "title": "Policy Created",
                "description": "Critical Kidney Priority proposed",
                "timestamp": utcnow(),
            },
        ]
    )
    return store
