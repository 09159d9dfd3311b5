from __future__ import annotations

from typing import Any, Dict

from ..models.matching import IncomingMatch, MatchCandidate, MatchRequest, RequestStatus
from ..models.patient import Patient
from ..utils.dates import format_ist

STATUS_ICONS = {
    RequestStatus.ACCEPTED: "✅",
    RequestStatus.REJECTED: "❌",
    RequestStatus.PENDING: "⏳",
    RequestStatus.COMPLETED: "🎉",
}


def score_band(score: float) -> str:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def urgency_band(urgency: str | None) -> str:
    level = (urgency or "").lower()
    return level if level in {"critical", "high", "medium"} else "low"


def percent(value: float | None, default: float | None = None) -> str:
    if value is None:
        value = default
    if value is None:
        return "-"
    return f"{value:g}%"


def status_label(status: str | None) -> str:
    state = RequestStatus.parse(status)
    icon = STATUS_ICONS.get(state, "📋") if state else "📋"
    return f"{icon} {status or 'Unknown'}"


def patient_document(patient: Patient) -> Dict[str, Any]:
    return {
        "patient_id": patient.patient_id,
        "name": patient.full_name,
        "age": patient.age,
        "blood_type": patient.blood_type,
        "organ_needed": patient.organ_needed,
        "urgency": patient.urgency_level,
        "urgency_band": urgency_band(patient.urgency_level),
    }


def candidate_document(candidate: MatchCandidate) -> Dict[str, Any]:
    return {
        "donor_id": candidate.donor_id,
        "donor_name": candidate.donor_name or "Donor",
        "hospital": candidate.hospital_name or candidate.hospital_id,
        "blood_type": candidate.blood_type,
        "organs": ", ".join(candidate.organs_available),
        "match": percent(candidate.match_score),
        "band": score_band(candidate.match_score),
        "compatibility": percent(candidate.compatibility_score),
        "distance": percent(candidate.distance_score),
        "urgency_bonus": percent(candidate.urgency_bonus),
        "medical_risk": percent(candidate.medical_risk_score, default=100),
        "explanation": candidate.explanation,
    }


def request_document(request: MatchRequest) -> Dict[str, Any]:
    return {
        "request_id": request.request_id,
        "patient": request.patient_name,
        "donor": request.donor_name or "Not specified",
        "from": request.requesting_hospital_name or "Unknown Hospital",
        "to": request.donor_hospital_name or "Unknown Hospital",
        "organ": request.organ_needed or "Not specified",
        "blood_type": request.blood_type or "Not specified",
        "urgency": request.urgency_level or "Unknown",
        "status": status_label(request.status),
        "sent": format_ist(request.created_at),
        "updated": format_ist(request.updated_at) if request.updated_at and request.updated_at != request.created_at else None,
        "notes": request.notes,
        "response_notes": request.response_notes,
    }


def incoming_document(item: IncomingMatch, donor_preview: int = 3) -> Dict[str, Any]:
    return {
        "request_id": item.request_id,
        "title": item.title or "Organ Match Found",
        "from": item.requesting_hospital_name or (item.metadata or {}).get("requesting_hospital_name"),
        "message": item.message,
        "organ": item.organ,
        "blood_type": item.blood,
        "urgency": item.urgency,
        "received": format_ist(item.created),
        "unread": not item.is_read,
        "donors": [candidate_document(candidate) for candidate in item.embedded_matches[:donor_preview]],
    }
