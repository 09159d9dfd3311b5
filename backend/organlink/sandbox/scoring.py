"""Deterministic stand-in for the server-side matcher.

Only good enough to produce plausible, stable scores for local runs and
tests; real scoring lives in the OrganLink API.
"""

from __future__ import annotations

import re
from typing import Any, Dict

COMPATIBILITY = {
    "O-": ["O-"],
    "O+": ["O-", "O+"],
    "A-": ["O-", "A-"],
    "A+": ["O-", "O+", "A-", "A+"],
    "B-": ["O-", "B-"],
    "B+": ["O-", "O+", "B-", "B+"],
    "AB-": ["O-", "A-", "B-", "AB-"],
    "AB+": ["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"],
}

URGENCY_BONUS = {"critical": 20.0, "high": 15.0, "medium": 10.0, "low": 5.0}

DEFAULT_WEIGHTS = {
    "compatibility": 0.5,
    "distance": 0.2,
    "urgency": 0.2,
    "medical_risk": 0.1,
}


def canonical_blood(value: str | None) -> str | None:
    if not value:
        return None
    text = re.sub(r"\s+", "", str(value).upper())
    return text.replace("POS", "+").replace("NEG", "-").replace("+VE", "+").replace("-VE", "-")


def blood_compatible(recipient: str | None, donor: str | None) -> bool:
    recipient_group = canonical_blood(recipient)
    donor_group = canonical_blood(donor)
    if not recipient_group or not donor_group:
        return False
    return donor_group in COMPATIBILITY.get(recipient_group, [recipient_group])


def score_candidate(
    patient: Dict[str, Any],
    donor: Dict[str, Any],
    patient_hospital: Dict[str, Any],
    donor_hospital: Dict[str, Any],
    weights: Dict[str, float] | None = None,
) -> Dict[str, Any]:
    weights = {**DEFAULT_WEIGHTS, **(weights or {})}
    same_group = canonical_blood(patient.get("blood_type")) == canonical_blood(donor.get("blood_type"))
    compatibility = 100.0 if same_group else 85.0

    same_city = (patient_hospital.get("city") or "").lower() == (donor_hospital.get("city") or "").lower()
    same_state = (patient_hospital.get("state") or "").lower() == (donor_hospital.get("state") or "").lower()
    distance = 100.0 if same_city else 75.0 if same_state else 50.0

    urgency_bonus = URGENCY_BONUS.get(str(patient.get("urgency_level", "")).lower(), 5.0)

    donor_age = donor.get("age") or 40
    medical_risk = max(40.0, 100.0 - max(0, donor_age - 50) * 2.0)

    match_score = (
        compatibility * weights["compatibility"]
        + distance * weights["distance"]
        + urgency_bonus * 5 * weights["urgency"]
        + medical_risk * weights["medical_risk"]
    )
    return {
        "donor_id": donor["donor_id"],
        "donor_name": donor.get("full_name"),
        "blood_type": donor.get("blood_type"),
        "organs_available": sorted(donor.get("organs_to_donate", [])),
        "hospital_id": donor_hospital["hospital_id"],
        "hospital_name": donor_hospital.get("hospital_name"),
        "match_score": round(min(match_score, 100.0), 1),
        "compatibility_score": compatibility,
        "distance_score": distance,
        "urgency_bonus": urgency_bonus,
        "medical_risk_score": medical_risk,
        "explanation": (
            f"{'Identical' if same_group else 'Compatible'} blood group, "
            f"{'same city' if same_city else 'same state' if same_state else 'inter-state'} transfer"
        ),
    }
