from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import Field, ValidationError, field_validator

from .base import ApiModel
from .notification import Notification, parse_flag


class MatchCandidate(ApiModel):
    donor_id: str
    donor_name: str | None = None
    blood_type: str | None = None
    organs_available: List[str] = Field(default_factory=list)
    hospital_id: str | None = None
    hospital_name: str | None = None
    match_score: float = 0.0
    compatibility_score: float = 0.0
    distance_score: float = 0.0
    urgency_bonus: float = 0.0
    medical_risk_score: float | None = None
    explanation: str | None = None

    @field_validator("match_score", "compatibility_score", "distance_score", "urgency_bonus", mode="before")
    @classmethod
    def _null_score(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("organs_available", mode="before")
    @classmethod
    def _null_organs(cls, value: Any) -> Any:
        return [] if value is None else value


class MatchResults(ApiModel):
    success: bool = True
    matches: List[MatchCandidate] = Field(default_factory=list)
    total_matches: int = 0
    policy_applied: bool = False
    policy_title: str | None = None
    error: str | None = None

    @field_validator("matches", mode="before")
    @classmethod
    def _null_matches(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("total_matches", mode="before")
    @classmethod
    def _null_total(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("policy_applied", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return parse_flag(value)

    def ranked(self) -> List[MatchCandidate]:
        return sorted(self.matches, key=lambda candidate: candidate.match_score, reverse=True)

    def top(self, limit: int = 5) -> List[MatchCandidate]:
        return self.ranked()[:limit]

    def caption(self, limit: int = 5) -> str | None:
        if len(self.matches) <= limit:
            return None
        return f"Showing top {limit} of {len(self.matches)} matches"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Any) -> "RequestStatus | None":
        try:
            return cls(str(value).lower())
        except ValueError:
            return None

    def can_transition(self, target: "RequestStatus") -> bool:
        return target in TRANSITIONS[self]


TRANSITIONS: Dict[RequestStatus, frozenset] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.COMPLETED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.COMPLETED: frozenset(),
}


class MatchRequest(ApiModel):
    request_id: str
    patient_id: str | None = None
    donor_id: str | None = None
    status: str = RequestStatus.PENDING.value
    notes: str | None = None
    response_notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    patient_name: str | None = None
    donor_name: str | None = None
    requesting_hospital_id: str | None = None
    requesting_hospital_name: str | None = None
    donor_hospital_id: str | None = None
    donor_hospital_name: str | None = None
    organ_needed: str | None = None
    blood_type: str | None = None
    urgency_level: str | None = None
    is_viewed: bool | None = None

    @property
    def state(self) -> RequestStatus | None:
        return RequestStatus.parse(self.status)


class IncomingMatch(Notification):
    """An actionable match request delivered to the donor-holding hospital."""

    id: str | None = None
    patient_id: str | None = None
    organ_type: str | None = None
    blood_type: str | None = None
    urgency_level: str | None = None
    requesting_hospital_name: str | None = None

    @property
    def request_id(self) -> str | None:
        # Payload shapes vary between notification producers; first hit wins.
        meta = self.metadata or {}
        for candidate in (
            meta.get("request_id"),
            meta.get("requestId"),
            self.related_id,
            self.notification_id,
            self.id,
        ):
            if candidate:
                return str(candidate)
        return None

    @property
    def embedded_matches(self) -> List[MatchCandidate]:
        raw = (self.metadata or {}).get("matches")
        if not isinstance(raw, list):
            return []
        candidates = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                candidates.append(MatchCandidate.model_validate(entry))
            except ValidationError:
                continue
        return candidates

    def _meta(self, *keys: str) -> Any:
        meta = self.metadata or {}
        for key in keys:
            if meta.get(key):
                return meta[key]
        return None

    @property
    def organ(self) -> str:
        if self.organ_type:
            return self.organ_type
        found = self._meta("organ_type", "organType", "organ_needed")
        if found:
            return str(found)
        for candidate in self.embedded_matches[:1]:
            if candidate.organs_available:
                return candidate.organs_available[0]
        return "Not specified"

    @property
    def blood(self) -> str:
        return self.blood_type or self._meta("blood_type", "bloodType") or "Not specified"

    @property
    def urgency(self) -> str:
        return self.urgency_level or self._meta("urgency_level", "urgencyLevel", "urgency") or "Medium"

    @property
    def created(self) -> str | None:
        return self.created_at or self._meta("created_at", "createdAt")


class SendRequestPayload(ApiModel):
    patient_id: str
    donor_id: str
    donor_hospital_id: str | None = None
    notes: str = ""


class RespondPayload(ApiModel):
    status: RequestStatus
    response_notes: str = ""
