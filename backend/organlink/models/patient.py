from __future__ import annotations

from .base import ApiModel


class Patient(ApiModel):
    patient_id: str
    full_name: str
    age: int | None = None
    gender: str | None = None
    blood_type: str
    organ_needed: str
    urgency_level: str = "Medium"
    status: str | None = None
    hospital_id: str | None = None

    @property
    def is_waiting(self) -> bool:
        return not self.status or self.status == "Waiting"
