from __future__ import annotations

from datetime import datetime
from typing import Set

from pydantic import Field

from .base import ApiModel


class Donor(ApiModel):
    donor_id: str
    full_name: str
    age: int | None = None
    blood_type: str
    organs_to_donate: Set[str] = Field(default_factory=set)
    signature_verified: bool = False
    blockchain_hash: str | None = None
    hospital_id: str | None = None
    status: str | None = None
    created_at: datetime | None = None

    @property
    def is_eligible(self) -> bool:
        """Only verified, still-available donors are offered to other hospitals."""
        return self.signature_verified and self.status == "Available"
