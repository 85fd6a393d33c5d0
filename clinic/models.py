"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from clinic.errors import ValidationError


class Role(str, Enum):
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"

    @classmethod
    def parse(cls, value) -> "Role":
        """Accept a Role or its string value (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unsupported role '{value}'.") from None


class Verification(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


class PatientStatus(str, Enum):
    WAITING = "Waiting"
    IN_CONSULTATION = "In Consultation"
    COMPLETED = "Completed"


@dataclass(frozen=True)
class RoleConfig:
    """Presentation settings for one role's portal."""
    title: str
    icon: str
    description: str
    redirect_to: str


@dataclass
class Account:
    id: str
    email: str
    full_name: str
    role: Optional[Role]        # None when role assignment failed at sign-up
    verification: Verification
    created_at: datetime


@dataclass
class Session:
    """A signed-in client bound to a verified account."""
    access_token: str
    account_id: str
    email: str
    created_at: datetime
    expires_at: datetime
    last_activity: datetime = field(default_factory=datetime.utcnow)

    def expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at


@dataclass(frozen=True)
class Patient:
    id: int
    token: str
    name: str
    age: int
    gender: str
    contact: str
    symptoms: str
    charges: int
    status: PatientStatus
    created_at: datetime


@dataclass(frozen=True)
class Prescription:
    id: int
    patient_id: int
    author_id: str
    body: str
    created_at: datetime


@dataclass(frozen=True)
class HistoryEntry:
    id: int
    patient_id: int
    visit_date: date
    symptoms: str
    prescription: str
    charges: int
    created_at: datetime


@dataclass(frozen=True)
class VisitOutcome:
    """Everything written by a successful prescription recording."""
    patient: Patient
    prescription: Prescription
    history: HistoryEntry


@dataclass(frozen=True)
class PatientRecord:
    """A patient with its prescriptions and history, joined at read time."""
    patient: Patient
    prescriptions: List[Prescription]
    history: List[HistoryEntry]
