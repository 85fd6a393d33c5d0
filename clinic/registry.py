"""
Patient registry: receptionist-facing registration, charges and listing.
"""

from datetime import datetime
from typing import Any, Iterator, Mapping

from clinic.config import GENDERS, PATIENT_PAGE_SIZE
from clinic.errors import NotFound, ValidationError
from clinic.models import Patient


def _require_text(fields: Mapping[str, Any], key: str, label: str) -> str:
    value = str(fields.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


def _parse_int(value: Any, label: str) -> int:
    """Accept ints and digit strings (form input); reject bools and fractions."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a whole number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValidationError(f"{label} must be a whole number.")


class PatientListing:
    """Lazy, restartable iteration over patients in creation order."""

    def __init__(self, store, page_size: int = PATIENT_PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    def __iter__(self) -> Iterator[Patient]:
        after = None
        while True:
            page = self.store.page_patients(after, self.page_size)
            yield from page
            if len(page) < self.page_size:
                return
            last = page[-1]
            after = (last.created_at, last.id)


class PatientRegistry:
    def __init__(self, store, page_size: int = PATIENT_PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    def register(self, fields: Mapping[str, Any]) -> Patient:
        """Validate the intake form and store a Waiting patient with a new token."""
        name = _require_text(fields, "name", "Name")
        contact = _require_text(fields, "contact", "Contact")
        symptoms = _require_text(fields, "symptoms", "Symptoms")

        if fields.get("age") in (None, ""):
            raise ValidationError("Age is required.")
        age = _parse_int(fields["age"], "Age")
        if age <= 0:
            raise ValidationError("Age must be a positive number.")

        gender = str(fields.get("gender") or "").strip()
        if gender and gender not in GENDERS:
            raise ValidationError(f"Gender must be one of {', '.join(GENDERS)}.")

        patient = self.store.create_patient(
            name=name, age=age, gender=gender, contact=contact,
            symptoms=symptoms, created_at=datetime.utcnow(),
        )
        print(f"[registry] Token {patient.token} assigned to {patient.name}")
        return patient

    def set_charges(self, patient_id: int, amount: Any) -> Patient:
        amount = _parse_int(amount, "Charges")
        if amount < 0:
            raise ValidationError("Charges cannot be negative.")
        if self.store.update_charges(patient_id, amount) == 0:
            raise NotFound(f"Patient {patient_id} not found.")
        return self.get(patient_id)

    def get(self, patient_id: int) -> Patient:
        patient = self.store.get_patient(patient_id)
        if patient is None:
            raise NotFound(f"Patient {patient_id} not found.")
        return patient

    def list(self) -> PatientListing:
        return PatientListing(self.store, self.page_size)
