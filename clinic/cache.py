"""
Client-side patient cache.

The only place a client keeps patient state. It changes at two points:
``refresh()`` (on mount and after writes) and ``apply()`` with a record a
write has just returned. Nothing is flipped before the store acknowledges.
"""

from collections import Counter
from typing import Dict, List, Optional

from clinic.models import Patient, PatientStatus


class PatientCache:
    def __init__(self, registry):
        self.registry = registry
        self._patients: Dict[int, Patient] = {}
        self.loaded = False

    def refresh(self) -> List[Patient]:
        self._patients = {p.id: p for p in self.registry.list()}
        self.loaded = True
        return self.patients

    def apply(self, patient: Patient) -> Patient:
        self._patients[patient.id] = patient
        return patient

    @property
    def patients(self) -> List[Patient]:
        return sorted(self._patients.values(), key=lambda p: (p.created_at, p.id))

    def get(self, patient_id: int) -> Optional[Patient]:
        return self._patients.get(patient_id)

    def find_token(self, token: str) -> Optional[Patient]:
        token = token.strip().upper()
        for patient in self._patients.values():
            if patient.token == token:
                return patient
        return None

    # ── Dashboard counters ───────────────────────────────────────────

    def count_by_status(self) -> Dict[str, int]:
        counts = Counter(p.status for p in self._patients.values())
        return {status.value: counts.get(status, 0) for status in PatientStatus}

    @property
    def waiting_count(self) -> int:
        return self.count_by_status()[PatientStatus.WAITING.value]

    @property
    def total_charges(self) -> int:
        return sum(p.charges for p in self._patients.values())
