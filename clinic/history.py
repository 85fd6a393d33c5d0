"""
Read-side views of past visits and prescriptions.
"""

from typing import List

from clinic.errors import NotFound
from clinic.models import HistoryEntry, PatientRecord, Prescription


class HistoryReader:
    def __init__(self, store):
        self.store = store

    def visit_history(self, patient_id: int) -> List[HistoryEntry]:
        """All archived visits for the patient, most recent first."""
        return self.store.list_history(patient_id)

    def prescriptions(self, patient_id: int) -> List[Prescription]:
        """All prescriptions for the patient, most recent first."""
        return self.store.list_prescriptions(patient_id)

    def patient_record(self, patient_id: int) -> PatientRecord:
        patient = self.store.get_patient(patient_id)
        if patient is None:
            raise NotFound(f"Patient {patient_id} not found.")
        return PatientRecord(
            patient=patient,
            prescriptions=self.prescriptions(patient_id),
            history=self.visit_history(patient_id),
        )
