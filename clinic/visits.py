"""
Visit lifecycle: Waiting -> In Consultation -> Completed.

A patient is Completed exactly when a history entry has been archived for
its visit. The store commits each call on its own, so the prescription
sequence is issued step by step and any partial result is reported as
``PartialCompletion`` for reconciliation.
"""

import sys
from datetime import datetime
from typing import List

from clinic.errors import (
    InvalidTransition, NotFound, PartialCompletion, ValidationError,
)
from clinic.models import Patient, PatientStatus, VisitOutcome

TRANSITIONS = {
    PatientStatus.WAITING: {PatientStatus.IN_CONSULTATION},
    PatientStatus.IN_CONSULTATION: {PatientStatus.COMPLETED},
    PatientStatus.COMPLETED: set(),
}


def check_transition(patient: Patient, target: PatientStatus) -> None:
    if target not in TRANSITIONS[patient.status]:
        raise InvalidTransition(
            f"Patient {patient.token} is '{patient.status.value}'; "
            f"cannot move to '{target.value}'."
        )


class VisitLifecycleCoordinator:
    def __init__(self, store):
        self.store = store

    def _load(self, patient_id: int) -> Patient:
        patient = self.store.get_patient(patient_id)
        if patient is None:
            raise NotFound(f"Patient {patient_id} not found.")
        return patient

    def start_consultation(self, patient_id: int) -> Patient:
        """Move a Waiting patient into consultation once the write is acknowledged."""
        patient = self._load(patient_id)
        check_transition(patient, PatientStatus.IN_CONSULTATION)

        changed = self.store.update_status(
            patient_id, PatientStatus.IN_CONSULTATION, expected=PatientStatus.WAITING
        )
        if changed == 0:
            # Someone else moved the patient between our read and write.
            check_transition(self._load(patient_id), PatientStatus.IN_CONSULTATION)
        return self._load(patient_id)

    def record_prescription(self, patient_id: int, author_id: str, text: str) -> VisitOutcome:
        """
        Write prescription, then history snapshot, then Completed status.

        Each step is awaited before the next; the status write only happens
        after the history entry exists.
        """
        body = (text or "").strip()
        if not body:
            raise ValidationError("Prescription text is required.")
        if not author_id:
            raise ValidationError("Prescribing doctor is required.")

        patient = self._load(patient_id)
        check_transition(patient, PatientStatus.COMPLETED)
        now = datetime.utcnow()

        # 1) Prescription. Nothing is written if this fails.
        prescription = self.store.insert_prescription(patient_id, author_id, body, now)

        # 2) History snapshot of the patient as read above.
        try:
            history = self.store.insert_history(
                patient_id, now.date(), patient.symptoms, body, patient.charges, now
            )
        except Exception as e:
            print(
                f"[ERROR] Prescription {prescription.id} stored but history write "
                f"failed for patient {patient.token}: {e}",
                file=sys.stderr,
            )
            raise PartialCompletion(
                f"Prescription saved for {patient.token} but the visit was not archived.",
                patient_id=patient_id, stage="history", prescription_id=prescription.id,
            ) from e

        # 3) Completed.
        try:
            self.complete(patient_id)
        except Exception as e:
            print(
                f"[ERROR] Patient {patient.token} archived (history {history.id}) but "
                f"status is not Completed; reconcile required: {e}",
                file=sys.stderr,
            )
            raise PartialCompletion(
                f"Visit for {patient.token} archived but status update failed.",
                patient_id=patient_id, stage="status",
                prescription_id=prescription.id, history_id=history.id,
            ) from e

        return VisitOutcome(
            patient=self._load(patient_id), prescription=prescription, history=history
        )

    def complete(self, patient_id: int) -> None:
        """Set Completed; repeating it is a no-op."""
        self.store.update_status(patient_id, PatientStatus.COMPLETED)

    def reconcile(self, patient_id: int) -> Patient:
        """Complete a patient whose visit was archived but whose status lags."""
        patient = self._load(patient_id)
        if patient.status is PatientStatus.COMPLETED:
            return patient
        if self.store.count_history(patient_id) == 0:
            return patient
        print(f"[visits] Reconciling {patient.token}: history present, marking Completed")
        self.complete(patient_id)
        return self._load(patient_id)

    def find_inconsistencies(self) -> List[Patient]:
        """Patients whose status disagrees with the presence of a history entry."""
        return [
            patient
            for patient, has_history in self.store.patients_with_history_flag()
            if has_history != (patient.status is PatientStatus.COMPLETED)
        ]
