"""
Record-level reads and writes against the clinic store.

Each public method is a single transaction; nothing here spans the
multi-step visit sequences, which the coordinators issue one call at a time.
"""

from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, exists, func, insert, or_, select, update

from clinic.config import TOKEN_PREFIX, TOKEN_WIDTH
from clinic.database import (
    COUNTER_ROW_ID, accounts, patient_history, patients, prescriptions,
    store_call, token_counter, user_roles,
)
from clinic.models import (
    HistoryEntry, Patient, PatientStatus, Prescription, Role, Verification,
)


def format_token(number: int) -> str:
    return f"{TOKEN_PREFIX}{number:0{TOKEN_WIDTH}d}"


def _to_patient(row) -> Patient:
    return Patient(
        id=row["id"], token=row["token"], name=row["name"], age=row["age"],
        gender=row["gender"], contact=row["contact"], symptoms=row["symptoms"],
        charges=row["charges"], status=PatientStatus(row["status"]),
        created_at=row["created_at"],
    )


def _to_prescription(row) -> Prescription:
    return Prescription(
        id=row["id"], patient_id=row["patient_id"], author_id=row["author_id"],
        body=row["body"], created_at=row["created_at"],
    )


def _to_history(row) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"], patient_id=row["patient_id"], visit_date=row["visit_date"],
        symptoms=row["symptoms"], prescription=row["prescription"],
        charges=row["charges"], created_at=row["created_at"],
    )


class ClinicStore:
    def __init__(self, engine):
        self.engine = engine

    # ── Accounts ─────────────────────────────────────────────────────

    def insert_account(self, account_id: str, email: str, password_hash: str,
                       full_name: str, user_type: Optional[str],
                       created_at: datetime) -> None:
        with store_call("account insert"), self.engine.begin() as conn:
            conn.execute(insert(accounts).values(
                id=account_id, email=email, password_hash=password_hash,
                full_name=full_name, user_type=user_type,
                verification=Verification.PENDING.value, created_at=created_at,
            ))

    def find_account(self, email: str):
        """Return the raw account row (including the password hash) or None."""
        with store_call("account lookup"), self.engine.connect() as conn:
            return conn.execute(
                select(accounts).where(accounts.c.email == email)
            ).mappings().first()

    def get_account(self, account_id: str):
        with store_call("account lookup"), self.engine.connect() as conn:
            return conn.execute(
                select(accounts).where(accounts.c.id == account_id)
            ).mappings().first()

    def mark_verified(self, account_id: str, when: datetime) -> None:
        with store_call("account verification"), self.engine.begin() as conn:
            conn.execute(
                update(accounts)
                .where(accounts.c.id == account_id)
                .values(verification=Verification.VERIFIED.value, verified_at=when)
            )

    def get_role(self, account_id: str) -> Optional[Role]:
        with store_call("role lookup"), self.engine.connect() as conn:
            value = conn.execute(
                select(user_roles.c.role).where(user_roles.c.account_id == account_id)
            ).scalar()
        return Role(value) if value else None

    def insert_role_if_absent(self, account_id: str, role: Role) -> Optional[Role]:
        """Insert the role row unless one exists; return the pre-existing role."""
        with store_call("role assignment"), self.engine.begin() as conn:
            existing = conn.execute(
                select(user_roles.c.role).where(user_roles.c.account_id == account_id)
            ).scalar()
            if existing is None:
                conn.execute(insert(user_roles).values(account_id=account_id, role=role.value))
                return None
        return Role(existing)

    # ── Patients ─────────────────────────────────────────────────────

    def create_patient(self, name: str, age: int, gender: str, contact: str,
                       symptoms: str, created_at: datetime) -> Patient:
        """
        Insert a patient with the next token from the durable counter.

        The counter row is bumped before it is read, so the write lock is
        held from the first statement and concurrent registrations serialise.
        """
        with store_call("patient registration"), self.engine.begin() as conn:
            bumped = conn.execute(
                update(token_counter)
                .where(token_counter.c.id == COUNTER_ROW_ID)
                .values(value=token_counter.c.value + 1)
            )
            if bumped.rowcount == 0:
                conn.execute(insert(token_counter).values(id=COUNTER_ROW_ID, value=1))
            number = conn.execute(
                select(token_counter.c.value).where(token_counter.c.id == COUNTER_ROW_ID)
            ).scalar_one()
            result = conn.execute(insert(patients).values(
                token=format_token(number), name=name, age=age, gender=gender,
                contact=contact, symptoms=symptoms, charges=0,
                status=PatientStatus.WAITING.value, created_at=created_at,
            ))
            patient_id = result.inserted_primary_key[0]
            row = conn.execute(
                select(patients).where(patients.c.id == patient_id)
            ).mappings().one()
        return _to_patient(row)

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        with store_call("patient lookup"), self.engine.connect() as conn:
            row = conn.execute(
                select(patients).where(patients.c.id == patient_id)
            ).mappings().first()
        return _to_patient(row) if row else None

    def page_patients(self, after: Optional[Tuple[datetime, int]],
                      limit: int) -> List[Patient]:
        """Keyset page ordered by (created_at, id) ascending."""
        stmt = select(patients).order_by(patients.c.created_at, patients.c.id).limit(limit)
        if after is not None:
            created_at, last_id = after
            stmt = stmt.where(or_(
                patients.c.created_at > created_at,
                and_(patients.c.created_at == created_at, patients.c.id > last_id),
            ))
        with store_call("patient listing"), self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_patient(r) for r in rows]

    def update_status(self, patient_id: int, status: PatientStatus,
                      expected: Optional[PatientStatus] = None) -> int:
        """Set the status; with ``expected`` the write is conditional."""
        stmt = update(patients).where(patients.c.id == patient_id).values(status=status.value)
        if expected is not None:
            stmt = stmt.where(patients.c.status == expected.value)
        with store_call("status update"), self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def update_charges(self, patient_id: int, amount: int) -> int:
        with store_call("charges update"), self.engine.begin() as conn:
            return conn.execute(
                update(patients).where(patients.c.id == patient_id).values(charges=amount)
            ).rowcount

    def patients_with_history_flag(self) -> List[Tuple[Patient, bool]]:
        has_history = exists().where(patient_history.c.patient_id == patients.c.id)
        stmt = (
            select(patients, has_history.label("has_history"))
            .order_by(patients.c.created_at, patients.c.id)
        )
        with store_call("consistency scan"), self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [(_to_patient(r), bool(r["has_history"])) for r in rows]

    # ── Prescriptions / history ──────────────────────────────────────

    def insert_prescription(self, patient_id: int, author_id: str, body: str,
                            created_at: datetime) -> Prescription:
        with store_call("prescription insert"), self.engine.begin() as conn:
            result = conn.execute(insert(prescriptions).values(
                patient_id=patient_id, author_id=author_id, body=body,
                created_at=created_at,
            ))
            new_id = result.inserted_primary_key[0]
        return Prescription(id=new_id, patient_id=patient_id, author_id=author_id,
                            body=body, created_at=created_at)

    def insert_history(self, patient_id: int, visit_date: date, symptoms: str,
                       prescription: str, charges: int,
                       created_at: datetime) -> HistoryEntry:
        with store_call("history insert"), self.engine.begin() as conn:
            result = conn.execute(insert(patient_history).values(
                patient_id=patient_id, visit_date=visit_date, symptoms=symptoms,
                prescription=prescription, charges=charges, created_at=created_at,
            ))
            new_id = result.inserted_primary_key[0]
        return HistoryEntry(id=new_id, patient_id=patient_id, visit_date=visit_date,
                            symptoms=symptoms, prescription=prescription,
                            charges=charges, created_at=created_at)

    def list_prescriptions(self, patient_id: int) -> List[Prescription]:
        stmt = (
            select(prescriptions)
            .where(prescriptions.c.patient_id == patient_id)
            .order_by(prescriptions.c.created_at.desc(), prescriptions.c.id.desc())
        )
        with store_call("prescription listing"), self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_prescription(r) for r in rows]

    def list_history(self, patient_id: int) -> List[HistoryEntry]:
        stmt = (
            select(patient_history)
            .where(patient_history.c.patient_id == patient_id)
            .order_by(patient_history.c.created_at.desc(), patient_history.c.id.desc())
        )
        with store_call("history listing"), self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_history(r) for r in rows]

    def count_history(self, patient_id: int) -> int:
        with store_call("history count"), self.engine.connect() as conn:
            return conn.execute(
                select(func.count(patient_history.c.id))
                .where(patient_history.c.patient_id == patient_id)
            ).scalar_one()
