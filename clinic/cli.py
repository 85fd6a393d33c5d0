"""
Interactive console for the clinic: sign in as a doctor or receptionist and
work the patient queue.
"""

import getpass

from clinic.cache import PatientCache
from clinic.config import HOME_ROUTE, ROLE_CONFIG
from clinic.database import init_engine, init_schema
from clinic.errors import AlreadyRegistered, ClinicError, NotVerified, PartialCompletion
from clinic.mailer import init_transport
from clinic.models import Role
from clinic.services import build_services

RECEPTIONIST_HELP = "Commands: list | add | charge <token> <amount> | logout | quit"
DOCTOR_HELP = (
    "Commands: list | start <token> | prescribe <token> | history <token> | "
    "reconcile <token> | logout | quit"
)


def _ask(prompt: str) -> str:
    return input(prompt).strip()


def print_patients(cache: PatientCache) -> None:
    if not cache.patients:
        print("(no patients registered)")
        return
    for p in cache.patients:
        print(f"  {p.token:<6} {p.name:<24} {p.age:>3}y {p.gender:<7} "
              f"{p.status.value:<16} ${p.charges}")
    counts = cache.count_by_status()
    print("  " + " | ".join(f"{k}: {v}" for k, v in counts.items())
          + f" | Total charges: ${cache.total_charges}")


def _lookup(cache: PatientCache, args):
    if not args:
        print("A token is required, e.g. T001")
        return None
    patient = cache.find_token(args[0])
    if patient is None:
        print(f"No patient with token {args[0]}")
    return patient


def receptionist_command(services, cache, command, args) -> None:
    if command == "add":
        fields = {
            "name": _ask("Full name: "),
            "age": _ask("Age: "),
            "gender": _ask("Gender (Male/Female/Other): "),
            "contact": _ask("Contact number: "),
            "symptoms": _ask("Symptoms: "),
        }
        patient = services.registry.register(fields)
        print(f"Token {patient.token} assigned to {patient.name}")
    elif command == "charge":
        patient = _lookup(cache, args)
        if patient is None:
            return
        amount = args[1] if len(args) > 1 else _ask("Consultation charges: ")
        patient = services.registry.set_charges(patient.id, amount)
        print(f"Consultation charges of ${patient.charges} assigned to {patient.token}")
    else:
        print(RECEPTIONIST_HELP)
        return
    cache.refresh()


def doctor_command(services, cache, session, command, args) -> None:
    if command not in {"start", "prescribe", "history", "reconcile"}:
        print(DOCTOR_HELP)
        return
    patient = _lookup(cache, args)
    if patient is None:
        return

    if command == "start":
        patient = services.visits.start_consultation(patient.id)
        print(f"{patient.token} is now {patient.status.value}")
    elif command == "prescribe":
        text = _ask("Prescription: ")
        try:
            outcome = services.visits.record_prescription(patient.id, session.account_id, text)
        except PartialCompletion as e:
            print(f"[ERROR] {e} Run 'reconcile {patient.token}' once the store is reachable.")
            cache.refresh()
            return
        print(f"Prescription added for {outcome.patient.name}; visit {outcome.patient.status.value}")
    elif command == "history":
        record = services.history.patient_record(patient.id)
        print("Prescriptions:" if record.prescriptions else "No prescriptions yet.")
        for rx in record.prescriptions:
            print(f"  {rx.created_at:%Y-%m-%d}  {rx.body}")
        print("History:" if record.history else "No previous visits.")
        for h in record.history:
            print(f"  {h.visit_date}  {h.symptoms} -> {h.prescription} (${h.charges})")
        return
    elif command == "reconcile":
        patient = services.visits.reconcile(patient.id)
        print(f"{patient.token} is {patient.status.value}")
    cache.refresh()


def _routed_session(directory, routes):
    """The session a dashboard route was issued for, if any."""
    if not routes or routes[-1] == HOME_ROUTE:
        return None
    session = directory.current_session()
    if session is None:
        return None
    print(f"[auth] Routing to {routes[-1]}")
    return session, directory.role_of(session.account_id)


def login(directory, routes):
    """
    Sign in or sign up; returns (session, role) or None to quit.

    *routes* is fed by ``directory.watch``: a session opened by a
    confirmation link ends the loop just like a password sign-in.
    """
    while True:
        result = _routed_session(directory, routes)
        if result is not None:
            return result
        try:
            choice = _ask("\nType 'login', 'signup', 'resend', 'confirm' (or 'quit'): ").lower()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            return None

        if choice in {"quit", "exit", ""}:
            print("Goodbye.")
            return None

        try:
            if choice == "login":
                email = _ask("Email: ")
                return directory.sign_in(email, getpass.getpass("Password: "))
            if choice == "signup":
                email = _ask("Email: ")
                password = getpass.getpass("Password: ")
                name = _ask("Full name: ")
                role = _ask("Role (doctor/receptionist): ")
                directory.sign_up(email, password, name, role)
                print("Account created. Check your email for the verification link.")
            elif choice == "resend":
                directory.resend_confirmation(_ask("Email: "), _ask("Role (doctor/receptionist): "))
                print("Confirmation email re-sent.")
            elif choice == "confirm":
                link = _ask("Verification link or token: ")
                directory.identity.confirm(link.rsplit("token=", 1)[-1])
                print("Email confirmed.")
        except AlreadyRegistered as e:
            print(f"\n[auth] {e} Sign in, or use 'resend' for a new confirmation email.")
        except NotVerified as e:
            print(f"\n[auth] {e} Use 'resend' if the link expired.")
        except ClinicError as e:
            print("\n[ERROR]", e)


def main():
    print("=== Clinic Visit Portal: Console ===\n")

    engine = init_engine()
    init_schema(engine)
    services = build_services(engine, init_transport())
    directory = services.directory()
    routes = []
    unsubscribe = directory.watch(routes.append)

    try:
        result = login(directory, routes)
        if result is None:
            return
        session, role = result
        if role is None:
            print("[ERROR] Your account has no role assigned. Contact the clinic administrator.")
            return

        print(f"\n[auth] Signed in as {session.email} ({ROLE_CONFIG[role].title})")
        cache = PatientCache(services.registry)
        cache.refresh()
        print(DOCTOR_HELP if role is Role.DOCTOR else RECEPTIONIST_HELP)

        # ── REPL ─────────────────────────────────────────────────────
        while True:
            try:
                line = _ask(f"\n{role.value}> ")
            except (EOFError, KeyboardInterrupt):
                print("\nExiting.")
                break
            if not line:
                continue
            command, *args = line.split()
            command = command.lower()
            if command in {"quit", "exit"}:
                print("Goodbye.")
                break
            if command == "logout":
                directory.sign_out()
                print("Logged out.")
                break
            if command == "list":
                print_patients(cache)
                continue
            try:
                if role is Role.DOCTOR:
                    doctor_command(services, cache, session, command, args)
                else:
                    receptionist_command(services, cache, command, args)
            except ClinicError as e:
                print("\n[ERROR]", e)
    finally:
        unsubscribe()
        services.dispatcher.executor.shutdown(wait=True)


if __name__ == "__main__":
    main()
