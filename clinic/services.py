"""
Wiring of the store, identity provider, dispatcher and coordinators.
"""

from dataclasses import dataclass
from typing import Optional

from clinic.accounts import AccountDirectory
from clinic.history import HistoryReader
from clinic.identity import IdentityProvider
from clinic.mailer import ConfirmationDispatcher
from clinic.models import Session
from clinic.registry import PatientRegistry
from clinic.store import ClinicStore
from clinic.visits import VisitLifecycleCoordinator


@dataclass
class Services:
    store: ClinicStore
    identity: IdentityProvider
    dispatcher: ConfirmationDispatcher
    registry: PatientRegistry
    visits: VisitLifecycleCoordinator
    history: HistoryReader

    def directory(self, session: Optional[Session] = None) -> AccountDirectory:
        """A fresh account directory for one client context."""
        return AccountDirectory(self.identity, self.store, self.dispatcher, session=session)


def build_services(engine, transport, executor=None, **identity_kwargs) -> Services:
    store = ClinicStore(engine)
    identity = IdentityProvider(store, transport=transport, **identity_kwargs)
    return Services(
        store=store,
        identity=identity,
        dispatcher=ConfirmationDispatcher(transport, identity=identity, executor=executor),
        registry=PatientRegistry(store),
        visits=VisitLifecycleCoordinator(store),
        history=HistoryReader(store),
    )
