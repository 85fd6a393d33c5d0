"""
Error taxonomy shared by the coordinators and the REST layer.
"""

from typing import Optional


class ClinicError(Exception):
    """Base class for every failure the clinic core reports."""


class ValidationError(ClinicError, ValueError):
    """Bad input; rejected before any write."""


class NotFound(ClinicError):
    pass


class AlreadyRegistered(ClinicError):
    """Sign-up refused because the email already has an account."""


class InvalidCredentials(ClinicError):
    pass


class NotVerified(ClinicError):
    pass


class Forbidden(ClinicError):
    """The signed-in role may not perform the operation."""


class InvalidTransition(ClinicError):
    """A patient status change that the visit state machine does not allow."""


class Unavailable(ClinicError):
    """Storage or identity provider unreachable, or the call timed out."""


class MailDeliveryError(ClinicError):
    pass


class PartialCompletion(ClinicError):
    """
    The prescription sequence stopped partway.

    ``stage`` names the step that failed (``"history"`` or ``"status"``);
    the ids record what was already written so an operator can reconcile.
    """

    def __init__(
        self,
        message: str,
        patient_id: int,
        stage: str,
        prescription_id: Optional[int] = None,
        history_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.patient_id = patient_id
        self.stage = stage
        self.prescription_id = prescription_id
        self.history_id = history_id
