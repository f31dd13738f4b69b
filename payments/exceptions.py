"""
Error types for the registration and payment workflow.

Views map these onto HTTP status codes through `status_code`; engines
raise them so callers can tell a local validation problem (nothing was
sent anywhere) from a remote failure (nothing local was changed).
"""


class RegistrationError(Exception):
    """Base class for registration/payment workflow errors."""

    status_code = 400
    code = "registration_error"

    def __init__(self, message: str = "", *, detail=None):
        super().__init__(message or self.__class__.__doc__)
        self.detail = detail

    def as_response_data(self) -> dict:
        data = {"error": self.code, "detail": str(self)}
        if self.detail is not None:
            data["fields"] = self.detail
        return data


class SubmissionIncomplete(RegistrationError):
    """The registration is missing required input or has invalid input."""

    code = "submission_incomplete"


class EvidenceRejected(RegistrationError):
    """The payment proof is not an image or is too large."""

    code = "evidence_rejected"


class RecordStoreError(RegistrationError):
    """The registration store rejected or failed a write."""

    status_code = 502
    code = "record_store_error"


class StaleRegistration(RecordStoreError):
    """Somebody else changed this registration first."""

    status_code = 409
    code = "stale_registration"

    def __init__(self, message: str = "", *, current=None):
        super().__init__(message)
        self.current = current


class RegistrationNotFound(RecordStoreError):
    """No registration with that id."""

    status_code = 404
    code = "registration_not_found"


class EvidenceStoreError(RegistrationError):
    """The evidence store could not store or sign a payment proof."""

    status_code = 502
    code = "evidence_store_error"


class GatewayError(RegistrationError):
    """The payment gateway could not start or confirm a checkout."""

    status_code = 502
    code = "gateway_error"


class DecisionNotAllowed(RegistrationError):
    """The registration was already decided; reopen it first."""

    status_code = 409
    code = "decision_not_allowed"
