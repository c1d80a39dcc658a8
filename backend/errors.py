"""Error taxonomy shared by the registration, join and payment services.

Services raise these; ``server.py`` turns them into JSON responses of the
form ``{"detail": ..., "retryable": ...}``.
"""

from typing import Optional

from fastapi import status


class RegistrationError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(RegistrationError):
    status_code = status.HTTP_404_NOT_FOUND


class ValidationFailure(RegistrationError):
    """Malformed input. Never retried."""


class StateConflict(RegistrationError):
    """Business rule violated by the current data (already registered, team full, ...)."""


class ConcurrencyConflict(RegistrationError):
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class SecurityFailure(RegistrationError):
    """Payment signature mismatch. Terminal for the attempt."""


class InfrastructureFailure(RegistrationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PaymentGatewayError(InfrastructureFailure):
    status_code = status.HTTP_502_BAD_GATEWAY
