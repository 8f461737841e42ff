"""Domain errors raised by the core operations.

Routers let these propagate; ``dentcare.main`` renders every one of them as
``{"error": message}`` with the class' status code.
"""


class DentCareError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DentCareError):
    status_code = 400


class BusinessRuleError(DentCareError):
    status_code = 400


class NotFoundError(DentCareError):
    status_code = 404


class PermissionDeniedError(DentCareError):
    status_code = 403


class SlotUnavailableError(DentCareError):
    status_code = 409


class InvalidTransitionError(DentCareError):
    status_code = 400

    def __init__(self, current, new, role):
        super().__init__(
            f"Cannot change appointment status from {current.value} to {new.value} as {role.value.lower().replace('_', ' ')}"
        )
        self.current = current
        self.new = new
        self.role = role


class AIServiceError(DentCareError):
    status_code = 502
