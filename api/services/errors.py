"""Business errors raised by the service layer.

Every error is terminal for the request (no retries). main.py maps them to
HTTP responses using ``status_code``; the message is returned as ``detail``.
"""


class DomainError(Exception):
    """Base class for user-facing business errors."""

    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """A referenced step/service/category/image does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class ForbiddenError(DomainError):
    """The acting user may not mutate this step."""

    status_code = 403


class InvalidTransitionError(DomainError):
    """A status precondition failed."""

    status_code = 409

    def __init__(self, message: str, *, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class ValidationError(DomainError):
    """Missing or inconsistent input (e.g. cancel without a reason)."""

    status_code = 400


class ConflictError(DomainError):
    """The operation would break a dependent record (e.g. category in use)."""

    status_code = 409
