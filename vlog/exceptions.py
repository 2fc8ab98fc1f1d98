"""
Typed failures raised by the service layer.

Services never build HTTP responses; they raise one of these and the
handler registered in ``vlog.main`` renders ``{"detail": message}`` with
the class's ``status_code``.  Raising inside a request also aborts the
transaction, since ``get_db`` rolls back on any exception.
"""


class ServiceError(Exception):
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Invalid credentials"


class AuthorizationError(ServiceError):
    status_code = 403
    default_message = "Not allowed"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Already exists"
