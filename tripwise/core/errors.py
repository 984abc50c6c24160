"""Error taxonomy shared by the pricing and ranking engine.

Each error carries the HTTP status the API layer maps it to.
"""


class TripwiseError(Exception):
    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class PreconditionViolation(TripwiseError):
    """Malformed input or config; the caller's fault."""
    status_code = 400


class NotFound(TripwiseError):
    status_code = 404


class InvalidState(TripwiseError):
    status_code = 409


class ConcurrentRunRejected(TripwiseError):
    status_code = 409

    def __init__(self, message: str = "Pricing update is already running"):
        super().__init__(message)


class StorageFailure(TripwiseError):
    status_code = 500
