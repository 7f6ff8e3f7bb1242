"""
Error taxonomy shared by the client core.

Route handlers keep raising ``HTTPException``; these exceptions describe
failures of the capabilities and the remote API as seen by a client flow.
"""


class EmsError(Exception):
    """Base class; ``message`` is what gets shown to the user."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class CameraPermissionError(EmsError):
    pass


class LocationPermissionError(EmsError):
    pass


class LocationTimeoutError(EmsError):
    pass


class LocationUnavailableError(EmsError):
    pass


class InvalidInputError(EmsError):
    pass


class ActionInProgressError(EmsError):
    pass


class ApiError(EmsError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
