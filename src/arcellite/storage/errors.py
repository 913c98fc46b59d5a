"""Error taxonomy for storage and external file operations.

Every error carries the HTTP status the API should answer with, so routers can
turn any of them into a response without knowing which operation failed.
"""

from typing import Any, Dict


class StorageError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class InvalidInputError(StorageError):
    status_code = 400


class NoPartitionError(InvalidInputError):
    pass


class UnsupportedOperationError(StorageError):
    status_code = 400


class AuthenticationError(StorageError):
    status_code = 401

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "requiresAuth": True}


class PasswordRequiredError(AuthenticationError):
    def __init__(self, message: str = "Password required"):
        super().__init__(message)


class IncorrectPasswordError(AuthenticationError):
    def __init__(self, message: str = "Incorrect password"):
        super().__init__(message)


class ForbiddenError(StorageError):
    status_code = 403


class PathNotAllowedError(ForbiddenError):
    def __init__(self, message: str = "Path not allowed"):
        super().__init__(message)


class NotFoundError(StorageError):
    status_code = 404


class DeviceBusyError(StorageError):
    status_code = 409


class PrivilegedCommandError(StorageError):
    """A privileged command ran but failed for a reason we do not recognise."""


class UpstreamUnavailableError(StorageError):
    """A system tool is missing or did not answer in time."""
