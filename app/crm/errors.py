from __future__ import annotations


class CRMError(Exception):
    """Base for errors that map onto a JSON error response."""

    status_code = 500

    def __init__(self, message: str, *, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(CRMError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InvalidCredentials(CRMError):
    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class TooManyAttempts(CRMError):
    status_code = 429

    def __init__(self, message: str = "Too many login attempts. Please try again later."):
        super().__init__(message)


class ValidationError(CRMError):
    status_code = 400

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationError":
        return cls(" ".join(errors), details=errors)


class ForeignKeyError(CRMError):
    status_code = 400


class ConflictError(CRMError):
    status_code = 409


class NotFound(CRMError):
    status_code = 404

    def __init__(self, entity: str):
        super().__init__(f"{entity} not found")
        self.entity = entity


class CurrentPasswordIncorrect(CRMError):
    status_code = 400

    def __init__(self, message: str = "Current password is incorrect"):
        super().__init__(message)
