# ledger/errors.py
# Role: Error taxonomy shared by services and routes.
#       Services raise these; main.py maps them onto HTTP responses.

from typing import Optional


class LedgerError(Exception):
    """Base class for recoverable, user-facing errors."""

    tag = "LedgerError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.tag, "message": self.message}


class ValidationError(LedgerError):
    """Malformed or absent input (file, payload, parameter)."""

    tag = "ValidationError"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(LedgerError):
    """Referenced transaction / category / merchant mapping does not exist."""

    tag = "NotFoundError"
    status_code = 404

    def __init__(self, entity: str, id: str, message: Optional[str] = None):
        label = entity.replace("_", " ").capitalize()
        super().__init__(message or f"{label} not found")
        self.entity = entity
        self.id = id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"entity": self.entity, "id": self.id})
        return data


class UnauthenticatedError(LedgerError):
    """No valid session; raised at the boundary before any mutation."""

    tag = "UnauthenticatedError"
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ConstraintError(LedgerError):
    """A domain rule forbids the requested change (e.g. deleting a used category)."""

    tag = "ConstraintError"
    status_code = 409

    def __init__(self, message: str, constraint: str):
        super().__init__(message)
        self.constraint = constraint

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["constraint"] = self.constraint
        return data
