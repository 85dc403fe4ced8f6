"""
Translation Memory Engine Exceptions
"""

from typing import Any, Dict, Optional


class TMEngineError(Exception):
    """Base exception for the TM engine"""
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
        }


class ValidationError(TMEngineError):
    """Invalid input: empty or oversized text, out-of-range score, bad CSV value"""
    def __init__(self, field: str, reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"field": self.field, "reason": self.reason})
        return data


class ConflictError(TMEngineError):
    """Request conflicts with stored state (duplicate term, self-link, group size)"""
    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.details
        return data


class TransientStorageError(TMEngineError):
    """Storage temporarily unavailable (pool exhausted, locked, timed out)"""
    retryable = True

    def __init__(self, reason: str, attempts: int = 0):
        self.reason = reason
        self.attempts = attempts
        suffix = f" after {attempts} attempts" if attempts else ""
        super().__init__(f"Storage unavailable{suffix}: {reason}")


class OperationCancelledError(TMEngineError):
    """A long-running operation was abandoned before commit"""
    retryable = True

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation cancelled before commit: {operation}")


class NotFoundError(TMEngineError):
    """Unknown session, phrase group, alignment, chunk, unit or term id"""
    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "id": self.identifier})
        return data


def from_pydantic(exc: Exception) -> ValidationError:
    """Convert a pydantic ValidationError into an engine ValidationError."""
    errors = getattr(exc, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            first = details[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "input"
            return ValidationError(field, first.get("msg", str(exc)), first.get("input"))
    return ValidationError("input", str(exc))
