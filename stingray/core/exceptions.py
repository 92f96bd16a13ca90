"""
Error taxonomy for the metadata engine.

Services raise these; the API layer maps them onto HTTP responses in
``stingray.main``. Messages may reach the client only for validation errors,
everything else is answered with a generic body and logged server side.
"""


class StingrayError(Exception):
    """Base class for all application errors."""


class NotFoundError(StingrayError):
    """A table, field, row or page does not exist."""

    def __init__(self, kind: str, key: object):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class AccessDeniedError(StingrayError):
    """The permission evaluator denied the requested operation."""

    def __init__(self, operation: str, resource: str):
        self.operation = operation
        self.resource = resource
        super().__init__(f"{operation} access denied on {resource}")


class SchemaConflictError(StingrayError):
    """Storage rejected a DDL statement issued by the schema synchronizer."""

    def __init__(self, statement: str, reason: str):
        self.statement = statement
        self.reason = reason
        super().__init__(f"{reason} (statement: {statement})")


class ValidationError(StingrayError):
    """Input failed validation (bad identifier, type, payload or group set)."""


class InvalidGroupSetError(ValidationError):
    """A serialized read/write group set could not be parsed."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        super().__init__(f"Malformed group set {raw!r}: {reason}")


class StorageError(StingrayError):
    """Any other storage failure."""
