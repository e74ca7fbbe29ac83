"""Errors raised by the dinner domain.

Every error carries a stable `code` that callers can branch on. Codes are part
of the contract, messages are prose and may change.
"""


class DinnerError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, message={self.message!r})"
        )


class ConfigurationError(DinnerError):
    """Required configuration is missing. Fatal at startup."""

    code = "CONFIGURATION_ERROR"


class ProviderError(DinnerError):
    """The place provider failed or answered with a non-success status."""

    code = "PROVIDER_ERROR"
    http_status = 502

    def __init__(self, message: str, *, status: str | int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ConflictError(DinnerError):
    """A concurrent writer already holds the attendance being created."""

    code = "ALREADY_JOINED"
    http_status = 409


class NotFoundError(DinnerError):
    """The attendee vanished before it could be removed. Safe to treat as left."""

    code = "ATTENDEE_NOT_FOUND"
    http_status = 404


class ValidationError(DinnerError):
    code = "INVALID_FIELD"
    http_status = 400

    def __init__(self, fields: dict[str, list[str]]) -> None:
        field = next(iter(fields), None)
        message = fields[field][0] if field is not None else "Invalid input."
        super().__init__(message, field=field)
        self.fields = fields

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"]["fields"] = self.fields
        return payload
