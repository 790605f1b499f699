"""Error kinds raised by the protocol core.

Each kind carries the HTTP status the API layer answers with, so routers
never have to translate them one by one.
"""


class ProtocolError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ProtocolError):
    """Request rejected before touching the store (e.g. no creator id)."""
    status_code = 400


class InvalidTransition(ValidationError):
    """Requested status is not reachable from the stored one."""


class NotFound(ProtocolError):
    """Id absent, or the write matched no rows because the caller had stale state."""
    status_code = 404


class TransientStoreError(ProtocolError):
    """Lock/busy condition. Retried inside the adapter, never surfaced."""
    status_code = 503


class StoreFailure(ProtocolError):
    """Retries exhausted or an unrecoverable driver error (constraint, schema)."""
    status_code = 500
