"""Domain errors raised by the store, moderation engine and auth layer."""


class ScamwatchError(Exception):
    """Base class. `kind` is the stable error name sent to clients."""

    kind = "error"
    status_code = 500

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(ScamwatchError):
    """A submission or vote is missing required fields. Raised before any write."""

    kind = "validation_error"
    status_code = 422


class NotFound(ScamwatchError):
    """The target report does not exist (or vanished before the action completed)."""

    kind = "not_found"
    status_code = 404

    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report {report_id} not found")
        self.report_id = report_id


class StoreUnavailable(ScamwatchError):
    """Network or backend failure on a store read/write/subscribe."""

    kind = "store_unavailable"
    status_code = 503


class AuthenticationFailed(ScamwatchError):
    kind = "authentication_failed"
    status_code = 401
