"""
Request-level errors for the notification endpoints.

Each error carries the HTTP status it maps to; main.py registers a single
handler that renders any NotifyError as ``{"error": message}``.

Per-channel delivery failures are NOT exceptions. They are returned as
ChannelResult objects by the delivery router and never reach this module.
"""


class NotifyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(NotifyError):
    """Client-caused: missing ids, no channel selected, missing recipient."""

    status_code = 400


class NotFoundError(NotifyError):
    """The invoice, appointment or public link does not exist for the shop."""

    status_code = 404


class LinkExpiredError(NotifyError):
    status_code = 410


class ConfigurationError(NotifyError):
    """Process-level configuration is missing (e.g. datastore credentials)."""

    status_code = 500


class PersistenceError(NotifyError):
    """A datastore read or write failed in a way that aborts the request."""

    status_code = 500
