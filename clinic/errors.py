"""
Domain errors raised by the slot and queue engines.

Each error carries a stable ``code`` and the HTTP status the API layer
should answer with; :func:`clinic.exceptions.api_exception_handler`
renders them into the unified error envelope.
"""


class ClinicError(Exception):
    """Base error for scheduling and queue failures."""

    code = "clinic_error"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class MalformedTimeInput(ClinicError):
    """A time or date string did not parse as HH:MM[:SS] / YYYY-MM-DD."""

    code = "malformed_time"
    status_code = 400


class InvalidTransition(ClinicError):
    """The requested queue status is not reachable from the current one."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"cannot move queue entry from {current} to {target}")


class CounterFailure(ClinicError):
    """The atomic queue-number counter failed; no number was assigned."""

    code = "counter_failure"
    status_code = 503


class SlotUnavailable(ClinicError):
    """The requested appointment window is not an open slot."""

    code = "slot_unavailable"
    status_code = 409
