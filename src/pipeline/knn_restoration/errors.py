"""Exception types raised by the deletion, restoration and evaluation engines."""


class ValidationError(ValueError):
    """Malformed request parameters. Raised before any state is changed."""
    pass


class DataQualityError(ValueError):
    """Records are not clean enough for the requested operation.

    The individual problems are kept in ``issues`` so callers can report them.
    """

    def __init__(self, message, issues=None):
        super().__init__(message)
        self.issues = list(issues or [])


class PerRecordFailure(Exception):
    """A single record could not be restored. Never aborts a batch."""

    def __init__(self, record_id, reason):
        super().__init__(f"Record {record_id} could not be restored: {reason}")
        self.record_id = record_id
        self.reason = reason
