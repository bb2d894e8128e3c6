"""Error taxonomy for the audit trail and backup policy core."""


class ChronicleError(Exception):
    """Base exception for the audit/backup core."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class LogWriteFailure(ChronicleError):
    """Raised when an audit record could not be durably appended."""
    pass


class PolicyUpdateConflict(ChronicleError):
    """Raised when the singleton policy kept changing underneath an update."""
    pass


class InvalidPolicyValue(ChronicleError):
    """Raised when a settings update carries a value that must not be persisted."""

    def __init__(self, message: str = "Invalid policy value", field: str = None):
        self.field = field
        super().__init__(message)
