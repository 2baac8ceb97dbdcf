"""Custom exception hierarchy for the snapshot engine."""


class SnapshotError(Exception):
    """Base exception for all snapshot engine errors."""


# --- Configuration ---
class ConfigError(SnapshotError):
    """Invalid or missing configuration."""


# --- Data ---
class DataError(SnapshotError):
    """Input record ingestion or quality error."""


class InvalidRecordError(DataError):
    """A raw trade or daily-log record failed validation."""

    def __init__(self, kind: str, index: int, reason: str):
        self.kind = kind
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid {kind} record at index {index}: {reason}")


# --- Pipeline ---
class SnapshotCancelled(SnapshotError):
    """The cancellation token was triggered; the run stopped at a checkpoint.

    Not a failure.  Callers should stop silently and must not surface
    this to the end user as an error.
    """

    def __init__(self, step: str = ""):
        self.step = step
        super().__init__(f"Snapshot cancelled at [{step}]" if step else "Snapshot cancelled")
