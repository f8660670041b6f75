"""Exception hierarchy."""


class FootprintError(Exception):
    """Base class for all footprint errors."""


class ConfigError(FootprintError):
    """The configuration file is unreadable or malformed."""


class PreconditionError(FootprintError):
    """A run cannot start (no Pre baseline, nothing to scan)."""


class SnapshotCorruptError(FootprintError):
    """A structured artifact cannot be parsed back into records."""

    def __init__(self, path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class OrchestratorBusyError(FootprintError):
    """A run was requested while another one is still in progress."""
