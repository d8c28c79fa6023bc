"""
Errors raised by sybilhunter.

Three tiers:
    recoverable   logged by the caller, item skipped (ParseError)
    fatal-start   raised before any file is read (ConfigError)
    fatal-run     abort the whole run (NoDataError, UnsupportedSnapshotError,
                  ChannelClosedError)

main() turns any SybilhunterError into a diagnostic and exit status 1.
"""


class SybilhunterError(Exception):
    """Base class for all sybilhunter errors."""


class ConfigError(SybilhunterError):
    """Raised when command line or config file parameters are unusable."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        message = "Invalid configuration:\n" + "\n".join(
            f"  ERROR: {e}" for e in self.errors
        )
        super().__init__(message)


class ParseError(SybilhunterError):
    """Raised when a document cannot be turned into a snapshot."""


class NoDataError(SybilhunterError):
    """Raised when an analysis ends up with nothing to analyse."""


class UnsupportedSnapshotError(SybilhunterError):
    """Raised when an engine receives a snapshot kind it cannot process."""


class ChannelClosedError(SybilhunterError):
    """Raised when sending to a channel that is closed or has no consumer."""
