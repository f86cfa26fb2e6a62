"""Exception types raised by :mod:`splitsync`."""


class SplitSyncError(Exception):
    """Base exception for extraction errors."""


class ConfigurationError(SplitSyncError, ValueError):
    """A required setting is missing or points at something that does not exist."""


class ResolutionError(SplitSyncError, LookupError):
    """A repository root, branch or module set could not be determined."""


class CommandError(SplitSyncError, RuntimeError):
    """An external command exited non-zero and the failure was not benign."""

    def __init__(self, result):
        self.result = result
        lines = result.output.strip().splitlines()
        message = f"{' '.join(result.argv)} exited with {result.returncode}"
        if lines:
            message += f": {lines[-1]}"
        super().__init__(message)


__all__ = [
    "SplitSyncError",
    "ConfigurationError",
    "ResolutionError",
    "CommandError",
]
