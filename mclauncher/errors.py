"""
Exceptions raised by the launcher core.

Every stage raises a subclass of LauncherError so callers can tell a missing
version apart from a broken download or a process that refused to start.
"""

from typing import List, Optional


class LauncherError(Exception):
    """Base exception for all launcher errors."""


class VersionNotFoundError(LauncherError):
    """Raised when a version id is not listed in the remote manifest."""

    def __init__(self, version_id: str):
        super().__init__(f"Version not found: {version_id}")
        self.version_id = version_id


class NetworkError(LauncherError):
    """Raised when a single HTTP request fails at the transport or status level."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ValidationError(LauncherError):
    """Raised when downloaded content does not hash to the expected value."""


class FilesystemError(LauncherError):
    """Raised when creating, writing, renaming or reading a file fails."""


class NativeExtractionError(FilesystemError):
    """Raised when a native archive cannot be unpacked."""


class ParseError(LauncherError):
    """Raised for malformed manifest, descriptor or asset index documents."""


class LaunchError(LauncherError):
    """Raised when the game process cannot be spawned."""


class NoProcessError(LaunchError):
    """Raised when a handle has no tracked process left to kill or wait for."""


class ProcessWaitError(LauncherError):
    """Raised when the exit of the game process could not be observed."""


class ConfigurationError(LauncherError):
    """Raised for unreadable or invalid launcher configuration files."""


class JavaNotFoundError(LauncherError):
    """Raised when no Java runtime of the requested major version is available."""


class FetchAggregateError(LauncherError):
    """
    Raised by Fetcher.fetch_all once every task has settled and at least one
    of them failed.
    """

    def __init__(self, failures: List[BaseException]):
        self.failures = list(failures)
        super().__init__(f"{self.count} downloads failed. First error: {self.first}")

    @property
    def count(self) -> int:
        return len(self.failures)

    @property
    def first(self) -> Optional[BaseException]:
        return self.failures[0] if self.failures else None
