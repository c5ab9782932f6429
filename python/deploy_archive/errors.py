"""
Error taxonomy for deployment archive assembly.

Every failure is fatal to the current run. The orchestrator aborts the writer,
removes partial output and re-raises one of these to the caller.
"""

from typing import Optional


class ArchiveError(Exception):
    """Base class for all archive pipeline errors."""


class ConfigurationError(ArchiveError):
    """Raised when settings or source specs are invalid."""


class SourceNotFound(ArchiveError):
    """Raised when a configured source root or file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Source not found: {path}")
        self.path = path


class ReadError(ArchiveError):
    """Raised when a source cannot be listed or read."""

    def __init__(self, path: str, reason: Optional[str] = None):
        message = f"Cannot read source: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


class DuplicateEntry(ArchiveError):
    """Raised when an archive path is submitted twice."""

    def __init__(self, archive_path: str):
        super().__init__(f"Duplicate archive entry: {archive_path}")
        self.archive_path = archive_path


class WriteError(ArchiveError):
    """Raised when the output stream cannot be created or written."""

    def __init__(self, path: str, reason: Optional[str] = None):
        message = f"Cannot write archive: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


class InvalidState(ArchiveError):
    """Raised when a writer operation is issued in the wrong state."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while writer is {state}")
        self.operation = operation
        self.state = state


class PathSecurityError(ArchiveError):
    """Raised when an archive path would escape the archive root."""
