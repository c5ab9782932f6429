"""
Value types shared by the archive pipeline components.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class EntryKind(Enum):
    """Kind of an archive entry."""

    FILE = "file"
    DIRECTORY = "directory"


class SymlinkPolicy(Enum):
    """How the enumerator treats symbolic links."""

    FOLLOW = "follow"
    SKIP = "skip"
    ERROR = "error"


class WriterState(Enum):
    """Archive writer lifecycle."""

    IDLE = "idle"
    OPEN = "open"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ArchiveEntry:
    """One logical file or directory recorded inside the archive."""

    archive_path: str
    source_path: str
    kind: EntryKind = EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True)
class DirectoryTreeSource:
    """Every regular file below ``source_root``, stored under ``archive_prefix``."""

    source_root: str
    archive_prefix: str = ""


@dataclass(frozen=True)
class SingleFileSource:
    """One standalone file stored at ``archive_path``."""

    source_path: str
    archive_path: str


SourceSpec = Union[DirectoryTreeSource, SingleFileSource]


@dataclass(frozen=True)
class EntryRecord:
    """Sizes reported by the writer after an entry has been written."""

    archive_path: str
    uncompressed_size: int
    compressed_size: Optional[int] = None


@dataclass(frozen=True)
class CompletionReport:
    """Final size of a finalized archive."""

    final_size_bytes: int
    formatted_size: str
    output_path: str
