from .errors import (
    ArchiveError,
    ConfigurationError,
    DuplicateEntry,
    InvalidState,
    PathSecurityError,
    ReadError,
    SourceNotFound,
    WriteError,
)
from .models import (
    ArchiveEntry,
    CompletionReport,
    DirectoryTreeSource,
    EntryKind,
    EntryRecord,
    SingleFileSource,
    SourceSpec,
    SymlinkPolicy,
    WriterState,
)

# Pipeline components
from .archive_security import normalize_archive_path, join_archive_path
from .source_enumerator import SourceEnumerator, EnumerationStats
from .compression import EntryCompressor, validate_level
from .archive_writers import (
    ArchiveWriter,
    BaseArchiveWriter,
    ZipArchiveWriter,
    ZstdTarArchiveWriter,
    ArchiveWriterFactory,
)
from .archive_verifier import ZipArchiveVerifier, ZstdArchiveVerifier, ArchiveVerifier
from .reporter import CompletionReporter, format_size
from .path_utils import TempFileManager, determine_extension, ensure_extension

# Orchestration
from .orchestrator import (
    PipelineOrchestrator,
    ProgressReporter,
    build_deploy_archive,
    iter_archive_entries,
)

__all__ = [
    # Errors
    "ArchiveError",
    "ConfigurationError",
    "DuplicateEntry",
    "InvalidState",
    "PathSecurityError",
    "ReadError",
    "SourceNotFound",
    "WriteError",
    # Data model
    "ArchiveEntry",
    "CompletionReport",
    "DirectoryTreeSource",
    "EntryKind",
    "EntryRecord",
    "SingleFileSource",
    "SourceSpec",
    "SymlinkPolicy",
    "WriterState",
    # Enumeration and paths
    "normalize_archive_path",
    "join_archive_path",
    "SourceEnumerator",
    "EnumerationStats",
    # Compression and writing
    "EntryCompressor",
    "validate_level",
    "ArchiveWriter",
    "BaseArchiveWriter",
    "ZipArchiveWriter",
    "ZstdTarArchiveWriter",
    "ArchiveWriterFactory",
    # Verification and reporting
    "ZipArchiveVerifier",
    "ZstdArchiveVerifier",
    "ArchiveVerifier",
    "CompletionReporter",
    "format_size",
    # Path utilities
    "TempFileManager",
    "determine_extension",
    "ensure_extension",
    # Orchestration
    "PipelineOrchestrator",
    "ProgressReporter",
    "build_deploy_archive",
    "iter_archive_entries",
]
