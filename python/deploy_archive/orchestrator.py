"""
Pipeline Orchestrator - sequences enumeration, compression and writing.

This is the entry point of archive assembly. It walks every configured source
in order, submits each entry to the archive writer and only reports success
once the writer has finalized the archive. Any failure aborts the writer, which
removes the partial output before the error reaches the caller.
"""

import threading
import time
from typing import Callable, Iterable, Iterator, Optional, Sequence
from colored_logger import get_colored_logger

from .archive_verifier import ArchiveVerifier
from .archive_writers import ArchiveWriter, ArchiveWriterFactory
from .compression import DEFAULT_CHUNK_SIZE
from .errors import ArchiveError, ConfigurationError, DuplicateEntry
from .models import (
    ArchiveEntry,
    CompletionReport,
    DirectoryTreeSource,
    SingleFileSource,
    SourceSpec,
    SymlinkPolicy,
)
from .path_utils import TempFileManager, determine_extension, ensure_extension
from .reporter import CompletionReporter
from .source_enumerator import SourceEnumerator

logger = get_colored_logger(__name__)

ProgressCallback = Callable[[int, str], None]


class ProgressReporter:
    """Thread-safe progress reporting for entry submissions."""

    def __init__(self, interval: int = 500):
        self.interval = max(1, interval)
        self._lock = threading.Lock()

    def should_report_progress(self, count: int) -> bool:
        """Report the first entry of a source and every ``interval`` after it."""
        return count == 1 or count % self.interval == 0

    def report_progress_safely(
        self, progress_callback: Optional[ProgressCallback], count: int, label: str
    ) -> None:
        """Report progress with thread safety."""
        if progress_callback:
            with self._lock:
                progress_callback(count, label)


class PipelineOrchestrator:
    """
    Builds one archive from an ordered list of sources.

    The writer, enumerator and reporter are injected, so tests can drive the
    pipeline with in-memory fakes. Each orchestrator runs a single pipeline.
    """

    def __init__(
        self,
        writer: ArchiveWriter,
        enumerator: Optional[SourceEnumerator] = None,
        reporter: Optional[CompletionReporter] = None,
        progress_callback: Optional[ProgressCallback] = None,
        progress_interval: int = 500,
    ):
        self.writer = writer
        self.enumerator = enumerator or SourceEnumerator()
        self.reporter = reporter or CompletionReporter()
        self.progress_callback = progress_callback
        self.progress_reporter = ProgressReporter(progress_interval)
        self.entries_written = 0
        self.bytes_written = 0
        self._seen = set()

    def check_sources(self, sources: Sequence[SourceSpec]) -> None:
        """Fail fast on missing sources before any output is created."""
        for spec in sources:
            if isinstance(spec, DirectoryTreeSource):
                self.enumerator.check_root(spec.source_root)
            elif isinstance(spec, SingleFileSource):
                self.enumerator.check_file(spec.source_path)
            else:
                raise ConfigurationError(f"Unknown source spec: {spec!r}")

    def _resolve_entries(self, spec: SourceSpec) -> Iterable[ArchiveEntry]:
        if isinstance(spec, DirectoryTreeSource):
            return self.enumerator.enumerate(spec.source_root, spec.archive_prefix)
        return [self.enumerator.resolve_file(spec.source_path, spec.archive_path)]

    def _describe(self, spec: SourceSpec) -> str:
        if isinstance(spec, DirectoryTreeSource):
            return f"{spec.source_root} -> {spec.archive_prefix or '.'}/"
        return f"{spec.source_path} -> {spec.archive_path}"

    def _discard_previous_output(self, output_path: str) -> None:
        # The writer never opened, so an archive from an earlier run is still there
        try:
            TempFileManager.remove_existing_output(output_path)
        except OSError as e:
            logger.error("Could not remove previous archive %s: %s", output_path, e)

    def _submit(self, entry: ArchiveEntry) -> None:
        # The writer checks too; catching it here keeps the writer's state clean
        if entry.archive_path in self._seen:
            raise DuplicateEntry(entry.archive_path)

        record = self.writer.add_entry(entry)
        self._seen.add(entry.archive_path)
        self.entries_written += 1
        self.bytes_written += record.uncompressed_size
        logger.debug(
            "Added %s (%d bytes, %s compressed)",
            record.archive_path,
            record.uncompressed_size,
            record.compressed_size if record.compressed_size is not None else "-",
        )

    def _archive_source(self, spec: SourceSpec) -> int:
        label = self._describe(spec)
        logger.info("Adding %s", label)

        count = 0
        for entry in self._resolve_entries(spec):
            self._submit(entry)
            count += 1
            if self.progress_reporter.should_report_progress(count):
                self.progress_reporter.report_progress_safely(
                    self.progress_callback, count, label
                )
        return count

    def run(self, sources: Sequence[SourceSpec], output_path: str) -> CompletionReport:
        """
        Build the archive at ``output_path`` from ``sources`` in order.

        Returns:
            CompletionReport for the finalized archive

        Raises:
            ArchiveError: on the first failure; no file is left at output_path
        """
        sources = list(sources)
        try:
            self.check_sources(sources)
        except ArchiveError as e:
            logger.error("Archive build failed: %s", e)
            self._discard_previous_output(output_path)
            raise

        start_time = time.time()
        self.writer.open(output_path)

        try:
            for spec in sources:
                count = self._archive_source(spec)
                logger.debug("Archived %d entries from %s", count, self._describe(spec))

            final_path = self.writer.finalize()
        except ArchiveError as e:
            logger.error("Archive build failed: %s", e)
            self.writer.abort()
            raise
        except BaseException:
            self.writer.abort()
            raise

        logger.info(
            "Archived %d entries (%.2f MB uncompressed) in %.2f seconds",
            self.entries_written,
            self.bytes_written / (1024 * 1024),
            time.time() - start_time,
        )
        return self.reporter.report(final_path)


def _log_progress(count: int, label: str) -> None:
    logger.progress("Archiving %s: %d entries", label, count)


def build_deploy_archive(
    sources: Sequence[SourceSpec],
    output_path: str,
    archive_format: str = "zip",
    compression_level: Optional[int] = None,
    symlink_policy: SymlinkPolicy = SymlinkPolicy.FOLLOW,
    include_empty_dirs: bool = False,
    size_unit: str = "MB",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    verify: bool = True,
    show_progress: bool = True,
) -> CompletionReport:
    """
    Convenience function to build a deployment archive with default components.

    Args:
        sources: Ordered directory and file sources
        output_path: Archive path; the format's extension is appended if missing
        archive_format: 'zip' or 'zstd'
        compression_level: Compression level (None for the format default)
        symlink_policy: How symbolic links inside directory sources are handled
        include_empty_dirs: Record empty directories as directory entries
        size_unit: Unit used in the completion report
        chunk_size: Read size for streaming entry data
        verify: Check archive integrity after finalizing
        show_progress: Log progress while entries are added

    Returns:
        CompletionReport for the finished archive

    Raises:
        ArchiveError: If any source, write or verification step fails
    """
    requested_path = output_path
    output_path = ensure_extension(output_path, archive_format)
    if output_path != requested_path:
        logger.info(
            "Output path %s lacks the %s extension, writing %s instead",
            requested_path,
            determine_extension(archive_format),
            output_path,
        )

    writer = ArchiveWriterFactory.create_writer(
        archive_format, compression_level, chunk_size=chunk_size
    )
    orchestrator = PipelineOrchestrator(
        writer=writer,
        enumerator=SourceEnumerator(symlink_policy, include_empty_dirs),
        reporter=CompletionReporter(size_unit),
        progress_callback=_log_progress if show_progress else None,
    )

    logger.info("Creating %s archive: %s", archive_format.upper(), output_path)
    report = orchestrator.run(sources, output_path)

    if verify:
        ArchiveVerifier().ensure_valid(report.output_path, archive_format)
        logger.debug("Archive integrity verified")

    return report


def iter_archive_entries(
    sources: Sequence[SourceSpec], enumerator: Optional[SourceEnumerator] = None
) -> Iterator[ArchiveEntry]:
    """Yield the entries a build would write, in order, without writing them."""
    enumerator = enumerator or SourceEnumerator()
    for spec in sources:
        if isinstance(spec, DirectoryTreeSource):
            yield from enumerator.enumerate(spec.source_root, spec.archive_prefix)
        else:
            yield enumerator.resolve_file(spec.source_path, spec.archive_path)
