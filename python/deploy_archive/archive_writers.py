"""
Archive writer implementations for different output formats.

Writers own the output stream for one archive. They accept entries strictly in
submission order, reject duplicate archive paths and only produce a file at the
output path once finalize() has written the trailer and synced it to disk.
"""

import os
import tarfile
import threading
import time
import zipfile
from typing import BinaryIO, List, Optional, Protocol

import zstandard as zstd
from colored_logger import get_colored_logger

from .archive_security import ensure_output_location, normalize_archive_path
from .compression import DEFAULT_CHUNK_SIZE, EntryCompressor, validate_level
from .errors import (
    ArchiveError,
    DuplicateEntry,
    InvalidState,
    ReadError,
    WriteError,
)
from .models import ArchiveEntry, EntryRecord, WriterState
from .path_utils import TempFileManager

logger = get_colored_logger(__name__)

ZSTD_MAX_LEVEL = 22


class ArchiveWriter(Protocol):
    """Protocol defining interface for archive writers."""

    state: WriterState

    def open(self, output_path: str) -> None:
        ...

    def add_entry(
        self, entry: ArchiveEntry, source: Optional[BinaryIO] = None
    ) -> EntryRecord:
        ...

    def finalize(self) -> str:
        ...

    def abort(self) -> None:
        ...


class BaseArchiveWriter:
    """
    Shared state machine for archive writers.

    IDLE -> OPEN -> FINALIZING -> FINALIZED, or ABORTED on any error. All
    operations take the same lock, so concurrent add_entry calls are queued
    and finalize waits for every entry submitted before it.
    """

    format_name = ""

    def __init__(self):
        self.state = WriterState.IDLE
        self.output_path: Optional[str] = None
        self.entry_count = 0
        self.bytes_in = 0
        self._lock = threading.RLock()
        self._written = set()
        self._order: List[str] = []
        self._temp_path: Optional[str] = None
        self._fileobj: Optional[BinaryIO] = None

    @property
    def entry_names(self) -> List[str]:
        """Archive paths in the order they were written."""
        return list(self._order)

    def _require_state(self, operation: str, *allowed: WriterState) -> None:
        if self.state not in allowed:
            raise InvalidState(operation, self.state.value)

    def open(self, output_path: str) -> None:
        """Create the partial output file, drop any previous archive and start writing."""
        with self._lock:
            self._require_state("open", WriterState.IDLE)

            try:
                path = ensure_output_location(output_path)
            except WriteError:
                self.state = WriterState.ABORTED
                raise
            self.output_path = str(path)
            self._temp_path = TempFileManager.generate_temp_path(self.output_path)

            try:
                self._fileobj = open(self._temp_path, "xb")
            except FileExistsError as e:
                self.state = WriterState.ABORTED
                raise WriteError(
                    self.output_path,
                    f"partial file {self._temp_path} exists; another build may be running",
                ) from e
            except OSError as e:
                self.state = WriterState.ABORTED
                raise WriteError(self.output_path, str(e)) from e

            # A failed run must leave nothing at the output path
            try:
                TempFileManager.remove_existing_output(self.output_path)
            except OSError as e:
                self._abort_locked()
                raise WriteError(
                    self.output_path, f"cannot remove previous archive: {e}"
                ) from e

            try:
                self._open_archive(self._fileobj)
            except (OSError, zstd.ZstdError, tarfile.TarError) as e:
                self._abort_locked()
                raise WriteError(self.output_path, str(e)) from e

            self.state = WriterState.OPEN
            logger.debug("Opened %s archive: %s", self.format_name, self._temp_path)

    def add_entry(
        self, entry: ArchiveEntry, source: Optional[BinaryIO] = None
    ) -> EntryRecord:
        """
        Write one entry after every previously submitted entry.

        ``source`` is read instead of ``entry.source_path`` when given. A
        duplicate archive path is refused before anything is written, leaving
        the writer open and earlier entries untouched. Any other failure aborts
        the writer.
        """
        with self._lock:
            self._require_state("add entries", WriterState.OPEN)

            name = normalize_archive_path(entry.archive_path, translate_backslashes=False)
            if name in self._written:
                raise DuplicateEntry(name)

            try:
                record = self._write_entry(entry, name, source)
            except ArchiveError:
                self._abort_locked()
                raise
            except (OSError, RuntimeError, ValueError, zstd.ZstdError, tarfile.TarError) as e:
                self._abort_locked()
                raise WriteError(self.output_path, f"{name}: {e}") from e

            self._written.add(name)
            self._order.append(name)
            self.entry_count += 1
            self.bytes_in += record.uncompressed_size
            return record

    def finalize(self) -> str:
        """Write the trailer, sync and move the archive to the output path."""
        with self._lock:
            self._require_state("finalize", WriterState.OPEN)
            self.state = WriterState.FINALIZING

            try:
                self._close_archive()
                TempFileManager.sync_file(self._fileobj)
                self._fileobj.close()
                self._fileobj = None
                TempFileManager.atomic_move(self._temp_path, self.output_path)
            except (OSError, ValueError, zstd.ZstdError, tarfile.TarError) as e:
                self._abort_locked()
                raise WriteError(self.output_path, str(e)) from e

            self.state = WriterState.FINALIZED
            logger.debug(
                "Finalized %s archive with %d entries: %s",
                self.format_name,
                self.entry_count,
                self.output_path,
            )
            return self.output_path

    def abort(self) -> None:
        """Close the stream and delete partial output. Safe to call twice."""
        with self._lock:
            if self.state is WriterState.ABORTED:
                return
            self._require_state(
                "abort", WriterState.IDLE, WriterState.OPEN, WriterState.FINALIZING
            )
            self._abort_locked()

    def _abort_locked(self) -> None:
        self.state = WriterState.ABORTED
        self._discard_archive()
        if self._fileobj is not None:
            try:
                self._fileobj.close()
            except OSError as e:
                logger.debug("Error closing partial archive: %s", e)
            self._fileobj = None
        if self._temp_path:
            TempFileManager.cleanup_temp_file(self._temp_path)
        logger.debug("Aborted archive: %s", self.output_path)

    def _open_source(self, entry: ArchiveEntry, source: Optional[BinaryIO]) -> BinaryIO:
        if source is not None:
            return source
        try:
            return open(entry.source_path, "rb")
        except OSError as e:
            raise ReadError(entry.source_path, str(e)) from e

    def _open_archive(self, fileobj: BinaryIO) -> None:
        raise NotImplementedError

    def _write_entry(
        self, entry: ArchiveEntry, name: str, source: Optional[BinaryIO]
    ) -> EntryRecord:
        raise NotImplementedError

    def _close_archive(self) -> None:
        raise NotImplementedError

    def _discard_archive(self) -> None:
        raise NotImplementedError


class ZipArchiveWriter(BaseArchiveWriter):
    """Writes ZIP archives with per-entry deflate compression."""

    format_name = "zip"

    def __init__(self, compressor: Optional[EntryCompressor] = None):
        super().__init__()
        self.compressor = compressor or EntryCompressor()
        self._zip: Optional[zipfile.ZipFile] = None

    def _open_archive(self, fileobj: BinaryIO) -> None:
        self._zip = zipfile.ZipFile(
            fileobj,
            "w",
            self.compressor.zip_compress_type,
            compresslevel=self.compressor.zip_compresslevel,
            allowZip64=True,  # Support large archives
        )

    def _build_zipinfo(
        self, entry: ArchiveEntry, name: str, source: Optional[BinaryIO]
    ) -> zipfile.ZipInfo:
        if source is not None:
            zinfo = zipfile.ZipInfo(name, date_time=time.localtime(time.time())[:6])
            zinfo.external_attr = 0o644 << 16
            return zinfo
        try:
            return zipfile.ZipInfo.from_file(
                entry.source_path, name, strict_timestamps=False
            )
        except OSError as e:
            raise ReadError(entry.source_path, str(e)) from e

    def _write_entry(
        self, entry: ArchiveEntry, name: str, source: Optional[BinaryIO]
    ) -> EntryRecord:
        if entry.is_dir:
            zinfo = self._build_zipinfo(entry, name, None)
            self._zip.writestr(zinfo, b"")
            return EntryRecord(name, 0, 0)

        zinfo = self.compressor.configure(self._build_zipinfo(entry, name, source))
        src = self._open_source(entry, source)
        try:
            with self._zip.open(zinfo, "w") as dest:
                self.compressor.compress(src, dest)
        finally:
            if src is not source:
                src.close()

        return EntryRecord(name, zinfo.file_size, zinfo.compress_size)

    def _close_archive(self) -> None:
        self._zip.close()
        self._zip = None

    def _discard_archive(self) -> None:
        # Drop the ZipFile without close(), which would write a central directory
        self._zip = None


class ZstdTarArchiveWriter(BaseArchiveWriter):
    """Writes TAR archives through a streaming Zstandard compressor."""

    format_name = "zstd"

    def __init__(self, level: int = 3, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__()
        self.level = validate_level(level, ZSTD_MAX_LEVEL)
        self.chunk_size = max(1024, chunk_size)
        self._stream = None
        self._tar: Optional[tarfile.TarFile] = None

    def _setup_zstd_compressor(self) -> "zstd.ZstdCompressor":
        """Set up ZSTD compressor; level 0 selects the library default."""
        return zstd.ZstdCompressor(level=self.level, write_checksum=True)

    def _open_archive(self, fileobj: BinaryIO) -> None:
        self._stream = self._setup_zstd_compressor().stream_writer(
            fileobj, closefd=False
        )
        self._tar = tarfile.open(
            fileobj=self._stream,
            mode="w|",
            format=tarfile.PAX_FORMAT,
            dereference=True,
            copybufsize=self.chunk_size,
        )

    def _build_tarinfo(
        self, entry: ArchiveEntry, name: str, source: Optional[BinaryIO]
    ) -> tarfile.TarInfo:
        if source is None:
            try:
                tarinfo = self._tar.gettarinfo(entry.source_path, arcname=name)
            except OSError as e:
                raise ReadError(entry.source_path, str(e)) from e
            if tarinfo is None:
                raise ReadError(entry.source_path, "unsupported file type")
            return tarinfo

        tarinfo = tarfile.TarInfo(name)
        start = source.tell()
        tarinfo.size = source.seek(0, os.SEEK_END) - start
        source.seek(start)
        tarinfo.mtime = int(time.time())
        tarinfo.mode = 0o644
        return tarinfo

    def _write_entry(
        self, entry: ArchiveEntry, name: str, source: Optional[BinaryIO]
    ) -> EntryRecord:
        tarinfo = self._build_tarinfo(entry, name, None if entry.is_dir else source)

        if tarinfo.isdir():
            self._tar.addfile(tarinfo)
            return EntryRecord(name, 0)

        src = self._open_source(entry, source)
        try:
            self._tar.addfile(tarinfo, src)
        finally:
            if src is not source:
                src.close()

        # Entries share one compressed stream, so there is no per-entry compressed size
        return EntryRecord(name, tarinfo.size)

    def _close_archive(self) -> None:
        self._tar.close()
        self._tar = None
        # close() ends the zstd frame without closing the underlying file
        self._stream.close()
        self._stream = None

    def _discard_archive(self) -> None:
        self._tar = None
        self._stream = None


class ArchiveWriterFactory:
    """Factory for creating appropriate archive writers."""

    DEFAULT_LEVEL = {
        "zip": 9,
        "zstd": 3,
    }

    @staticmethod
    def create_writer(
        archive_format: str,
        compression_level: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> BaseArchiveWriter:
        """Create appropriate archive writer based on format."""
        if archive_format not in ArchiveWriterFactory.DEFAULT_LEVEL:
            raise ValueError(f"Unsupported archive format: {archive_format}")

        level = (
            compression_level
            if compression_level is not None
            else ArchiveWriterFactory.DEFAULT_LEVEL[archive_format]
        )
        if archive_format == "zip":
            return ZipArchiveWriter(EntryCompressor(level, chunk_size))
        return ZstdTarArchiveWriter(level, chunk_size)

    @staticmethod
    def get_supported_formats() -> List[str]:
        """Get list of supported archive formats."""
        return list(ArchiveWriterFactory.DEFAULT_LEVEL)

    @staticmethod
    def get_level_range(archive_format: str) -> tuple:
        if archive_format == "zstd":
            return (0, ZSTD_MAX_LEVEL)
        return (0, 9)
