"""
Per-entry compression settings and streaming copy.

The compressing sink itself belongs to the archive format (zipfile's deflate
stream for ZIP entries). EntryCompressor picks the codec and level for an entry
and pushes the source bytes through the sink in bounded chunks.
"""

import zipfile
from typing import BinaryIO, Optional

from .errors import ReadError

MIN_LEVEL = 0
MAX_LEVEL = 9
DEFAULT_LEVEL = MAX_LEVEL
DEFAULT_CHUNK_SIZE = 64 * 1024


def validate_level(level: int, max_level: int = MAX_LEVEL) -> int:
    """Check a compression level against the 0..max_level range."""
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValueError(f"Compression level must be an integer, got {level!r}")
    if not MIN_LEVEL <= level <= max_level:
        raise ValueError(
            f"Compression level must be between {MIN_LEVEL} and {max_level}, got {level}"
        )
    return level


class EntryCompressor:
    """Streams entry bytes into a compressing sink at a fixed level."""

    def __init__(self, level: int = DEFAULT_LEVEL, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.level = validate_level(level)
        self.chunk_size = max(1024, chunk_size)  # Minimum 1KB chunks

    @property
    def zip_compress_type(self) -> int:
        """ZIP method for this level; level 0 stores without compression."""
        return zipfile.ZIP_STORED if self.level == 0 else zipfile.ZIP_DEFLATED

    @property
    def zip_compresslevel(self) -> Optional[int]:
        return None if self.level == 0 else self.level

    def configure(self, zinfo: zipfile.ZipInfo) -> zipfile.ZipInfo:
        """Apply this compressor's method and level to a ZIP entry header."""
        zinfo.compress_type = self.zip_compress_type
        # Python 3.13 added ZipInfo.compress_level; 3.8 to 3.12 read the private _compresslevel
        if hasattr(zinfo, "compress_level"):
            zinfo.compress_level = self.zip_compresslevel
        else:
            zinfo._compresslevel = self.zip_compresslevel
        return zinfo

    def compress(self, source: BinaryIO, sink: BinaryIO) -> int:
        """
        Copy ``source`` into ``sink`` chunk by chunk.

        Each write blocks until the sink has accepted the chunk, so at most one
        chunk is held in memory per entry.

        Returns:
            Number of uncompressed bytes read from the source.
        """
        total = 0
        while True:
            try:
                chunk = source.read(self.chunk_size)
            except OSError as e:
                raise ReadError(getattr(source, "name", "<stream>"), str(e)) from e
            if not chunk:
                break
            sink.write(chunk)
            total += len(chunk)
        return total
