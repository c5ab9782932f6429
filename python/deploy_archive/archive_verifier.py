"""
Archive integrity verification.

This module checks finished archives by decompressing their entries and
summarizes their contents for the ``info`` command.
"""

import tarfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import zstandard as zstd
from colored_logger import get_colored_logger

from .errors import ArchiveError, SourceNotFound
from .path_utils import TempFileManager

logger = get_colored_logger(__name__)


def _empty_info() -> Dict[str, Any]:
    return {
        "file_count": 0,
        "compressed_size": 0,
        "uncompressed_size": 0,
        "compression_ratio": 0,
        "entries": [],
    }


def _ratio(compressed: int, uncompressed: int) -> float:
    return (1 - compressed / uncompressed) * 100 if uncompressed > 0 else 0


class ZipArchiveVerifier:
    """Checks ZIP archives by reading every entry back."""

    def verify_integrity(self, archive_path: str) -> bool:
        """Decompress every entry and check its CRC."""
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                bad_file = zipf.testzip()
                if bad_file is not None:
                    logger.debug("CRC mismatch in %s: %s", archive_path, bad_file)
                    return False
                return True
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            logger.debug("Cannot open ZIP archive %s: %s", archive_path, e)
            return False

    def get_archive_info(self, archive_path: str) -> Dict[str, Any]:
        """Entry counts and sizes from the ZIP central directory."""
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                file_list = zipf.infolist()
        except (OSError, zipfile.BadZipFile) as e:
            logger.debug("Cannot read ZIP directory of %s: %s", archive_path, e)
            return _empty_info()

        compressed = sum(f.compress_size for f in file_list)
        uncompressed = sum(f.file_size for f in file_list)
        return {
            "file_count": len([f for f in file_list if not f.is_dir()]),
            "compressed_size": compressed,
            "uncompressed_size": uncompressed,
            "compression_ratio": _ratio(compressed, uncompressed),
            "entries": [(f.filename, f.file_size) for f in file_list],
        }


class ZstdArchiveVerifier:
    """Checks TAR.ZST archives by decompressing the whole stream."""

    def _read_members(self, archive_path: str, read_data: bool) -> List[tarfile.TarInfo]:
        members = []
        with open(archive_path, "rb") as f:
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(f) as decompressor:
                with tarfile.open(fileobj=decompressor, mode="r|") as tar:
                    for member in tar:
                        if read_data and member.isfile():
                            data = tar.extractfile(member)
                            if data is not None:
                                while data.read(64 * 1024):
                                    pass
                        members.append(member)
        return members

    def verify_integrity(self, archive_path: str) -> bool:
        """Decompress the whole stream, which checks the frame checksum."""
        try:
            self._read_members(archive_path, read_data=True)
            return True
        except zstd.ZstdError as e:
            logger.debug("Corrupt ZSTD frame in %s: %s", archive_path, e)
            return False
        except tarfile.TarError as e:
            logger.debug("Corrupt TAR stream in %s: %s", archive_path, e)
            return False
        except OSError as e:
            logger.debug("Cannot read %s: %s", archive_path, e)
            return False

    def get_archive_info(self, archive_path: str) -> Dict[str, Any]:
        """Entry counts and sizes from the TAR headers of the stream."""
        try:
            members = self._read_members(archive_path, read_data=False)
        except (OSError, zstd.ZstdError, tarfile.TarError) as e:
            logger.debug("Cannot list TAR.ZST members of %s: %s", archive_path, e)
            return _empty_info()

        compressed = Path(archive_path).stat().st_size
        uncompressed = sum(m.size for m in members if m.isfile())
        return {
            "file_count": len([m for m in members if m.isfile()]),
            "compressed_size": compressed,
            "uncompressed_size": uncompressed,
            "compression_ratio": _ratio(compressed, uncompressed),
            "entries": [(m.name, m.size) for m in members],
        }


class ArchiveVerifier:
    """Dispatches verification to the checker for an archive's format."""

    def __init__(self):
        self.zip_verifier = ZipArchiveVerifier()
        self.zstd_verifier = ZstdArchiveVerifier()

    def detect_format(self, archive_path: str) -> Optional[str]:
        """Detect the archive format from its extension."""
        if archive_path.endswith(".zip"):
            return "zip"
        if archive_path.endswith(".zst"):
            return "zstd"
        return None

    def _verifier_for(self, archive_format: Optional[str]):
        if archive_format == "zip":
            return self.zip_verifier
        if archive_format == "zstd":
            return self.zstd_verifier
        return None

    def verify_archive_integrity(
        self, archive_path: str, archive_format: Optional[str] = None
    ) -> bool:
        """Verify archive integrity based on format or file extension."""
        verifier = self._verifier_for(archive_format or self.detect_format(archive_path))
        if verifier is None:
            logger.debug("No verifier for %s", archive_path)
            return False
        return verifier.verify_integrity(archive_path)

    def ensure_valid(self, archive_path: str, archive_format: Optional[str] = None) -> None:
        """Remove the archive and raise if it fails verification."""
        if not self.verify_archive_integrity(archive_path, archive_format):
            TempFileManager.cleanup_temp_file(archive_path)
            raise ArchiveError(f"Archive integrity check failed: {archive_path}")

    def get_archive_info(self, archive_path: str) -> Dict[str, Any]:
        """Size, timestamps, entry listing and validity of an archive on disk."""
        path = Path(archive_path)

        if not path.exists():
            raise SourceNotFound(archive_path)

        stat_result = path.stat()
        archive_format = self.detect_format(archive_path)
        info = {
            "path": str(path),
            "size_bytes": stat_result.st_size,
            "size_mb": stat_result.st_size / (1024 * 1024),
            "modified_time": datetime.fromtimestamp(stat_result.st_mtime).isoformat(),
            "format": archive_format or "unknown",
            "valid": False,
        }

        verifier = self._verifier_for(archive_format)
        info.update(verifier.get_archive_info(archive_path) if verifier else _empty_info())
        info["valid"] = self.verify_archive_integrity(archive_path, archive_format)

        return info
