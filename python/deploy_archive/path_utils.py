"""
Path utilities for archive output files.

Archives are written to a sibling ``.partial`` file and moved into place only
after they are finalized, so a failed run never leaves a file at the output path.
"""

import os
from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

EXTENSIONS = {
    "zip": ".zip",
    "zstd": ".tar.zst",
}


def determine_extension(archive_format: str) -> str:
    """Determine file extension based on archive format."""
    try:
        return EXTENSIONS[archive_format]
    except KeyError:
        raise ValueError(f"Unknown archive format: {archive_format}") from None


def ensure_extension(output_path: str, archive_format: str) -> str:
    """Ensure the output path has the extension of its archive format."""
    expected_ext = determine_extension(archive_format)

    if output_path.endswith(expected_ext):
        return output_path

    # Swap the extension of another known format instead of stacking them
    for other_ext in EXTENSIONS.values():
        if output_path.endswith(other_ext):
            return output_path[: -len(other_ext)] + expected_ext

    return f"{output_path}{expected_ext}"


class TempFileManager:
    """Manages partial output files and their cleanup."""

    @staticmethod
    def generate_temp_path(base_path: str, suffix: str = "partial") -> str:
        return f"{base_path}.{suffix}"

    @staticmethod
    def cleanup_temp_file(temp_path: str) -> None:
        """Remove a partial file, logging instead of raising on failure."""
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError as e:
                logger.debug("Failed to cleanup temp file %s: %s", temp_path, e)

    @staticmethod
    def remove_existing_output(output_path: str) -> bool:
        """
        Delete an archive left at ``output_path`` by an earlier run.

        Returns True if a file was removed. Unlike cleanup_temp_file, errors
        propagate.
        """
        if not os.path.isfile(output_path):
            return False
        os.remove(output_path)
        logger.debug("Removed previous archive: %s", output_path)
        return True

    @staticmethod
    def sync_file(fileobj) -> None:
        """Flush Python and OS buffers for an open file."""
        fileobj.flush()
        os.fsync(fileobj.fileno())

    @staticmethod
    def atomic_move(src_path: str, dest_path: str) -> None:
        """Atomically move ``src_path`` over ``dest_path``."""
        try:
            os.replace(src_path, dest_path)
        except OSError as e:
            logger.error("Failed to move %s to %s: %s", src_path, dest_path, e)
            raise
