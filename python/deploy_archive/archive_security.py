"""
Archive path validation.

Archive paths are "/"-separated and relative. Anything that would land outside
the archive root when extracted is refused rather than silently rewritten.
"""

import os
from pathlib import Path

from .errors import PathSecurityError, WriteError


def normalize_archive_path(archive_path: str, translate_backslashes: bool = True) -> str:
    """
    Return ``archive_path`` in canonical form or raise PathSecurityError.

    Configured paths may use ``\\`` as a separator and have it translated. Names
    read from disk pass ``translate_backslashes=False``, since a backslash is a
    legal character in a POSIX file name; a ``..`` hidden behind one is still
    refused.
    """
    if archive_path is None:
        raise PathSecurityError("Archive path is missing")

    candidate = archive_path.replace("\\", "/") if translate_backslashes else archive_path
    if candidate.startswith("/") or candidate[1:3] in (":/", ":\\"):
        raise PathSecurityError(f"Absolute archive path not allowed: {archive_path}")

    parts = []
    for part in candidate.split("/"):
        if part in ("", "."):
            continue
        if ".." in part.split("\\"):
            raise PathSecurityError(f"Parent reference in archive path: {archive_path}")
        parts.append(part)

    if not parts:
        raise PathSecurityError(f"Empty archive path: {archive_path!r}")

    return "/".join(parts)


def join_archive_path(prefix: str, relative_path: str) -> str:
    """Join a configured archive prefix and a root-relative path from disk."""
    relative = "/".join(Path(relative_path).parts)
    if not prefix or prefix.strip("/\\") == "":
        return normalize_archive_path(relative, translate_backslashes=False)
    return normalize_archive_path(
        f"{normalize_archive_path(prefix)}/{relative}", translate_backslashes=False
    )


def ensure_output_location(output_path: str) -> Path:
    """Create the output's parent directory and check it is writable."""
    path = Path(output_path)
    parent = path.parent if str(path.parent) else Path(".")

    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(output_path, f"cannot create directory {parent}: {e}") from e

    if not os.access(parent, os.W_OK):
        raise WriteError(output_path, f"directory {parent} is not writable")

    if path.is_dir():
        raise WriteError(output_path, "output path is a directory")

    return path
