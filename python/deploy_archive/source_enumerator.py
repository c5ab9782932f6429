"""
Source enumeration for archive assembly.

This module walks configured directory roots and resolves standalone files,
turning them into ordered ArchiveEntry values. Directories are listed one at a
time, so memory use does not grow with the size of the tree.
"""

import os
import stat
from typing import Dict, Any, Iterator, Optional, Set, Tuple
from colored_logger import get_colored_logger

from .archive_security import join_archive_path, normalize_archive_path
from .errors import ReadError, SourceNotFound
from .models import ArchiveEntry, EntryKind, SymlinkPolicy

logger = get_colored_logger(__name__)


class EnumerationStats:
    """Container for enumeration statistics."""

    def __init__(self):
        self.total_files = 0
        self.total_size = 0
        self.directories = 0
        self.skipped_entries = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "total_files": self.total_files,
            "total_size": self.total_size,
            "directories": self.directories,
            "skipped_entries": self.skipped_entries,
        }

    def add_file(self, file_size: int) -> None:
        self.total_files += 1
        self.total_size += file_size

    def add_directory(self) -> None:
        self.directories += 1

    def skip_entry(self) -> None:
        self.skipped_entries += 1


class SourceEnumerator:
    """
    Produces archive entries for directory trees and single files.

    Within each directory, regular files come first in lexical order, followed
    by subdirectories in lexical order, depth first. The order only depends on
    names, so an unchanged tree always enumerates the same way.
    """

    def __init__(
        self,
        symlink_policy: SymlinkPolicy = SymlinkPolicy.FOLLOW,
        include_empty_dirs: bool = False,
    ):
        self.symlink_policy = SymlinkPolicy(symlink_policy)
        self.include_empty_dirs = include_empty_dirs
        self.stats = EnumerationStats()

    def check_root(self, source_root: str) -> None:
        """Raise if ``source_root`` cannot be enumerated."""
        if not os.path.exists(source_root):
            if os.path.lexists(source_root):
                raise ReadError(source_root, "broken symbolic link")
            raise SourceNotFound(source_root)
        if not os.path.isdir(source_root):
            raise ReadError(source_root, "not a directory")

    def enumerate(self, source_root: str, archive_prefix: str = "") -> Iterator[ArchiveEntry]:
        """
        Return a lazy iterator over the entries below ``source_root``.

        The root is checked immediately; listing errors surface while iterating.
        """
        self.check_root(source_root)

        try:
            root_stat = os.stat(source_root)
        except OSError as e:
            raise ReadError(source_root, str(e)) from e

        visited = {(root_stat.st_dev, root_stat.st_ino)}
        return self._walk(source_root, (), archive_prefix, visited)

    def check_file(self, source_path: str) -> None:
        """Raise if ``source_path`` is not a readable regular file."""
        if not os.path.exists(source_path):
            if os.path.lexists(source_path):
                raise ReadError(source_path, "broken symbolic link")
            raise SourceNotFound(source_path)

        if os.path.islink(source_path) and self.symlink_policy is SymlinkPolicy.ERROR:
            raise ReadError(source_path, "symbolic link")

        if not os.path.isfile(source_path):
            raise ReadError(source_path, "not a regular file")

    def resolve_file(self, source_path: str, archive_path: str) -> ArchiveEntry:
        """Resolve a standalone file source into a single entry."""
        self.check_file(source_path)

        try:
            file_size = os.path.getsize(source_path)
        except OSError as e:
            raise ReadError(source_path, str(e)) from e

        self.stats.add_file(file_size)
        return ArchiveEntry(
            archive_path=normalize_archive_path(archive_path),
            source_path=source_path,
            kind=EntryKind.FILE,
        )

    def _list_directory(self, directory: str) -> list:
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda item: item.name)
        except OSError as e:
            raise ReadError(directory, str(e)) from e

    def _classify(self, item: "os.DirEntry") -> Optional[str]:
        """Return "file", "dir" or None when the item is skipped."""
        try:
            if item.is_symlink():
                if self.symlink_policy is SymlinkPolicy.SKIP:
                    logger.debug("Skipping symbolic link: %s", item.path)
                    self.stats.skip_entry()
                    return None
                if self.symlink_policy is SymlinkPolicy.ERROR:
                    raise ReadError(item.path, "symbolic link")
                if not os.path.exists(item.path):
                    raise ReadError(item.path, "broken symbolic link")

            if item.is_dir():
                return "dir"
            if item.is_file():
                return "file"

            mode = item.stat().st_mode
        except OSError as e:
            raise ReadError(item.path, str(e)) from e

        logger.warning(
            "Skipping special file %s (mode %s)", item.path, stat.filemode(mode)
        )
        self.stats.skip_entry()
        return None

    def _walk(
        self,
        directory: str,
        relative_parts: Tuple[str, ...],
        archive_prefix: str,
        visited: Set[Tuple[int, int]],
    ) -> Iterator[ArchiveEntry]:
        files = []
        subdirectories = []

        for item in self._list_directory(directory):
            kind = self._classify(item)
            if kind == "file":
                files.append(item)
            elif kind == "dir":
                subdirectories.append(item)

        produced = 0

        for item in files:
            try:
                file_size = item.stat().st_size
            except OSError as e:
                raise ReadError(item.path, str(e)) from e

            self.stats.add_file(file_size)
            produced += 1
            yield ArchiveEntry(
                archive_path=join_archive_path(
                    archive_prefix, "/".join(relative_parts + (item.name,))
                ),
                source_path=item.path,
                kind=EntryKind.FILE,
            )

        for item in subdirectories:
            try:
                dir_stat = item.stat()
            except OSError as e:
                raise ReadError(item.path, str(e)) from e

            key = (dir_stat.st_dev, dir_stat.st_ino)
            if key in visited:
                logger.warning("Skipping directory cycle at %s", item.path)
                self.stats.skip_entry()
                continue

            self.stats.add_directory()
            produced += yield from self._walk(
                item.path,
                relative_parts + (item.name,),
                archive_prefix,
                visited | {key},
            )

        if produced == 0 and relative_parts and self.include_empty_dirs:
            produced += 1
            yield ArchiveEntry(
                archive_path=join_archive_path(archive_prefix, "/".join(relative_parts)),
                source_path=directory,
                kind=EntryKind.DIRECTORY,
            )

        return produced
