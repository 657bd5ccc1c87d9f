"""Directory scanning utilities for transfer operations."""

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        # Use as_posix() to ensure forward slashes on all platforms
        relative_path = file_path.relative_to(base_path).as_posix()

        return cls(
            path=file_path,
            relative_path=relative_path,
            size=stat.st_size,
            mtime=stat.st_mtime,
        )


class DirectoryScanner:
    """Scans directories and builds file lists.

    Files are returned in a stable order: entries of each directory are
    visited sorted by name, depth first.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> files = scanner.scan_local(Path("./dist"))

        >>> # Skip source maps and anything under drafts/
        >>> scanner = DirectoryScanner(ignore_patterns=["*.map", "drafts/*"])
        >>> files = scanner.scan_local(Path("./dist"))
    """

    def __init__(
        self,
        ignore_patterns: Optional[list[str]] = None,
        exclude_dot_files: bool = True,
    ):
        """Initialize directory scanner.

        Args:
            ignore_patterns: List of glob patterns to ignore (e.g., ["*.log", "temp/*"]),
                matched against both the name and the relative path
            exclude_dot_files: Whether to exclude files/folders starting with dot
                (``.env``, ``.git/``). On by default.
        """
        self.ignore_patterns = ignore_patterns or []
        self.exclude_dot_files = exclude_dot_files

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        """Check if a path should be ignored based on patterns.

        Args:
            path: Path to check
            base_path: Base path for relative path calculation

        Returns:
            True if path should be ignored
        """
        if self.exclude_dot_files and path.name.startswith("."):
            return True

        relative_path = path.relative_to(base_path).as_posix()
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(
                relative_path, pattern
            ):
                logger.debug(f"Ignoring (pattern {pattern}): {relative_path}")
                return True

        return False

    def scan_local(
        self, directory: Path, base_path: Optional[Path] = None
    ) -> list[LocalFile]:
        """Recursively scan a local directory.

        Args:
            directory: Directory to scan
            base_path: Base path for calculating relative paths (defaults to directory)

        Returns:
            List of LocalFile objects

        Raises:
            FileNotFoundError: If ``directory`` does not exist
            NotADirectoryError: If ``directory`` is not a directory
            PermissionError: If a directory cannot be listed
        """
        if base_path is None:
            if not directory.exists():
                raise FileNotFoundError(f"Directory does not exist: {directory}")
            if not directory.is_dir():
                raise NotADirectoryError(f"Not a directory: {directory}")
            base_path = directory

        files: list[LocalFile] = []
        entries = sorted(directory.iterdir(), key=lambda p: p.name)

        for item in entries:
            if self.should_ignore(item, base_path):
                continue

            if item.is_file():
                files.append(LocalFile.from_path(item, base_path))
            elif item.is_dir():
                files.extend(self.scan_local(item, base_path))

        return files
