"""Gitignore-style exclusion patterns for directory packing."""

from pathlib import Path
from typing import Iterable

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .constants import EXCLUDE_FILE


class ExcludeSpec:
    """Gitignore-style patterns for paths left out of a directory blob.

    Nothing is excluded by default: a directory blob is the whole tree
    unless the tree carries a .blobignore file or extra patterns are given.
    The .blobignore file itself is packed like any other file.
    """

    def __init__(self, root: Path, extra: Iterable[str] = ()):
        """Initialize exclude spec.

        Args:
            root: Directory being packed
            extra: Additional patterns to include
        """
        self.root = Path(root)
        patterns = []

        ignore_file = self.root / EXCLUDE_FILE
        if ignore_file.is_file():
            for line in ignore_file.read_text().splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(line)

        patterns.extend(extra)
        self.patterns = patterns
        self.spec = PathSpec.from_lines(GitWildMatchPattern, patterns)

    def is_excluded(self, relpath: str, is_dir: bool = False) -> bool:
        """Check if a root-relative POSIX path should be left out.

        Directory paths get a trailing slash so directory-only patterns
        ("build/") match them.
        """
        if not self.patterns:
            return False
        if is_dir and not relpath.endswith("/"):
            relpath = relpath + "/"
        return self.spec.match_file(relpath)
