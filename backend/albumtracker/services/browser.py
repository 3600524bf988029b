import os
import stat
from pathlib import Path

import structlog

from albumtracker.core.errors import AccessDeniedError, InvalidRequestError, NotFoundError, SecurityError
from albumtracker.domain.models import BrowseEntry, BrowseResult
from albumtracker.services.path_guard import PathGuard

logger = structlog.get_logger(__name__)


class LibraryBrowser:
    """Single-level directory listing under the library root, for manual folder selection."""

    def __init__(self, library_root: str | Path):
        self.guard = PathGuard(library_root)

    def browse(self, relative_path: str = "") -> BrowseResult:
        target = self._existing_directory(relative_path)
        target_str = str(target)

        try:
            names = self._list_directories(target_str)
        except PermissionError as e:
            logger.warning("browse_denied", path=target_str)
            raise AccessDeniedError(f"Permission denied: {relative_path}") from e

        entries = [
            BrowseEntry(name=name, path=self.guard.relative_to_root(os.path.join(target_str, name)))
            for name in sorted(names, key=str.casefold)
        ]

        parent_path = None
        if target_str != self.guard.root:
            parent_path = self.guard.relative_to_root(os.path.dirname(target_str))

        return BrowseResult(
            current_path=self.guard.relative_to_root(target_str),
            parent_path=parent_path,
            entries=entries,
        )

    def resolve_directory(self, user_path: str) -> Path:
        """Resolve a user chosen folder and require it to be an existing directory."""
        return self._existing_directory(user_path)

    def resolve_within(self, user_path: str) -> Path:
        """Resolve a user path that must stay under the root even after following symlinks."""
        target = self.guard.resolve(user_path)
        if not self.guard.contains_real(target):
            logger.warning("path_rejected", reason="symlink_outside_root", user_path=user_path)
            raise SecurityError("Access outside library root is forbidden", user_path=user_path)
        return target

    def _existing_directory(self, user_path: str) -> Path:
        # SecurityError comes first; existence is only checked afterwards
        target = self.resolve_within(user_path)
        target_str = str(target)

        try:
            mode = self._stat(target_str).st_mode
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(f"Directory not found: {user_path}") from e
        except PermissionError as e:
            logger.warning("browse_denied", path=target_str)
            raise AccessDeniedError(f"Permission denied: {user_path}") from e

        if not stat.S_ISDIR(mode):
            raise InvalidRequestError(f"Path is not a directory: {user_path}")
        return target

    def _stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def _list_directories(self, directory: str) -> list[str]:
        with os.scandir(directory) as it:
            return [entry.name for entry in it if entry.is_dir(follow_symlinks=False)]
