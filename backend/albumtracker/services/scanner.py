import os
from pathlib import Path

import structlog

from albumtracker.domain.models import FilesystemSnapshot, FolderEntry
from albumtracker.services.folder_names import is_artist_folder_candidate, parse_folder_name
from albumtracker.services.path_guard import PathGuard

logger = structlog.get_logger(__name__)


def make_folder_entry(path: str, name: str, parent_path: str) -> FolderEntry:
    parsed = parse_folder_name(name)
    return FolderEntry(
        path=path,
        name=name,
        parent_path=parent_path,
        is_artist_folder_candidate=is_artist_folder_candidate(name),
        parsed_year=parsed.year,
        parsed_title=parsed.title if parsed.year is not None else None,
    )


class DirectoryScanner:
    """Walks the library root read-only and builds a FilesystemSnapshot of its folders."""

    def __init__(self, library_root: str | Path):
        self.guard = PathGuard(library_root)
        self.root = self.guard.root

    def scan(self) -> FilesystemSnapshot:
        entries: list[FolderEntry] = []
        denied = self._walk(self.root, entries)
        snapshot = FilesystemSnapshot(root=self.root, entries=tuple(entries), permission_denied=denied)
        logger.info(
            "library_scanned",
            root=self.root,
            folders=len(snapshot.entries),
            permission_denied=denied,
        )
        return snapshot

    def _walk(self, directory: str, entries: list[FolderEntry]) -> int:
        # Depth-first, siblings in name order; returns unreadable directory count
        try:
            children = self._list_subdirectories(directory)
        except PermissionError:
            logger.warning("directory_unreadable", path=directory)
            return 1
        except FileNotFoundError:
            # Removed between listing the parent and descending
            logger.warning("directory_vanished", path=directory)
            return 0
        except OSError as e:
            # Any other listing failure skips only this subtree
            logger.warning("directory_unlistable", path=directory, error=str(e))
            return 0

        denied = 0
        for name in children:
            folder_path = os.path.join(directory, name)
            entries.append(make_folder_entry(folder_path, name, directory))
            denied += self._walk(folder_path, entries)
        return denied

    def _list_subdirectories(self, directory: str) -> list[str]:
        names = []
        with os.scandir(directory) as it:
            for entry in it:
                # Symlinked directories are not followed: they may point outside the root or loop
                if entry.is_dir(follow_symlinks=False):
                    names.append(entry.name)
        return sorted(names)

