import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from albumtracker.core.errors import ConcurrentOperationError, ConfigurationError, NotFoundError
from albumtracker.domain.models import FilesystemSnapshot, OwnershipStatus, ReconcileSummary
from albumtracker.services.artist_locator import ArtistFolderLocator
from albumtracker.services.matcher import DEFAULT_SIMILARITY_THRESHOLD, CandidateMatcher
from albumtracker.services.path_guard import PathGuard
from albumtracker.services.repository import AlbumRepository
from albumtracker.services.scanner import DirectoryScanner

logger = structlog.get_logger(__name__)


class ArtistPassGuard:
    """Allows at most one reconciliation pass per artist at a time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: set[int] = set()

    @contextmanager
    def hold(self, artist_id: int) -> Iterator[None]:
        with self._lock:
            if artist_id in self._in_flight:
                raise ConcurrentOperationError(artist_id)
            self._in_flight.add(artist_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(artist_id)

    def is_running(self, artist_id: int) -> bool:
        with self._lock:
            return artist_id in self._in_flight


class ReconciliationEngine:
    def __init__(
        self,
        repository: AlbumRepository,
        library_root: str | Path | None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        matcher: CandidateMatcher | None = None,
        scanner_factory: Callable[[str], DirectoryScanner] = DirectoryScanner,
    ):
        self.repository = repository
        self.library_root = str(library_root) if library_root else None
        self.matcher = matcher or CandidateMatcher(similarity_threshold)
        self.scanner_factory = scanner_factory
        self.guard = ArtistPassGuard()

    def reconcile(self, artist_id: int, snapshot: FilesystemSnapshot | None = None) -> ReconcileSummary:
        """
        Run one reconciliation pass for an artist.

        Albums with a manual override are never touched. Everything else gets
        the matcher's verdict against the artist folder's [YYYY] children, or
        Missing when no artist folder can be found.
        """
        path_guard = self._path_guard()

        with self.guard.hold(artist_id):
            artist = self.repository.get_artist(artist_id)
            if artist is None:
                raise NotFoundError(f"Artist {artist_id} not found")

            log = logger.bind(artist_id=artist_id, artist=artist.name)
            log.info("reconcile_started")

            if snapshot is None:
                snapshot = self.scanner_factory(path_guard.root).scan()

            artist_folder = self._artist_folder(artist_id, artist.name, snapshot, path_guard)
            candidates = snapshot.album_folders_in(artist_folder) if artist_folder else []
            summary = ReconcileSummary(
                artist_id=artist_id,
                artist_folder=artist_folder,
                scanned_folders=len(candidates),
                permission_denied=snapshot.permission_denied,
            )

            for album in self.repository.get_albums_for_artist(artist_id):
                if album.manual_override:
                    summary.skipped_overrides += 1
                    continue

                result = self.matcher.match_album(album, candidates)
                applied = self.repository.update_album_match(
                    album.id,
                    result.status,
                    result.folder_path,
                    result.confidence,
                )
                if not applied:
                    # Overridden between listing and update
                    summary.skipped_overrides += 1
                    continue
                if result.status == OwnershipStatus.OWNED:
                    summary.matched += 1
                elif result.status == OwnershipStatus.AMBIGUOUS:
                    summary.ambiguous += 1

            log.info(
                "reconcile_finished",
                artist_folder=artist_folder,
                scanned_folders=summary.scanned_folders,
                matched=summary.matched,
                ambiguous=summary.ambiguous,
                skipped_overrides=summary.skipped_overrides,
            )
            return summary

    def _path_guard(self) -> PathGuard:
        # Checked before any filesystem access
        if not self.library_root:
            raise ConfigurationError("Library path not configured", field="LIBRARY_ROOT_PATH")
        path_guard = PathGuard(self.library_root)
        if not os.path.isdir(path_guard.root):
            raise ConfigurationError(
                f"Library root {path_guard.root} does not exist or is not a directory",
                field="LIBRARY_ROOT_PATH",
            )
        return path_guard

    def _artist_folder(
        self,
        artist_id: int,
        artist_name: str,
        snapshot: FilesystemSnapshot,
        path_guard: PathGuard,
    ) -> str | None:
        linked = self.repository.get_artist_folder_link(artist_id)
        if linked:
            # Stored links are re-checked; a link escaping the root raises SecurityError
            return str(path_guard.resolve(linked, decode=False))
        return ArtistFolderLocator(snapshot).locate(artist_name)
