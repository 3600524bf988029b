import threading
from collections.abc import Iterable
from typing import Protocol

import structlog

from albumtracker.core.errors import InvalidRequestError, NotFoundError
from albumtracker.domain.models import AlbumRecord, ArtistRecord, OwnershipStatus

logger = structlog.get_logger(__name__)


class AlbumRepository(Protocol):
    """What the reconciliation engine needs from persistence."""

    def get_artist(self, artist_id: int) -> ArtistRecord | None: ...

    def get_albums_for_artist(self, artist_id: int) -> list[AlbumRecord]: ...

    def update_album_match(
        self,
        album_id: int,
        status: OwnershipStatus,
        path: str | None,
        confidence: float | None,
    ) -> bool: ...

    def get_artist_folder_link(self, artist_id: int) -> str | None: ...


class InMemoryLibraryRepository:
    """
    Thread-safe in-memory store for artists and their catalog albums.

    Every write validates a full replacement record and swaps it in under the
    lock, so a reader never sees a status without its matching path.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._artists: dict[int, ArtistRecord] = {}
        self._albums: dict[int, AlbumRecord] = {}
        self._next_artist_id = 1
        self._next_album_id = 1

    # Artists

    def add_artist(self, name: str, external_id: str, linked_folder_path: str | None = None) -> ArtistRecord:
        with self._lock:
            for artist in self._artists.values():
                if artist.external_id == external_id:
                    raise InvalidRequestError(f"Artist {external_id} already imported")
            artist = ArtistRecord(
                id=self._next_artist_id,
                external_id=external_id,
                name=name,
                linked_folder_path=linked_folder_path,
            )
            self._artists[artist.id] = artist
            self._next_artist_id += 1
            return artist

    def get_artist(self, artist_id: int) -> ArtistRecord | None:
        with self._lock:
            return self._artists.get(artist_id)

    def list_artists(self) -> list[ArtistRecord]:
        with self._lock:
            return sorted(self._artists.values(), key=lambda a: a.name.casefold())

    def get_artist_folder_link(self, artist_id: int) -> str | None:
        artist = self.get_artist(artist_id)
        return artist.linked_folder_path if artist else None

    def set_artist_folder_link(self, artist_id: int, path: str | None) -> ArtistRecord:
        with self._lock:
            artist = self._require_artist(artist_id)
            updated = artist.model_copy(update={"linked_folder_path": path})
            self._artists[artist_id] = updated
            return updated

    # Albums

    def add_albums(self, artist_id: int, albums: Iterable[dict]) -> list[AlbumRecord]:
        """Import catalog albums ({external_id, title, release_year}) as Missing."""
        with self._lock:
            self._require_artist(artist_id)
            known = {album.external_id for album in self._albums.values()}
            created = []
            next_id = self._next_album_id
            # Validate the whole batch before storing any of it
            for data in albums:
                if data["external_id"] in known:
                    continue
                record = AlbumRecord(
                    id=next_id,
                    artist_id=artist_id,
                    external_id=data["external_id"],
                    title=data["title"],
                    release_year=data.get("release_year"),
                )
                known.add(record.external_id)
                created.append(record)
                next_id += 1
            for record in created:
                self._albums[record.id] = record
            self._next_album_id = next_id
            return created

    def get_album(self, album_id: int) -> AlbumRecord | None:
        with self._lock:
            return self._albums.get(album_id)

    def get_albums_for_artist(self, artist_id: int) -> list[AlbumRecord]:
        with self._lock:
            albums = [a for a in self._albums.values() if a.artist_id == artist_id]
        return sorted(albums, key=lambda a: (a.release_year is None, a.release_year or 0, a.title.casefold()))

    def update_album_match(
        self,
        album_id: int,
        status: OwnershipStatus,
        path: str | None,
        confidence: float | None,
    ) -> bool:
        """
        Apply an automatic match. Refused (returns False) for manually overridden albums.
        """
        with self._lock:
            album = self._require_album(album_id)
            if album.manual_override:
                logger.info("automatic_update_refused", album_id=album_id, reason="manual_override")
                return False
            self._replace(album, ownership_status=status, matched_folder_path=path, confidence=confidence)
            return True

    def set_manual_match(
        self,
        album_id: int,
        status: OwnershipStatus | None = None,
        path: str | None = None,
        *,
        keep_path: bool = False,
    ) -> AlbumRecord:
        """
        Record a user decision. The album is marked as overridden and loses its
        automatic confidence. With keep_path the current folder path is retained.
        """
        with self._lock:
            album = self._require_album(album_id)
            matched_path = album.matched_folder_path if keep_path else path
            if status is None:
                status = OwnershipStatus.OWNED if matched_path else OwnershipStatus.MISSING
            if status == OwnershipStatus.OWNED and not matched_path:
                raise InvalidRequestError("Cannot set ownership to Owned without a matched folder path")
            return self._replace(
                album,
                ownership_status=status,
                matched_folder_path=matched_path,
                confidence=None,
                manual_override=True,
            )

    def clear_manual_override(self, album_id: int) -> AlbumRecord:
        with self._lock:
            album = self._require_album(album_id)
            return self._replace(album, manual_override=False)

    def _replace(self, album: AlbumRecord, **changes) -> AlbumRecord:
        # model_validate re-runs the Owned/path and confidence checks
        updated = AlbumRecord.model_validate({**album.model_dump(), **changes})
        self._albums[album.id] = updated
        return updated

    def _require_artist(self, artist_id: int) -> ArtistRecord:
        artist = self._artists.get(artist_id)
        if artist is None:
            raise NotFoundError(f"Artist {artist_id} not found")
        return artist

    def _require_album(self, album_id: int) -> AlbumRecord:
        album = self._albums.get(album_id)
        if album is None:
            raise NotFoundError(f"Album {album_id} not found")
        return album
