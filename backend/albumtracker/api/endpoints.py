import asyncio

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from albumtracker.api.deps import get_browser, get_engine, get_repository
from albumtracker.core.errors import (
    AccessDeniedError,
    AlbumTrackerError,
    ConcurrentOperationError,
    ConfigurationError,
    InvalidRequestError,
    NotFoundError,
    SecurityError,
)
from albumtracker.domain.models import (
    AlbumRecord,
    ArtistRecord,
    BrowseResult,
    OwnershipStatus,
    ReconcileSummary,
)
from albumtracker.services.browser import LibraryBrowser
from albumtracker.services.reconciliation import ReconciliationEngine
from albumtracker.services.repository import InMemoryLibraryRepository

router = APIRouter()

STATUS_CODES = {
    SecurityError: 403,
    AccessDeniedError: 403,
    NotFoundError: 404,
    ConfigurationError: 400,
    InvalidRequestError: 400,
    ConcurrentOperationError: 409,
}


def to_http_error(error: AlbumTrackerError) -> HTTPException:
    status_code = STATUS_CODES.get(type(error), 500)
    return HTTPException(status_code=status_code, detail=error.message)


class ScanRequest(BaseModel):
    artist_id: int = Field(gt=0)


class CatalogAlbum(BaseModel):
    external_id: str
    title: str
    release_year: int | None = None


class ImportArtistRequest(BaseModel):
    external_id: str
    name: str
    albums: list[CatalogAlbum] = []


class ArtistUpdateRequest(BaseModel):
    linked_folder_path: str | None


class AlbumUpdateRequest(BaseModel):
    matched_folder_path: str | None = None
    ownership_status: OwnershipStatus | None = None
    clear_override: bool = False


@router.get("/health")
async def health_check():
    return {"status": "ok"}

@router.get("/ready")
async def readiness_check(engine: ReconciliationEngine = Depends(get_engine)):
    if not engine.library_root:
        return {"status": "not_configured"}
    return {"status": "ready"}

@router.get("/filesystem/browse")
async def browse_directory(path: str = "", browser: LibraryBrowser = Depends(get_browser)) -> BrowseResult:
    try:
        return browser.browse(path)
    except AlbumTrackerError as e:
        raise to_http_error(e) from e

@router.post("/filesystem/scan")
async def scan_artist(
    request: ScanRequest, engine: ReconciliationEngine = Depends(get_engine)
) -> ReconcileSummary:
    try:
        # Filesystem walk is blocking
        return await asyncio.to_thread(engine.reconcile, request.artist_id)
    except AlbumTrackerError as e:
        raise to_http_error(e) from e

@router.post("/artists", status_code=201)
async def import_artist(
    request: ImportArtistRequest, repository: InMemoryLibraryRepository = Depends(get_repository)
) -> ArtistRecord:
    try:
        artist = repository.add_artist(request.name, request.external_id)
        repository.add_albums(artist.id, [album.model_dump() for album in request.albums])
    except AlbumTrackerError as e:
        raise to_http_error(e) from e
    return artist

@router.get("/artists")
async def list_artists(repository: InMemoryLibraryRepository = Depends(get_repository)) -> list[ArtistRecord]:
    return repository.list_artists()

@router.get("/artists/{artist_id}/albums")
async def list_albums(
    artist_id: int, repository: InMemoryLibraryRepository = Depends(get_repository)
) -> list[AlbumRecord]:
    if repository.get_artist(artist_id) is None:
        raise HTTPException(status_code=404, detail="Artist not found")
    return repository.get_albums_for_artist(artist_id)

@router.patch("/artists/{artist_id}")
async def update_artist(
    artist_id: int,
    request: ArtistUpdateRequest,
    repository: InMemoryLibraryRepository = Depends(get_repository),
    browser: LibraryBrowser = Depends(get_browser),
) -> ArtistRecord:
    try:
        linked = None
        if request.linked_folder_path:
            linked = str(browser.resolve_directory(request.linked_folder_path))
        return repository.set_artist_folder_link(artist_id, linked)
    except AlbumTrackerError as e:
        raise to_http_error(e) from e

@router.patch("/albums/{album_id}")
async def update_album(
    album_id: int,
    request: AlbumUpdateRequest,
    repository: InMemoryLibraryRepository = Depends(get_repository),
    browser: LibraryBrowser = Depends(get_browser),
) -> AlbumRecord:
    fields = request.model_fields_set
    try:
        if request.clear_override:
            return repository.clear_manual_override(album_id)

        if "matched_folder_path" in fields:
            if request.matched_folder_path is None:
                return repository.set_manual_match(album_id, OwnershipStatus.MISSING, None)
            folder = browser.resolve_within(request.matched_folder_path)
            return repository.set_manual_match(album_id, OwnershipStatus.OWNED, str(folder))

        if request.ownership_status is not None:
            return repository.set_manual_match(album_id, request.ownership_status, keep_path=True)
    except AlbumTrackerError as e:
        raise to_http_error(e) from e

    raise HTTPException(status_code=400, detail="No valid update fields provided")
