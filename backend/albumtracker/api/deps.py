from functools import lru_cache
from pathlib import Path

from fastapi import Depends, HTTPException

from albumtracker.core.settings import Settings, settings
from albumtracker.services.browser import LibraryBrowser
from albumtracker.services.reconciliation import ReconciliationEngine
from albumtracker.services.repository import InMemoryLibraryRepository


def get_settings() -> Settings:
    return settings


@lru_cache
def get_repository() -> InMemoryLibraryRepository:
    return InMemoryLibraryRepository()


@lru_cache
def _engine_for(
    repository: InMemoryLibraryRepository, library_root: Path | None, similarity_threshold: float
) -> ReconciliationEngine:
    # One engine per configuration so the per-artist pass guard is shared by all requests
    return ReconciliationEngine(repository, library_root, similarity_threshold=similarity_threshold)


def get_engine(
    app_settings: Settings = Depends(get_settings),
    repository: InMemoryLibraryRepository = Depends(get_repository),
) -> ReconciliationEngine:
    return _engine_for(repository, app_settings.LIBRARY_ROOT_PATH, app_settings.SIMILARITY_THRESHOLD)


def get_browser(app_settings: Settings = Depends(get_settings)) -> LibraryBrowser:
    if app_settings.LIBRARY_ROOT_PATH is None:
        raise HTTPException(status_code=400, detail="Library path not configured")
    return LibraryBrowser(app_settings.LIBRARY_ROOT_PATH)
