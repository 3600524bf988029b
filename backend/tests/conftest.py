from pathlib import Path

import pytest

from albumtracker.services.reconciliation import ReconciliationEngine
from albumtracker.services.repository import InMemoryLibraryRepository


def make_folders(root: Path, *relative: str) -> None:
    for rel in relative:
        (root / rel).mkdir(parents=True, exist_ok=True)


@pytest.fixture
def library(tmp_path) -> Path:
    root = tmp_path / "music"
    root.mkdir()
    return root


@pytest.fixture
def repository() -> InMemoryLibraryRepository:
    return InMemoryLibraryRepository()


@pytest.fixture
def engine(repository, library) -> ReconciliationEngine:
    return ReconciliationEngine(repository, library)


@pytest.fixture
def beatles(repository):
    artist = repository.add_artist("The Beatles", "b10bbbfc-cf9e-42e0-be17-e2c3e1d2600d")
    albums = repository.add_albums(
        artist.id,
        [
            {"external_id": "rg-abbey-road", "title": "Abbey Road", "release_year": 1969},
            {"external_id": "rg-revolver", "title": "Revolver", "release_year": 1966},
            {"external_id": "rg-let-it-be", "title": "Let It Be", "release_year": 1970},
        ],
    )
    return artist, albums
