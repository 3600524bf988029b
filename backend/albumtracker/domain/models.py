from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OwnershipStatus(str, Enum):
    OWNED = "Owned"
    MISSING = "Missing"
    AMBIGUOUS = "Ambiguous"


class FolderEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str  # absolute, normalized
    name: str
    parent_path: str
    is_artist_folder_candidate: bool
    parsed_year: int | None = None
    parsed_title: str | None = None

    @model_validator(mode="after")
    def _year_implies_title(self) -> "FolderEntry":
        if self.parsed_year is not None and self.parsed_title is None:
            raise ValueError("parsed_year requires parsed_title")
        return self


class FilesystemSnapshot(BaseModel):
    """
    One full scan of the library root. Immutable: a rescan produces a new snapshot.
    """
    model_config = ConfigDict(frozen=True)

    root: str
    entries: tuple[FolderEntry, ...] = ()
    permission_denied: int = 0
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def children_of(self, path: str | Path) -> list[FolderEntry]:
        parent = str(path)
        return [entry for entry in self.entries if entry.parent_path == parent]

    def top_level(self) -> list[FolderEntry]:
        return self.children_of(self.root)

    def album_folders_in(self, path: str | Path) -> list[FolderEntry]:
        return [entry for entry in self.children_of(path) if entry.parsed_year is not None]

    def find(self, path: str | Path) -> FolderEntry | None:
        target = str(path)
        for entry in self.entries:
            if entry.path == target:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)


class ArtistRecord(BaseModel):
    id: int
    external_id: str
    name: str
    linked_folder_path: str | None = None


class AlbumRecord(BaseModel):
    id: int
    artist_id: int
    external_id: str  # catalog identifier
    title: str
    release_year: int | None = None

    ownership_status: OwnershipStatus = OwnershipStatus.MISSING
    matched_folder_path: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    manual_override: bool = False

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Album title cannot be empty")
        return value

    @model_validator(mode="after")
    def _owned_has_path(self) -> "AlbumRecord":
        if self.ownership_status == OwnershipStatus.OWNED and not self.matched_folder_path:
            raise ValueError("Owned albums must have a matched folder path")
        return self


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OwnershipStatus
    confidence: float = Field(ge=0.0, le=1.0)
    folder_path: str | None = None

    @classmethod
    def missing(cls) -> "MatchResult":
        return cls(status=OwnershipStatus.MISSING, confidence=0.0)


class ReconcileSummary(BaseModel):
    artist_id: int
    artist_folder: str | None = None
    scanned_folders: int = 0
    matched: int = 0
    ambiguous: int = 0
    skipped_overrides: int = 0
    permission_denied: int = 0
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BrowseEntry(BaseModel):
    name: str
    path: str  # relative to library root


class BrowseResult(BaseModel):
    current_path: str
    parent_path: str | None = None
    entries: list[BrowseEntry] = []
