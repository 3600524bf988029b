"""
Artist folder detection over a filesystem snapshot.

Naming rules are plain functions mapping an artist name to the folder names it
may appear under. They run in order and the first rule producing a hit wins:

1. exact name ("Radiohead")
2. leading article moved to a suffix ("The Beatles" -> "Beatles, The")
3. unsafe characters replaced ("AC/DC" -> "AC-DC")

When none of them hits at the top level, the same rules run inside the
grouping bucket for the name ("= B =", or "= # =" for "The 1975").
"""
import re
from collections.abc import Callable, Iterable
from typing import NamedTuple

import structlog

from albumtracker.domain.models import FilesystemSnapshot, FolderEntry
from albumtracker.services.folder_names import grouping_bucket_name, is_grouping_bucket

logger = structlog.get_logger(__name__)

LEADING_ARTICLES = ("The", "A", "An")

# Characters not safe in folder names; "_" and "-" are the usual substitutes
UNSAFE_FOLDER_CHARS = re.compile(r'[/\\:*?"<>|_]')


def exact_name(name: str) -> list[str]:
    return [name]


def moved_article(name: str) -> list[str]:
    for article in LEADING_ARTICLES:
        prefix = f"{article} "
        suffix = f", {article}"
        if name.lower().startswith(prefix.lower()) and len(name) > len(prefix):
            return [f"{name[len(prefix):]}{suffix}"]
        if name.lower().endswith(suffix.lower()) and len(name) > len(suffix):
            return [f"{article} {name[:-len(suffix)]}"]
    return []


def safe_characters(name: str) -> list[str]:
    return [normalize_unsafe(variant) for variant in exact_name(name) + moved_article(name)]


def normalize_unsafe(name: str) -> str:
    return UNSAFE_FOLDER_CHARS.sub("-", name)


def _same_name(name: str) -> str:
    return name


class NamingRule(NamedTuple):
    name: str
    variants: Callable[[str], list[str]]
    # Applied to folder names before comparing
    folder_key: Callable[[str], str] = _same_name

    def matches(self, folder: FolderEntry, variant: str) -> bool:
        return self.folder_key(folder.name).casefold() == variant.casefold()


NAME_RULES: tuple[NamingRule, ...] = (
    NamingRule("exact", exact_name),
    NamingRule("moved_article", moved_article),
    NamingRule("safe_characters", safe_characters, normalize_unsafe),
)


def bucket_letter(name: str) -> str:
    """
    Bucket for an artist name: first alphabetic character of the article-moved
    form, uppercased, or "#" when the name starts with anything else.
    """
    sort_name = name
    moved = moved_article(name)
    if moved and not any(name.lower().endswith(f", {a.lower()}") for a in LEADING_ARTICLES):
        sort_name = moved[0]
    first = sort_name.lstrip()[:1]
    if first.isalpha():
        return first.upper()
    return "#"


class ArtistFolderLocator:
    def __init__(self, snapshot: FilesystemSnapshot, rules: tuple[NamingRule, ...] = NAME_RULES):
        self.snapshot = snapshot
        self.rules = rules

    def locate(self, artist_name: str) -> str | None:
        artist_name = artist_name.strip()
        if not artist_name:
            return None

        top_level = self.snapshot.top_level()
        found = self._search(artist_name, [f for f in top_level if f.is_artist_folder_candidate])
        if found:
            return found.path

        bucket = self._find_bucket(top_level, bucket_letter(artist_name))
        if bucket is not None:
            bucketed = [f for f in self.snapshot.children_of(bucket.path) if f.is_artist_folder_candidate]
            found = self._search(artist_name, bucketed)
            if found:
                return found.path

        logger.info("artist_folder_not_found", artist=artist_name)
        return None

    def _search(self, artist_name: str, folders: Iterable[FolderEntry]) -> FolderEntry | None:
        folders = list(folders)
        for rule in self.rules:
            for variant in rule.variants(artist_name):
                for folder in folders:
                    if rule.matches(folder, variant):
                        logger.debug("artist_folder_found", artist=artist_name, rule=rule.name, path=folder.path)
                        return folder
        return None

    def _find_bucket(self, top_level: list[FolderEntry], letter: str) -> FolderEntry | None:
        wanted = grouping_bucket_name(letter)
        for folder in top_level:
            if not is_grouping_bucket(folder.name):
                continue
            # "=A=" and "= A =" are the same bucket
            if folder.name.replace(" ", "") == wanted.replace(" ", ""):
                return folder
        return None
