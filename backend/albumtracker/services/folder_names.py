import re
from typing import NamedTuple

# "[1969] Abbey Road" style album folders
ALBUM_FOLDER_PATTERN = re.compile(r"^\[(\d{4})\]")

# "= A =", "= # =" grouping buckets
GROUPING_BUCKET_PATTERN = re.compile(r"^=\s*([A-Z0-9#])\s*=$")

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class ParsedFolderName(NamedTuple):
    year: int | None
    title: str


def normalize_title(title: str) -> str:
    """
    Lowercase, drop punctuation (digits and spacing survive), collapse whitespace.
    Shared by folder names and catalog titles so both sides compare alike.
    """
    title = _PUNCTUATION.sub("", title.lower())
    return _WHITESPACE.sub(" ", title).strip()


def parse_folder_name(name: str) -> ParsedFolderName:
    match = ALBUM_FOLDER_PATTERN.match(name)
    if match is None:
        return ParsedFolderName(year=None, title=normalize_title(name))
    raw_title = name[match.end():].strip()
    return ParsedFolderName(year=int(match.group(1)), title=normalize_title(raw_title))


def is_album_folder_name(name: str) -> bool:
    return ALBUM_FOLDER_PATTERN.match(name) is not None


def is_grouping_bucket(name: str) -> bool:
    return GROUPING_BUCKET_PATTERN.match(name) is not None


def grouping_bucket_name(letter: str) -> str:
    return f"= {letter} ="


def is_artist_folder_candidate(name: str) -> bool:
    if is_album_folder_name(name) or is_grouping_bucket(name):
        return False
    # Single characters are usually leftover buckets ("A", "#")
    return len(name) > 1
