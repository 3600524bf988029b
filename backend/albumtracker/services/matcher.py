"""
Album-to-folder matching.

CandidateMatcher is pure: the same album and candidate folders always give the
same MatchResult, so it can be shared between threads without locking. The
similarity metric is a plain callable and can be swapped without touching the
year gate, tie-break or threshold policy.
"""
from collections.abc import Callable, Iterable, Sequence

from rapidfuzz import fuzz

from albumtracker.domain.models import AlbumRecord, FolderEntry, MatchResult, OwnershipStatus
from albumtracker.services.folder_names import normalize_title

DEFAULT_SIMILARITY_THRESHOLD = 0.80
YEAR_TOLERANCE = 1

# Below this a title pair shares nothing meaningful and scores 0
NOISE_FLOOR = 0.30
TOKEN_CUTOFF = 80.0

TitleScorer = Callable[[str, str], float]


def _token_alignment(left: list[str], right: list[str]) -> float:
    """
    Pair each token with its most similar unused counterpart (one-to-one).
    Only pairs at or above TOKEN_CUTOFF count.
    """
    if not left or not right:
        return 0.0
    remaining = list(right)
    total = 0.0
    for token in left:
        best_index = None
        best_score = 0.0
        for index, other in enumerate(remaining):
            score = fuzz.ratio(token, other, score_cutoff=TOKEN_CUTOFF)
            if score > best_score:
                best_index, best_score = index, score
        if best_index is not None:
            total += best_score / 100.0
            remaining.pop(best_index)
    return total / max(len(left), len(right))


def title_similarity(album_title: str, folder_title: str) -> float:
    """
    Similarity of two normalized titles in [0, 1].

    Mean of the character-level Indel ratio and the token alignment score.
    Identical strings score 1.0; "in rainbows" vs "rainbows" lands around 0.67.
    """
    if album_title == folder_title:
        return 1.0
    if not album_title or not folder_title:
        return 0.0

    characters = fuzz.ratio(album_title, folder_title) / 100.0
    tokens = _token_alignment(album_title.split(), folder_title.split())
    score = (characters + tokens) / 2
    if score < NOISE_FLOOR:
        return 0.0
    return min(score, 1.0)


class CandidateMatcher:
    def __init__(
        self,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        scorer: TitleScorer = title_similarity,
        year_tolerance: int = YEAR_TOLERANCE,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")
        self.threshold = threshold
        self.scorer = scorer
        self.year_tolerance = year_tolerance

    def match(self, title: str, release_year: int | None, candidates: Iterable[FolderEntry]) -> MatchResult:
        in_range = self.filter_by_year(candidates, release_year)
        # Titles are never compared across eras
        if not in_range:
            return MatchResult.missing()

        normalized = normalize_title(title)
        best: FolderEntry | None = None
        best_score = 0.0
        # Name order first so equal scores keep the earliest folder name
        for candidate in sorted(in_range, key=lambda entry: entry.name):
            score = self.scorer(normalized, candidate.parsed_title or "")
            if best is None or score > best_score:
                best, best_score = candidate, score

        return self.classify(best_score, best.path)

    def match_album(self, album: AlbumRecord, candidates: Iterable[FolderEntry]) -> MatchResult:
        return self.match(album.title, album.release_year, candidates)

    def match_albums(
        self, albums: Iterable[AlbumRecord], candidates: Sequence[FolderEntry]
    ) -> dict[int, MatchResult]:
        return {album.id: self.match_album(album, candidates) for album in albums}

    def classify(self, score: float, folder_path: str) -> MatchResult:
        score = max(0.0, min(score, 1.0))
        if score <= 0.0:
            return MatchResult.missing()
        if score >= self.threshold:
            return MatchResult(status=OwnershipStatus.OWNED, confidence=score, folder_path=folder_path)
        return MatchResult(status=OwnershipStatus.AMBIGUOUS, confidence=score, folder_path=folder_path)

    def filter_by_year(self, candidates: Iterable[FolderEntry], release_year: int | None) -> list[FolderEntry]:
        if release_year is None:
            return []
        return [
            entry
            for entry in candidates
            if entry.parsed_year is not None and abs(entry.parsed_year - release_year) <= self.year_tolerance
        ]
